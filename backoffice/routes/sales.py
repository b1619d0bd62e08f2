# Overview: Cashier sale views; sales, payments, dispatch close, receipts and exports.

# backoffice/routes/sales.py
"""
Sales views

Thin wrappers over sales_service for the logged-in terminal. Role checks are
the backend's: a 403 from it is passed through unchanged.

Exports stream the backend's file back with a download name.
"""

from flask import Blueprint, request, jsonify, Response

from ..decorators import require_session
from ..extensions import get_context
from ..responses import error_response, HANDLED_ERRORS
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/sales")


EXPORT_MIMETYPES = {
    "csv": "text/csv",
    "pdf": "application/pdf",
}


def _range_args() -> dict:
    return {
        "date_from": request.args.get("date_from"),
        "date_to": request.args.get("date_to"),
    }


@sales_bp.get("/search")
@require_session
def search_sales_route():
    try:
        sales = sales_service.search_sales(get_context().session, **request.args.to_dict())
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"sales": sales, "count": len(sales)}), 200


@sales_bp.post("")
@require_session
def create_sale_route():
    """
    Record a sale.

    Body is forwarded as-is (customer, items, payment fields); the backend
    validates it.
    """
    data = request.get_json(silent=True) or {}
    if not data:
        return jsonify({"error": "sale payload required"}), 400
    try:
        sale = sales_service.create_sale(get_context().session, data)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"sale": sale, "message": "Sale recorded"}), 201


@sales_bp.get("/<int:sale_id>")
@require_session
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(get_context().session, sale_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"sale": sale}), 200


@sales_bp.get("/by-receipt/<receipt_number>")
@require_session
def get_sale_by_receipt_route(receipt_number: str):
    try:
        sale = sales_service.get_sale_by_receipt(get_context().session, receipt_number)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"sale": sale}), 200


@sales_bp.put("/<int:sale_id>")
@require_session
def update_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.update_sale(get_context().session, sale_id, data)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"sale": sale, "message": "Sale updated"}), 200


@sales_bp.delete("/<int:sale_id>")
@require_session
def delete_sale_route(sale_id: int):
    try:
        sales_service.delete_sale(get_context().session, sale_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"message": "Sale deleted"}), 200


@sales_bp.post("/<int:sale_id>/restore")
@require_session
def restore_sale_route(sale_id: int):
    try:
        result = sales_service.restore_sale(get_context().session, sale_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"result": result, "message": "Sale restored"}), 200


@sales_bp.get("/<int:sale_id>/items")
@require_session
def list_sale_items_route(sale_id: int):
    try:
        items = sales_service.list_sale_items(get_context().session, sale_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"items": items, "count": len(items)}), 200


@sales_bp.get("/<int:sale_id>/payments")
@require_session
def list_payments_route(sale_id: int):
    try:
        payments = sales_service.list_payments(get_context().session, sale_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"payments": payments, "count": len(payments)}), 200


@sales_bp.post("/<int:sale_id>/payments")
@require_session
def create_payment_route(sale_id: int):
    """
    Take a payment against a sale.

    Body: amount (> 0), payment_method, date. `credit: true` pays down a
    credit sale instead; the response then says whether the customer was
    emailed.
    """
    data = request.get_json(silent=True) or {}
    session = get_context().session
    kwargs = {
        "amount": data.get("amount"),
        "payment_method": data.get("payment_method"),
        "date": data.get("date"),
    }
    try:
        if data.get("credit"):
            result = sales_service.create_credit_payment(session, sale_id, **kwargs)
            return jsonify({
                "payment": result.get("data"),
                "email_sent": result.get("email_sent") is True,
                "message": result.get("message") or "Payment recorded",
            }), 201
        payment = sales_service.create_payment(session, sale_id, **kwargs)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"payment": payment, "message": "Payment recorded"}), 201


@sales_bp.post("/<int:sale_id>/close-dispatch")
@require_session
def close_dispatch_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        result = sales_service.close_dispatch(get_context().session, sale_id, data)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"result": result, "message": "Dispatch closed"}), 200


@sales_bp.get("/<int:sale_id>/receipt")
@require_session
def receipt_route(sale_id: int):
    try:
        receipt = sales_service.get_receipt(get_context().session, sale_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"receipt": receipt}), 200


@sales_bp.post("/<int:sale_id>/print")
@require_session
def print_receipt_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        result = sales_service.print_receipt(get_context().session, sale_id, data)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify(result), 200


@sales_bp.get("/export.<kind>")
@require_session
def export_route(kind: str):
    """
    Download sales for a range.

    - export.csv: one line per sale
    - export.pdf: sold items report
    """
    if kind not in EXPORT_MIMETYPES:
        return jsonify({"error": "export must be csv or pdf"}), 400

    session = get_context().session
    try:
        if kind == "csv":
            content = sales_service.export_sales_csv(session, **_range_args())
        else:
            content = sales_service.export_sales_items_pdf(session, **_range_args())
    except HANDLED_ERRORS as exc:
        return error_response(exc)

    filename = sales_service.export_filename(kind)
    return Response(
        content,
        mimetype=EXPORT_MIMETYPES[kind],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
