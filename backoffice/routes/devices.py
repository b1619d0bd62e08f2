# Overview: Device approval views for overall admins.

from flask import Blueprint, request, jsonify

from ..decorators import require_session, require_overall_admin
from ..extensions import get_context
from ..responses import error_response, HANDLED_ERRORS


devices_bp = Blueprint("devices", __name__, url_prefix="/admin/devices")


@devices_bp.get("/requests")
@require_session
@require_overall_admin
def list_requests_route():
    session = get_context().session
    try:
        requests = session.get_device_requests()
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"requests": [r.to_dict() for r in requests], "count": len(requests)}), 200


@devices_bp.post("/requests/<int:request_id>/approve")
@require_session
@require_overall_admin
def approve_request_route(request_id: int):
    session = get_context().session
    try:
        result = session.approve_device(request_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({
        "result": result,
        "requests": [r.to_dict() for r in session.device_requests],
        "message": "Device approved",
    }), 200


@devices_bp.delete("/requests/<int:request_id>")
@require_session
@require_overall_admin
def reject_request_route(request_id: int):
    session = get_context().session
    try:
        result = session.reject_device_request(request_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({
        "result": result,
        "requests": [r.to_dict() for r in session.device_requests],
        "message": "Device request rejected",
    }), 200


@devices_bp.post("/approve-by-code")
@require_session
@require_overall_admin
def approve_by_code_route():
    """
    Approve a device with the one-time code from the approval email.

    Body: {"code": "..."}
    """
    data = request.get_json(silent=True) or {}
    code = str(data.get("code") or "").strip()
    if not code:
        return jsonify({"error": "code is required"}), 400

    session = get_context().session
    try:
        result = session.approve_by_code(code)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"result": result, "message": "Device approved"}), 200


@devices_bp.get("/summary")
@require_session
@require_overall_admin
def summary_route():
    try:
        summary = get_context().session.get_device_summary()
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"summary": summary}), 200
