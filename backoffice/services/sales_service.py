# Overview: Sales, payment, dispatch, expense, COGS and packaging endpoints; normalizes responses that feed reporting.

from __future__ import annotations

from datetime import datetime
from typing import Any
from urllib.parse import quote

from ..models import SalesDay, ExpenseRecord, CartonsSummary, CogsSummary
from ..time_utils import utcnow
from .api_client import ValidationError
from .normalize_service import (
    normalize_amount,
    normalize_sales_summary,
    normalize_expenses,
    normalize_expense,
    normalize_cartons_summary,
    normalize_cogs_summary,
)
from .session_service import SessionManager


def _range(date_from: str | None, date_to: str | None) -> dict:
    return {"date_from": date_from, "date_to": date_to}


def _data(res: Any, default: Any) -> Any:
    if isinstance(res, dict) and "data" in res:
        return res["data"] if res["data"] is not None else default
    return res if res is not None else default


# ---------------- Summaries (feed the financial aggregator) ----------------

def fetch_summary_by_date(
    session: SessionManager,
    tz_name: str,
    *,
    date_from: str | None = None,
    date_to: str | None = None,
) -> list[SalesDay]:
    res = session.request("GET", "/retail-sales/summary/by-date", params=_range(date_from, date_to))
    return normalize_sales_summary(res, tz_name)


def list_expenses(
    session: SessionManager,
    tz_name: str,
    *,
    date_from: str | None = None,
    date_to: str | None = None,
) -> list[ExpenseRecord]:
    res = session.request("GET", "/expenses", params=_range(date_from, date_to))
    return normalize_expenses(res, tz_name)


def fetch_cartons_by_size(
    session: SessionManager,
    *,
    date_from: str | None = None,
    date_to: str | None = None,
) -> CartonsSummary:
    params = _range(date_from, date_to)
    res = session.request("GET", "/retail-sales/summary/cartons", params=params)
    return normalize_cartons_summary(res, params)


def fetch_cogs_summary(
    session: SessionManager,
    *,
    date_from: str | None = None,
    date_to: str | None = None,
) -> CogsSummary:
    params = _range(date_from, date_to)
    res = session.request("GET", "/retail-sales/summary/cogs", params=params)
    return normalize_cogs_summary(res, params)


# ---------------- Writes ----------------

def create_expense(session: SessionManager, tz_name: str, payload: dict) -> ExpenseRecord:
    amount = normalize_amount(payload.get("amount"))
    if amount <= 0:
        raise ValidationError("amount is required and must be > 0")
    body = {**payload, "amount": amount}
    res = _data(session.request("POST", "/expenses", json=body), {})
    return normalize_expense(res if isinstance(res, dict) else body, tz_name)


def create_cogs_purchase(session: SessionManager, payload: dict) -> dict:
    """
    Record a COGS purchase (stock bought, e.g. bulk water), not a sale.

    Only the fields the endpoint understands are forwarded.
    """
    body = {"amount": normalize_amount(payload.get("amount"))}
    if body["amount"] <= 0:
        raise ValidationError("amount is required and must be > 0")
    for key in ("description", "date", "payment_method"):
        if payload.get(key):
            body[key] = payload[key]
    if payload.get("bottle_size_id") not in (None, ""):
        body["bottle_size_id"] = int(payload["bottle_size_id"])
    if payload.get("unit_cost_carton") not in (None, ""):
        body["unit_cost_carton"] = normalize_amount(payload["unit_cost_carton"])
    return _data(session.request("POST", "/cogs", json=body), {})


# ---------------- Customers & sales lists ----------------

def list_customers(session: SessionManager) -> list[dict]:
    return _data(session.request("GET", "/customers"), [])


def list_sales(session: SessionManager, **filters) -> dict:
    """Paginated sales list: {"data": [...], "pagination": {...}}."""
    res = session.request("GET", "/retail-sales", params=filters)
    if not isinstance(res, dict):
        return {"data": res if isinstance(res, list) else [], "pagination": {}}
    rows = res.get("data")
    if not isinstance(rows, list):
        rows = res.get("sales") if isinstance(res.get("sales"), list) else []
    return {"data": rows, "pagination": res.get("pagination") or {}}


# ---------------- Packaging & stock ----------------

def fetch_stock_balances(session: SessionManager) -> list[dict]:
    return _data(session.request("GET", "/stock-balances"), [])


def fetch_bottle_sizes(session: SessionManager) -> list[dict]:
    return _data(session.request("GET", "/bottle-sizes"), [])


def list_packaging(session: SessionManager, *, page: int = 1, per_page: int = 20, **filters) -> dict:
    params = {**filters, "page": page, "per_page": per_page}
    res = session.request("GET", "/packaging", params=params)
    if not isinstance(res, dict):
        return {"data": [], "pagination": {}}
    return {"data": res.get("data") or [], "pagination": res.get("pagination") or {}}


def create_packaging(session: SessionManager, *, bottle_size_id: int, cartons: int, date: str | None = None) -> dict:
    if int(cartons) <= 0:
        raise ValidationError("cartons must be > 0")
    body = {"bottle_size_id": int(bottle_size_id), "cartons": int(cartons)}
    if date:
        body["date"] = date
    return _data(session.request("POST", "/packaging", json=body), {})


# ---------------- Sales: CRUD ----------------

def search_sales(session: SessionManager, **params) -> list[dict]:
    return _data(session.request("GET", "/retail-sales/search", params=params), [])


def create_sale(session: SessionManager, payload: dict) -> dict:
    return _data(session.request("POST", "/retail-sales", json=payload), {})


def get_sale(session: SessionManager, sale_id: int) -> dict:
    return _data(session.request("GET", f"/retail-sales/{int(sale_id)}"), {})


def get_sale_by_receipt(session: SessionManager, receipt_number: str) -> dict:
    return _data(session.request("GET", f"/retail-sales/by-receipt/{quote(str(receipt_number), safe='')}"), {})


def update_sale(session: SessionManager, sale_id: int, patch: dict) -> dict:
    return _data(session.request("PUT", f"/retail-sales/{int(sale_id)}", json=patch), {})


def delete_sale(session: SessionManager, sale_id: int) -> bool:
    session.request("DELETE", f"/retail-sales/{int(sale_id)}")
    return True


def restore_sale(session: SessionManager, sale_id: int) -> dict:
    """Undo a soft delete. Returns the restored sale, or the server message."""
    res = session.request("POST", f"/retail-sales/{int(sale_id)}/restore")
    if isinstance(res, dict) and isinstance(res.get("data"), dict):
        return res["data"]
    return {"message": res.get("message") if isinstance(res, dict) else None}


def list_sale_items(session: SessionManager, sale_id: int) -> list[dict]:
    return _data(session.request("GET", f"/retail-sales/{int(sale_id)}/items"), [])


# ---------------- Payments ----------------

def _payment_body(amount: Any, payment_method: str | None, date: str | None) -> dict:
    body = {"amount": normalize_amount(amount)}
    if body["amount"] <= 0:
        raise ValidationError("amount is required and must be > 0")
    if payment_method:
        body["payment_method"] = payment_method
    if date:
        body["date"] = date
    return body


def create_payment(
    session: SessionManager,
    sale_id: int,
    *,
    amount: Any,
    payment_method: str | None = None,
    date: str | None = None,
) -> dict:
    body = _payment_body(amount, payment_method, date)
    return _data(session.request("POST", f"/retail-sales/{int(sale_id)}/payments", json=body), {})


def create_credit_payment(
    session: SessionManager,
    sale_id: int,
    *,
    amount: Any,
    payment_method: str | None = None,
    date: str | None = None,
) -> dict:
    """
    Pay down a credit sale.

    Returns the whole response ({ok, message, email_sent, data}); the
    customer may have been emailed a statement.
    """
    body = _payment_body(amount, payment_method, date)
    res = session.request("POST", f"/credit-sales/{int(sale_id)}/payments", json=body)
    return res if isinstance(res, dict) else {"data": res}


def list_payments(session: SessionManager, sale_id: int) -> list[dict]:
    return _data(session.request("GET", f"/retail-sales/{int(sale_id)}/payments"), [])


def get_payment(session: SessionManager, payment_id: int) -> dict:
    return _data(session.request("GET", f"/customer-payments/{int(payment_id)}"), {})


def update_payment(session: SessionManager, payment_id: int, patch: dict) -> dict:
    return _data(session.request("PUT", f"/customer-payments/{int(payment_id)}", json=patch), {})


def delete_payment(session: SessionManager, payment_id: int) -> bool:
    session.request("DELETE", f"/customer-payments/{int(payment_id)}")
    return True


def send_payment_email(session: SessionManager, *, retail_sale_id: int, amount: Any, balance: Any) -> bool:
    body = {
        "retail_sale_id": int(retail_sale_id),
        "amount": normalize_amount(amount),
        "balance": normalize_amount(balance),
    }
    res = session.request("POST", "/send-payment-email", json=body)
    return isinstance(res, dict) and res.get("email_sent") is True


# ---------------- Dispatch ----------------

def close_dispatch(session: SessionManager, sale_id: int, payload: dict | None = None) -> dict:
    """Close the dispatch of a sale (goods left the store)."""
    return _data(session.request("POST", f"/retail-sales/{int(sale_id)}/close-dispatch", json=payload or {}), {})


# ---------------- Receipts & exports ----------------

def get_receipt(session: SessionManager, sale_id: int) -> dict:
    return _data(session.request("GET", f"/retail-sales/{int(sale_id)}/receipt"), {})


def print_receipt(session: SessionManager, sale_id: int, payload: dict | None = None) -> dict:
    res = session.request("POST", f"/retail-sales/{int(sale_id)}/print", json=payload or {})
    return res if isinstance(res, dict) else {}


def export_sales_csv(session: SessionManager, *, date_from: str | None = None, date_to: str | None = None, **filters) -> bytes:
    params = {**filters, **_range(date_from, date_to)}
    return session.request("GET", "/retail-sales/export.csv", params=params, expect_blob=True)


def export_sales_items_pdf(session: SessionManager, *, date_from: str | None = None, date_to: str | None = None, **filters) -> bytes:
    params = {**filters, **_range(date_from, date_to)}
    return session.request("GET", "/retail-sales/export-items.pdf", params=params, expect_blob=True)


def export_filename(kind: str, now: datetime | None = None) -> str:
    """Default download name: retail_sales_<day>.csv or sales-report-<ms>.pdf."""
    now = now or utcnow()
    if kind == "csv":
        return f"retail_sales_{now.strftime('%Y-%m-%d')}.csv"
    if kind == "pdf":
        return f"sales-report-{int(now.timestamp() * 1000)}.pdf"
    raise ValueError(f"Unknown export kind: {kind}")
