# Overview: Converts loosely-typed API payloads into strict internal shapes at the boundary.

"""
Payload normalization

WHY: The backend has used several field names for the same concept (gross vs
total vs total_amount...) and sends amounts as numbers, numeric strings or
currency strings ("KES 12,000"). Every response that feeds arithmetic passes
through here once, on receipt. Nothing past this module reads raw variant
field names.

Missing numeric fields become 0. Only a wrong root shape (neither list nor
object) raises PayloadShapeError.
"""

from __future__ import annotations

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from ..models import (
    SalesDay,
    ExpenseRecord,
    CartonSizeLine,
    CartonsSummary,
    CogsSizeLine,
    CogsSummary,
)
from ..time_utils import calendar_day, business_day_of


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


class PayloadShapeError(ReportError):
    """The response root is not a list or object at all."""


# Currency tokens with an optional trailing dot ("KES", "Ksh.", "Sh") and symbols
_CURRENCY_TOKENS = re.compile(r"kes\.?|k?sh\.?|[$\u20ac\u00a3]", re.IGNORECASE)
_SEPARATORS = re.compile(r"[\s,_]")

SALES_DATE_KEYS = ("date", "day", "sale_date")
SALES_GROSS_KEYS = ("gross", "total", "total_amount", "amount_total", "revenue")
SALES_PAID_KEYS = ("paid", "paid_amount", "amount_paid", "total_paid")
SALES_BALANCE_KEYS = ("balance", "balance_due", "amount_due", "outstanding")
SALES_COUNT_KEYS = ("count", "num_sales", "sales_count")
TIMESTAMP_KEYS = ("created_at", "timestamp", "updated_at")


def normalize_amount(value: Any) -> float:
    """
    Finite float from a number, numeric string (exponent form included) or
    currency-formatted string.

    "KES 12,000" -> 12000.0, "KSh 1 500.50" -> 1500.5, None/""/garbage -> 0.0.
    Idempotent: a float result normalizes to itself.
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float, Decimal)):
        try:
            number = float(value)
        except (OverflowError, InvalidOperation, ValueError):
            return 0.0
        return number if math.isfinite(number) else 0.0
    if isinstance(value, str):
        cleaned = _CURRENCY_TOKENS.sub("", value)
        cleaned = _SEPARATORS.sub("", cleaned)
        if not cleaned:
            return 0.0
        try:
            number = float(cleaned)
        except ValueError:
            return 0.0
        return number if math.isfinite(number) else 0.0
    return 0.0


def pick_field(record: Any, keys: Iterable[str], default: Any = None, *, numeric: bool = False) -> Any:
    """
    First present, non-null value among `keys`.

    With `numeric=True` the value goes through normalize_amount and the
    default is normalized too (None -> 0.0).
    """
    if isinstance(record, dict):
        for key in keys:
            value = record.get(key)
            if value is not None:
                return normalize_amount(value) if numeric else value
    if numeric:
        return normalize_amount(default)
    return default


def _count(record: dict) -> int:
    for key in SALES_COUNT_KEYS:
        value = record.get(key)
        if value is None:
            continue
        number = normalize_amount(value)
        return int(number)
    return 0


def date_key(value: Any, tz_name: str) -> str | None:
    """
    Calendar day of a date-ish value: its leading YYYY-MM-DD when it has one,
    else the timestamp converted to the business timezone, else None.
    """
    return calendar_day(value) or business_day_of(value, tz_name)


def record_date_key(record: dict, tz_name: str, date_keys: Iterable[str] = ("date",)) -> str | None:
    """
    Calendar-day key of a record.

    An explicit date field wins; otherwise a timestamp field is truncated to
    the business timezone's day. None when the record has neither.
    """
    for key in date_keys:
        day = calendar_day(record.get(key))
        if day:
            return day
    for key in TIMESTAMP_KEYS:
        day = business_day_of(record.get(key), tz_name)
        if day:
            return day
    return None


def _rows_of(res: Any, *envelope_keys: str) -> list:
    if res is None:
        return []
    if isinstance(res, list):
        return res
    if not isinstance(res, dict):
        raise PayloadShapeError(f"Expected a list or object, got {type(res).__name__}")
    for key in envelope_keys:
        payload = res.get(key)
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict) and isinstance(payload.get("data"), list):
            return payload["data"]
    return []


def _payload_of(res: Any) -> dict | list:
    if res is None:
        return {}
    if not isinstance(res, (dict, list)):
        raise PayloadShapeError(f"Expected a list or object, got {type(res).__name__}")
    if isinstance(res, dict) and isinstance(res.get("data"), (dict, list)):
        return res["data"]
    return res


def normalize_sales_summary(res: Any, tz_name: str) -> list[SalesDay]:
    """
    Sales summary by date -> SalesDay list.

    Balance is the explicit balance field when the backend sent one, else
    max(0, gross - paid). Rows without a usable date are dropped.
    """
    days = []
    for raw in _rows_of(res, "data", "summary", "rows"):
        if not isinstance(raw, dict):
            continue
        date = record_date_key(raw, tz_name, SALES_DATE_KEYS)
        if not date:
            continue
        gross = pick_field(raw, SALES_GROSS_KEYS, numeric=True)
        paid = pick_field(raw, SALES_PAID_KEYS, numeric=True)
        explicit_balance = pick_field(raw, SALES_BALANCE_KEYS)
        if explicit_balance is not None:
            balance = normalize_amount(explicit_balance)
        else:
            balance = max(0.0, gross - paid)
        days.append(SalesDay(date=date, gross=gross, paid=paid, balance=balance, count=_count(raw)))
    return days


def normalize_expense(raw: dict, tz_name: str, *, category: str | None = None) -> ExpenseRecord:
    record_id = raw.get("id")
    return ExpenseRecord(
        amount=pick_field(raw, ("amount", "total", "value"), numeric=True),
        category=str(category or raw.get("category") or "").strip().lower(),
        date=record_date_key(raw, tz_name, ("date", "expense_date")),
        description=raw.get("description"),
        id=int(record_id) if isinstance(record_id, int) else None,
    )


def normalize_expenses(res: Any, tz_name: str, *, category: str | None = None) -> list[ExpenseRecord]:
    """
    Expense list -> ExpenseRecord list.

    `category` forces the category (used for COGS purchase feeds that do not
    carry one themselves).
    """
    return [
        normalize_expense(raw, tz_name, category=category)
        for raw in _rows_of(res, "data", "expenses", "rows")
        if isinstance(raw, dict)
    ]


def _size_id(raw: dict) -> int | None:
    value = raw.get("bottle_size_id", raw.get("id"))
    try:
        return int(value) or None
    except (TypeError, ValueError):
        return None


def _size_label(raw: dict) -> str:
    return raw.get("label") or raw.get("bottle_size_label") or "Unknown"


def normalize_cartons_summary(res: Any, params: dict | None = None) -> CartonsSummary:
    """Cartons-by-size summary. Totals are summed from the lines when the backend omits them."""
    params = params or {}
    payload = _payload_of(res)
    if isinstance(payload, list):
        lines_raw, totals_src, payload = payload, None, {}
    else:
        lines_raw = payload.get("by_size") if isinstance(payload.get("by_size"), list) else []
        totals_src = payload.get("totals") or payload.get("total")

    lines = [
        CartonSizeLine(
            bottle_size_id=_size_id(raw),
            label=_size_label(raw),
            cartons=pick_field(raw, ("cartons", "quantity", "total_cartons"), numeric=True),
            revenue=pick_field(raw, ("revenue", "value", "total_value"), numeric=True),
        )
        for raw in lines_raw
        if isinstance(raw, dict)
    ]
    lines.sort(key=lambda line: (-line.cartons, -line.revenue))

    if isinstance(totals_src, dict):
        cartons = pick_field(totals_src, ("cartons", "total_cartons"), numeric=True)
        revenue = pick_field(totals_src, ("revenue", "total_value"), numeric=True)
    else:
        cartons = sum(line.cartons for line in lines)
        revenue = sum(line.revenue for line in lines)

    return CartonsSummary(
        cartons=cartons,
        revenue=revenue,
        by_size=lines,
        date_from=payload.get("date_from", params.get("date_from")),
        date_to=payload.get("date_to", params.get("date_to")),
    )


def _margin_pct(gross: float, sales: float) -> float:
    return (gross / sales) * 100 if sales > 0 else 0.0


def normalize_cogs_summary(res: Any, params: dict | None = None) -> CogsSummary:
    """
    COGS-by-sold-item summary.

    `cogs_of_sold_goods` is the cost basis of units sold in the range. It is
    a different figure from COGS purchases recorded as expenses.
    """
    params = params or {}
    payload = _payload_of(res)
    if isinstance(payload, list):
        lines_raw, totals, payload = payload, {}, {}
    else:
        lines_raw = payload.get("by_size") if isinstance(payload.get("by_size"), list) else []
        totals = payload.get("totals") if isinstance(payload.get("totals"), dict) else {}

    sales = pick_field(totals, ("sales", "total_sales", "revenue"), numeric=True)
    cogs = pick_field(totals, ("cogs", "total_cogs"), numeric=True)
    gross = pick_field(totals, ("gross", "gross_profit"), sales - cogs, numeric=True)
    gm = pick_field(totals, ("gm", "gross_margin"), _margin_pct(gross, sales), numeric=True)
    breakdown = totals.get("breakdown") if isinstance(totals.get("breakdown"), dict) else {}

    lines = []
    for raw in lines_raw:
        if not isinstance(raw, dict):
            continue
        line_sales = pick_field(raw, ("sales", "revenue", "total"), numeric=True)
        line_cogs = pick_field(raw, ("cogs", "cogs_total", "cost"), numeric=True)
        line_gross = pick_field(raw, ("gross", "gross_profit"), line_sales - line_cogs, numeric=True)
        lines.append(
            CogsSizeLine(
                bottle_size_id=_size_id(raw),
                label=_size_label(raw),
                cartons=pick_field(raw, ("cartons", "quantity"), numeric=True),
                sales=line_sales,
                cogs=line_cogs,
                gross=line_gross,
                gm=_margin_pct(line_gross, line_sales),
            )
        )
    lines.sort(key=lambda line: (-line.cartons, -line.sales))

    return CogsSummary(
        sales=sales,
        cogs_of_sold_goods=cogs,
        gross=gross,
        gm=gm,
        breakdown_cogs_sales=pick_field(breakdown, ("cogs_sales",), totals.get("cogs_sales"), numeric=True),
        breakdown_purchases=pick_field(breakdown, ("purchases",), totals.get("cogs_purchases"), numeric=True),
        by_size=lines,
        date_from=payload.get("date_from", params.get("date_from")),
        date_to=payload.get("date_to", params.get("date_to")),
    )
