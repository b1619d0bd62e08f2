# Overview: Financial aggregation; folds sales, expenses and COGS feeds into per-day rows and totals.

"""
Financial Aggregator

Sign conventions used everywhere:
- net (sales view)  = paid - (op_ex + cogs_purchases)
- gross profit      = cogs_sales - cogs_of_sold_goods
- net profit        = gross profit - op_ex

`cogs_purchases` is money spent restocking inventory in the period.
`cogs_of_sold_goods` is the cost basis of units actually sold. They come from
different endpoints and must never be merged.

Inputs are already normalized (see normalize_service); missing values are 0.
"""

from __future__ import annotations

from typing import Iterable

from ..models import (
    SalesDay,
    ExpenseRecord,
    DailyFinancialRow,
    FinancialTotals,
    CogsSummary,
    Trend,
)
from .normalize_service import ReportError


TREND_FIELDS = ("gross", "paid", "balance", "op_ex", "cogs_purchases", "count", "net")


def _row_for(rows: dict[str, DailyFinancialRow], date: str) -> DailyFinancialRow:
    row = rows.get(date)
    if row is None:
        row = DailyFinancialRow(date=date)
        rows[date] = row
    return row


def build_daily_rows(
    sales_summary: Iterable[SalesDay],
    expenses: Iterable[ExpenseRecord],
    cogs_purchases: Iterable[ExpenseRecord] = (),
) -> list[DailyFinancialRow]:
    """
    One row per calendar date present in any input, sorted ascending.

    Sales seed the rows; expense and COGS-purchase dates not seen in sales
    are unioned in. Expenses are split by category: "cogs" entries count as
    COGS purchases, everything else as OpEx. Records without a date are
    skipped here (they still count in expense_totals).
    """
    if isinstance(sales_summary, (str, bytes, dict)) or isinstance(expenses, (str, bytes, dict)):
        raise ReportError("sales_summary and expenses must be collections of records")

    rows: dict[str, DailyFinancialRow] = {}

    for day in sales_summary:
        if not day.date:
            continue
        row = _row_for(rows, day.date)
        row.gross += day.gross
        row.paid += day.paid
        row.balance += day.balance
        row.count += day.count

    for expense in expenses:
        if not expense.date:
            continue
        row = _row_for(rows, expense.date)
        if expense.is_cogs_purchase:
            row.cogs_purchases += expense.amount
        else:
            row.op_ex += expense.amount

    for purchase in cogs_purchases:
        if not purchase.date:
            continue
        _row_for(rows, purchase.date).cogs_purchases += purchase.amount

    return [rows[date] for date in sorted(rows)]


def expense_totals(records: Iterable[ExpenseRecord]) -> tuple[float, float]:
    """
    (op_ex, cogs_purchases) summed over raw records, undated ones included.
    """
    op_ex = 0.0
    cogs_purchases = 0.0
    for record in records:
        if record.is_cogs_purchase:
            cogs_purchases += record.amount
        else:
            op_ex += record.amount
    return op_ex, cogs_purchases


def compute_totals(
    rows: Iterable[DailyFinancialRow],
    cogs_summary: CogsSummary | None = None,
) -> FinancialTotals:
    """
    Range-wide totals. An empty row set yields all zeros.

    Gross/net profit come from the COGS-by-sold-item summary, not from the
    COGS purchases in the rows.
    """
    totals = FinancialTotals()
    for row in rows:
        totals.gross += row.gross
        totals.paid += row.paid
        totals.balance += row.balance
        totals.op_ex += row.op_ex
        totals.cogs_purchases += row.cogs_purchases
        totals.count += row.count

    totals.net = totals.paid - (totals.op_ex + totals.cogs_purchases)

    if cogs_summary is not None:
        totals.cogs_sales = cogs_summary.sales
        totals.cogs_of_sold_goods = cogs_summary.cogs_of_sold_goods
    totals.gross_profit = totals.cogs_sales - totals.cogs_of_sold_goods
    totals.net_profit = totals.gross_profit - totals.op_ex
    return totals


def trend_between_last_two_days(rows: list[DailyFinancialRow], field: str) -> Trend | None:
    """
    Absolute and percentage change of `field` from the second-to-last row to
    the last one.

    None when there are fewer than two rows. `pct` is None when the baseline
    is zero; a negative baseline (net can go negative) is measured against
    its magnitude.
    """
    if field not in TREND_FIELDS:
        raise ReportError(f"Unknown trend field: {field}")
    if len(rows) < 2:
        return None

    prev = getattr(rows[-2], field) or 0
    curr = getattr(rows[-1], field) or 0
    delta = curr - prev
    pct = (delta / abs(prev)) * 100 if prev else None
    return Trend(delta=delta, pct=pct)


def daily_chart_series(rows: Iterable[DailyFinancialRow]) -> list[dict]:
    """Area-chart points: "Expenses" shows OpEx only, "Net" subtracts OpEx and COGS purchases."""
    return [
        {
            "date": row.date[5:] or row.date,
            "Paid": row.paid,
            "Expenses": row.op_ex,
            "Net": row.net,
        }
        for row in rows
    ]


def pie_totals(totals: FinancialTotals) -> list[dict]:
    return [
        {"name": "Paid", "value": totals.paid},
        {"name": "Expenses", "value": totals.op_ex},
        {"name": "Balance", "value": totals.balance},
    ]
