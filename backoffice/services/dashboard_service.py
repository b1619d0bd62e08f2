# Overview: Dashboard refresh; concurrent fetch fan-out, all-or-nothing publish, last-request-wins.

"""
Dashboard Loader

WHY: A dashboard refresh needs four independent feeds. They are fetched in
parallel and joined; if any one fails the whole refresh fails, so a stale
value for one metric is never shown next to fresh values for the others.

Each refresh takes a generation number. Only the newest generation may
publish; a slow response for an older filter is discarded.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from ..models import (
    ExpenseRecord,
    DailyFinancialRow,
    FinancialTotals,
    CartonsSummary,
    CogsSummary,
    SalesDay,
    Trend,
)
from ..time_utils import today_in_zone, yesterday_in_zone, last_7_days_in_zone
from . import reporting_service, sales_service
from .api_client import ApiError, NetworkError, NotAuthenticatedError, UnauthorizedError
from .normalize_service import ReportError
from .session_service import SessionManager


logger = logging.getLogger(__name__)


class DashboardRefreshError(Exception):
    """One or more feeds of a refresh failed; nothing was published."""

    def __init__(self, message: str, failures: dict[str, Exception]):
        super().__init__(message)
        self.failures = failures

    @property
    def unauthorized(self) -> bool:
        return any(
            isinstance(exc, (UnauthorizedError, NotAuthenticatedError))
            for exc in self.failures.values()
        )


@dataclass
class DashboardSnapshot:
    generation: int
    date_from: str
    date_to: str
    rows: list[DailyFinancialRow]
    totals: FinancialTotals
    cartons: CartonsSummary
    cogs: CogsSummary
    trends: dict[str, Trend | None] = field(default_factory=dict)
    undated_op_ex: float = 0.0
    undated_cogs_purchases: float = 0.0

    def to_dict(self) -> dict:
        return {
            "generation": self.generation,
            "date_from": self.date_from,
            "date_to": self.date_to,
            "rows": [row.to_dict() for row in self.rows],
            "totals": self.totals.to_dict(),
            "cartons": self.cartons.to_dict(),
            "cogs": self.cogs.to_dict(),
            "trends": {
                name: trend.to_dict() if trend else None
                for name, trend in self.trends.items()
            },
            # Undated records are outside totals.net and totals.net_profit
            "undated": {
                "op_ex": self.undated_op_ex,
                "cogs_purchases": self.undated_cogs_purchases,
                "in_totals": False,
                "net_profit_with_undated": self.totals.net_profit - self.undated_op_ex,
            },
            "chart": reporting_service.daily_chart_series(self.rows),
            "pie": reporting_service.pie_totals(self.totals),
        }


def build_snapshot(
    generation: int,
    date_from: str,
    date_to: str,
    summary: list[SalesDay],
    expenses: list[ExpenseRecord],
    cartons: CartonsSummary,
    cogs: CogsSummary,
) -> DashboardSnapshot:
    rows = reporting_service.build_daily_rows(summary, expenses)
    totals = reporting_service.compute_totals(rows, cogs)

    # Expenses that could not be placed on a day still exist; report them apart
    undated_op_ex, undated_cogs_purchases = reporting_service.expense_totals(
        e for e in expenses if not e.date
    )

    return DashboardSnapshot(
        generation=generation,
        date_from=date_from,
        date_to=date_to,
        rows=rows,
        totals=totals,
        cartons=cartons,
        cogs=cogs,
        trends={
            name: reporting_service.trend_between_last_two_days(rows, name)
            for name in ("paid", "op_ex", "balance", "net")
        },
        undated_op_ex=undated_op_ex,
        undated_cogs_purchases=undated_cogs_purchases,
    )


class DashboardLoader:
    def __init__(self, session: SessionManager, *, tz_name: str, max_workers: int = 4):
        self.session = session
        self.tz_name = tz_name
        self.max_workers = max_workers
        self.current: DashboardSnapshot | None = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def latest_generation(self) -> int:
        with self._lock:
            return self._generation

    def _next_generation(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def refresh(self, date_from: str | None = None, date_to: str | None = None) -> DashboardSnapshot | None:
        """
        Fetch every feed for the range and publish one snapshot.

        Returns the published snapshot, or None when a newer refresh was
        issued while this one was in flight.

        Raises:
            DashboardRefreshError: any feed failed (only for the newest refresh)
        """
        generation = self._next_generation()
        date_from = date_from or today_in_zone(self.tz_name)
        date_to = date_to or date_from
        span = {"date_from": date_from, "date_to": date_to}

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="dashboard") as pool:
            futures = {
                "summary": pool.submit(sales_service.fetch_summary_by_date, self.session, self.tz_name, **span),
                "expenses": pool.submit(sales_service.list_expenses, self.session, self.tz_name, **span),
                "cartons": pool.submit(sales_service.fetch_cartons_by_size, self.session, **span),
                "cogs": pool.submit(sales_service.fetch_cogs_summary, self.session, **span),
            }
            results = {}
            failures: dict[str, Exception] = {}
            for name, future in futures.items():
                try:
                    results[name] = future.result()
                except (ApiError, NetworkError, NotAuthenticatedError, ReportError) as exc:
                    failures[name] = exc

        error = None
        if failures:
            detail = ", ".join(f"{name}: {exc}" for name, exc in failures.items())
            error = DashboardRefreshError(f"Failed to load dashboard ({detail})", failures)

        # A lost session clears the loader too; report the logout, not a supersede
        if error is not None and error.unauthorized:
            logger.warning("Dashboard refresh %s stopped: session is gone", generation)
            raise error

        if generation != self.latest_generation:
            logger.info("Discarding dashboard refresh %s (superseded)", generation)
            return None

        if error is not None:
            logger.warning("Dashboard refresh %s failed (%s)", generation, detail)
            raise error

        snapshot = build_snapshot(
            generation,
            date_from,
            date_to,
            results["summary"],
            results["expenses"],
            results["cartons"],
            results["cogs"],
        )
        with self._lock:
            if generation != self._generation:
                logger.info("Discarding dashboard refresh %s (superseded)", generation)
                return None
            self.current = snapshot
        return snapshot

    # ------ presets (business timezone) ------

    def refresh_today(self) -> DashboardSnapshot | None:
        day = today_in_zone(self.tz_name)
        return self.refresh(day, day)

    def refresh_yesterday(self) -> DashboardSnapshot | None:
        day = yesterday_in_zone(self.tz_name)
        return self.refresh(day, day)

    def refresh_last_7_days(self) -> DashboardSnapshot | None:
        start, end = last_7_days_in_zone(self.tz_name)
        return self.refresh(start, end)

    def clear(self) -> None:
        """Forget the published snapshot; refreshes already in flight will not publish."""
        with self._lock:
            self._generation += 1
            self.current = None
