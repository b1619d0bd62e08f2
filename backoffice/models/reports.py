from __future__ import annotations

from dataclasses import dataclass, field, asdict


@dataclass
class SalesDay:
    """One day of the sales summary after normalization."""
    date: str
    gross: float = 0.0
    paid: float = 0.0
    balance: float = 0.0
    count: int = 0


@dataclass
class ExpenseRecord:
    """
    Normalized expense entry.

    `date` is None when neither an explicit date nor a usable timestamp was
    supplied; such records cannot be placed on the daily timeline.
    """
    amount: float
    category: str
    date: str | None
    description: str | None = None
    id: int | None = None

    @property
    def is_cogs_purchase(self) -> bool:
        return self.category == "cogs"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DailyFinancialRow:
    """
    Derived per-day view. Recomputed on every refresh, never patched.

    `cogs_purchases` is money spent restocking in the day; it is not the cost
    basis of what was sold (see CogsSummary.cogs_of_sold_goods).
    """
    date: str
    gross: float = 0.0
    paid: float = 0.0
    balance: float = 0.0
    op_ex: float = 0.0
    cogs_purchases: float = 0.0
    count: int = 0

    @property
    def net(self) -> float:
        return self.paid - (self.op_ex + self.cogs_purchases)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["net"] = self.net
        return data


@dataclass
class CartonSizeLine:
    bottle_size_id: int | None
    label: str
    cartons: float
    revenue: float


@dataclass
class CartonsSummary:
    cartons: float = 0.0
    revenue: float = 0.0
    by_size: list[CartonSizeLine] = field(default_factory=list)
    date_from: str | None = None
    date_to: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CogsSizeLine:
    bottle_size_id: int | None
    label: str
    cartons: float
    sales: float
    cogs: float
    gross: float
    gm: float


@dataclass
class CogsSummary:
    """
    COGS by sold item for a range.

    `sales` is revenue from items carrying a cost basis, `cogs_of_sold_goods`
    the cost of exactly those units.
    """
    sales: float = 0.0
    cogs_of_sold_goods: float = 0.0
    gross: float = 0.0
    gm: float = 0.0
    breakdown_cogs_sales: float = 0.0
    breakdown_purchases: float = 0.0
    by_size: list[CogsSizeLine] = field(default_factory=list)
    date_from: str | None = None
    date_to: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FinancialTotals:
    gross: float = 0.0
    paid: float = 0.0
    balance: float = 0.0
    op_ex: float = 0.0
    cogs_purchases: float = 0.0
    count: int = 0
    net: float = 0.0
    cogs_sales: float = 0.0
    cogs_of_sold_goods: float = 0.0
    gross_profit: float = 0.0
    net_profit: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Trend:
    """Change between the last two days. `pct` is None when the baseline is zero."""
    delta: float
    pct: float | None

    def to_dict(self) -> dict:
        return {"delta": self.delta, "pct": self.pct}
