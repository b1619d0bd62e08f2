# Overview: Aggregates client-side types and re-exports them for imports.

from .storage import StorageEntry
from .auth import (
    PendingDeviceApproval,
    DeviceRequest,
    LoginResult,
    LOGIN_OK,
    LOGIN_PENDING,
    LOGIN_INVALID,
    LOGIN_VALIDATION,
    LOGIN_NETWORK,
)
from .reports import (
    SalesDay,
    ExpenseRecord,
    DailyFinancialRow,
    CartonSizeLine,
    CartonsSummary,
    CogsSizeLine,
    CogsSummary,
    FinancialTotals,
    Trend,
)

__all__ = [
    "StorageEntry",
    "PendingDeviceApproval",
    "DeviceRequest",
    "LoginResult",
    "LOGIN_OK",
    "LOGIN_PENDING",
    "LOGIN_INVALID",
    "LOGIN_VALIDATION",
    "LOGIN_NETWORK",
    "SalesDay",
    "ExpenseRecord",
    "DailyFinancialRow",
    "CartonSizeLine",
    "CartonsSummary",
    "CogsSizeLine",
    "CogsSummary",
    "FinancialTotals",
    "Trend",
]
