# backoffice/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Unset -> same-origin "/api" prefix, resolved against API_ORIGIN
    API_BASE_URL = os.environ.get("API_BASE_URL") or "/api"
    API_ORIGIN = os.environ.get("API_ORIGIN", "http://localhost:5000")

    # Shared client storage (one file for every tab/terminal on this machine)
    SESSION_STORAGE_URL = os.environ.get(
        "SESSION_STORAGE_URL",
        "sqlite:///backoffice_session.sqlite3",
    )

    # Idle re-validation of the session; 0 disables the heartbeat
    SESSION_HEARTBEAT_SECONDS = float(os.environ.get("SESSION_HEARTBEAT_SECONDS", "0") or 0)
    SESSION_EXPIRY_SKEW_MS = int(os.environ.get("SESSION_EXPIRY_SKEW_MS", "500"))

    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "Africa/Nairobi")

    # Deprecated: treat any 401/403 whose message mentions "device" as pending approval
    DEVICE_MESSAGE_FALLBACK = _env_flag("DEVICE_MESSAGE_FALLBACK")

    DASHBOARD_MAX_WORKERS = int(os.environ.get("DASHBOARD_MAX_WORKERS", "4"))
