# Overview: SQLAlchemy engine/base for the shared client storage, plus the per-app client context.

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from flask import current_app
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

if TYPE_CHECKING:
    from .services.api_client import ApiClient
    from .services.dashboard_service import DashboardLoader
    from .services.session_service import SessionManager, SessionHeartbeat
    from .services.storage_service import ClientStorage


EXTENSION_KEY = "backoffice"


class Base(DeclarativeBase):
    pass


def make_engine(url: str) -> Engine:
    """
    Build the engine behind the shared storage.

    SQLite is touched from request threads and the expiry timer thread, so
    same-thread checking is off. An in-memory database must share a single
    connection or every checkout would see an empty schema.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, future=True)

    kwargs = {"connect_args": {"check_same_thread": False}, "future": True}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


@dataclass
class ClientContext:
    """Everything one terminal owns: storage handle, API client, session, dashboard."""
    storage: "ClientStorage"
    api: "ApiClient"
    session: "SessionManager"
    dashboard: "DashboardLoader"
    heartbeat: "SessionHeartbeat | None" = None

    def close(self) -> None:
        if self.heartbeat is not None:
            self.heartbeat.stop()
        self.session.close()
        self.api.close()
        self.storage.dispose()


def get_context() -> ClientContext:
    return current_app.extensions[EXTENSION_KEY]
