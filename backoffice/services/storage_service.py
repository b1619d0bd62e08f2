# Overview: Shared key/value client storage (SQLAlchemy) with change notifications between tabs.

"""
Client Storage Service

WHY: The session must be visible to every tab/terminal of the back office on
this machine. Rows live in one SQL table; in-process subscribers get a
StorageEvent when another origin changes a key, and other processes see the
change on their next read.

Events are not delivered back to the origin that made the change.

Reads and writes are serialized on one lock: an in-memory database shares a
single connection between the request, timer and dashboard threads.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from ..extensions import Base, make_engine
from ..models import StorageEntry


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageEvent:
    key: str
    old_value: str | None
    new_value: str | None
    origin: object | None = None

    @property
    def removed(self) -> bool:
        return self.new_value is None


StorageListener = Callable[[StorageEvent], None]


class ClientStorage:
    def __init__(self, engine: Engine):
        self.engine = engine
        Base.metadata.create_all(engine)
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)
        self._listeners: list[tuple[StorageListener, object | None]] = []
        self._lock = threading.RLock()

    @classmethod
    def from_url(cls, url: str) -> "ClientStorage":
        return cls(make_engine(url))

    # ------ reads/writes ------

    def get_item(self, key: str) -> str | None:
        with self._lock:
            with self._sessions() as session:
                entry = session.get(StorageEntry, key)
                return entry.value if entry else None

    def set_item(self, key: str, value: str, *, origin: object | None = None) -> None:
        with self._lock:
            with self._sessions() as session:
                entry = session.get(StorageEntry, key)
                old_value = entry.value if entry else None
                if entry is None:
                    session.add(StorageEntry(key=key, value=value))
                else:
                    entry.value = value
                session.commit()
        # Listeners run outside the lock; they take their own locks
        if old_value != value:
            self._notify(StorageEvent(key, old_value, value, origin))

    def remove_item(self, key: str, *, origin: object | None = None) -> None:
        with self._lock:
            with self._sessions() as session:
                entry = session.get(StorageEntry, key)
                if entry is None:
                    return
                old_value = entry.value
                session.delete(entry)
                session.commit()
        self._notify(StorageEvent(key, old_value, None, origin))

    def keys(self) -> list[str]:
        with self._lock:
            with self._sessions() as session:
                return list(session.scalars(select(StorageEntry.key).order_by(StorageEntry.key)))

    # ------ change notifications ------

    def subscribe(self, listener: StorageListener, *, origin: object | None = None) -> None:
        """Register `listener`; events caused by `origin` itself are not delivered to it."""
        with self._lock:
            self._listeners.append((listener, origin))

    def unsubscribe(self, listener: StorageListener) -> None:
        with self._lock:
            self._listeners = [(fn, o) for fn, o in self._listeners if fn != listener]

    def _notify(self, event: StorageEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener, listener_origin in listeners:
            if event.origin is not None and listener_origin is event.origin:
                continue
            try:
                listener(event)
            except Exception:
                logger.exception("Storage listener failed for key %s", event.key)

    def dispose(self) -> None:
        self.engine.dispose()
