from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..extensions import Base
from ..time_utils import utcnow, to_utc_z


class StorageEntry(Base):
    """
    One key/value pair of the shared client storage.

    WHY: Every tab/terminal of the back office on this machine reads the same
    rows, so a logout in one of them is visible to the others.
    """
    __tablename__ = "client_storage"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "value": self.value,
            "updated_at": to_utc_z(self.updated_at),
        }
