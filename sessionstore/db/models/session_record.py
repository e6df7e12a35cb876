from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sessionstore.db.base import Base


class SessionRecord(Base):
    """Server-side session state, looked up by the identifier carried in the cookie."""

    __table_args__ = {"sqlite_autoincrement": True}

    # Base provides: id (sequence key), created_at, updated_at
    session_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    data: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<SessionRecord(id={self.id!r}, expires_at={self.expires_at!r})>"
