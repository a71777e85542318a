"""Logbook models — general and staff attendance sessions.

Both tables share one shape. A partial unique index on `person_id` where
`time_out IS NULL` allows at most one open session per person.
"""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, func, text
from sqlalchemy.orm import Mapped, mapped_column

from itweek.db import Base


class LogbookKind(str, enum.Enum):
    GENERAL = "general"
    STAFF = "staff"


def _open_session_index(table: str) -> Index:
    return Index(
        f"uq_{table}_open_session",
        "person_id",
        unique=True,
        postgresql_where=text("time_out IS NULL"),
        sqlite_where=text("time_out IS NULL"),
    )


class _LogbookColumns:
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    person_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True
    )
    time_in: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    time_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_open(self) -> bool:
        return self.time_out is None


class LogbookEntry(_LogbookColumns, Base):
    """General participant attendance session."""

    __tablename__ = "logbook"
    __table_args__ = (_open_session_index("logbook"),)

    def __repr__(self) -> str:
        return f"<LogbookEntry id={self.id} person={self.person_id} open={self.is_open}>"


class StaffLogbookEntry(_LogbookColumns, Base):
    """Leader / facilitator / executive / officer attendance session."""

    __tablename__ = "staff_logbook"
    __table_args__ = (_open_session_index("staff_logbook"),)

    def __repr__(self) -> str:
        return f"<StaffLogbookEntry id={self.id} person={self.person_id} open={self.is_open}>"


LOGBOOK_MODELS: dict[LogbookKind, type[LogbookEntry] | type[StaffLogbookEntry]] = {
    LogbookKind.GENERAL: LogbookEntry,
    LogbookKind.STAFF: StaffLogbookEntry,
}
