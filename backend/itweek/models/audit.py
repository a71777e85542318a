"""AuditLogEntry model — immutable record of administrative and self-service mutations."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from itweek.db import Base, JSONType


class AuditAction(str, enum.Enum):
    REGISTER = "REGISTER"
    UPDATE_USER = "UPDATE_USER"
    DELETE_USER = "DELETE_USER"
    SELF_EDIT = "SELF_EDIT"
    SCAN_IN = "SCAN_IN"
    SCAN_OUT = "SCAN_OUT"
    BATCH_SCAN = "BATCH_SCAN"
    BATCH_SCAN_OUT = "BATCH_SCAN_OUT"
    APPLY_SCORE = "APPLY_SCORE"
    DELETE_SCORE = "DELETE_SCORE"
    RECALCULATE_SCORES = "RECALCULATE_SCORES"
    RESET_SCORES = "RESET_SCORES"
    CREATE_TEAM = "CREATE_TEAM"
    DELETE_TEAM = "DELETE_TEAM"
    CREATE_EVENT = "CREATE_EVENT"
    DELETE_EVENT = "DELETE_EVENT"
    SCOREBOARD_SETTINGS = "SCOREBOARD_SETTINGS"
    REVEAL_TRANSITION = "REVEAL_TRANSITION"


class AuditLogEntry(Base):
    """One audited mutation. `details` is a before/after diff or a free-form payload."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor: Mapped[str] = mapped_column(String(256), nullable=False, default="system")
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    target_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    person_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("people.id", ondelete="SET NULL"), nullable=True, index=True
    )
    details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<AuditLogEntry id={self.id} action={self.action} actor={self.actor!r}>"
