"""ScoreLogEntry model — append-only record of one point adjustment."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from itweek.db import Base


class ScoreLogEntry(Base):
    """Signed delta against a team. `delta` is the requested value, not the clamped effect."""

    __tablename__ = "score_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True
    )
    team_name: Mapped[str] = mapped_column(
        String(128), nullable=False, index=True, comment="Name snapshot at write time"
    )
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(512), nullable=False)
    actor: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    @property
    def is_merit(self) -> bool:
        return self.delta > 0

    def __repr__(self) -> str:
        return f"<ScoreLogEntry id={self.id} team={self.team_name!r} delta={self.delta:+d}>"
