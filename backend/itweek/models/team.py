"""Team model — competing group with a running score."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from itweek.config import settings
from itweek.db import Base


class Team(Base):
    """Team with a score clamped at zero. Member count is derived, never stored."""

    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    score: Mapped[int] = mapped_column(
        Integer, nullable=False, default=lambda: settings.BASE_SCORE, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Team id={self.id} name={self.name!r} score={self.score}>"
