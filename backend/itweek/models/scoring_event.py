"""ScoringEvent model — catalog of named activities used as score reasons."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from itweek.db import Base


class ScoringEvent(Base):
    __tablename__ = "scoring_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="GENERAL")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<ScoringEvent id={self.id} name={self.name!r}>"
