"""ScoreboardSettings model — singleton row shared by every public viewer."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from itweek.db import Base

SETTINGS_ROW_ID = 1


class RevealState(str, enum.Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    WINNER = "winner"


class ScoreboardSettings(Base):
    """Visibility toggles plus reveal sequencing. Always addressed by id 1."""

    __tablename__ = "scoreboard_settings"
    # Fetch server-side updated_at on flush; lazy loads are not available under asyncio.
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=SETTINGS_ROW_ID)
    hide_names: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hide_scores: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hide_bars: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hide_top2: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hide_rank_3: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hide_rank_4: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hide_all: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reveal_state: Mapped[str] = mapped_column(
        String(16), default=RevealState.IDLE.value, nullable=False
    )
    countdown: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    force_navigation: Mapped[str | None] = mapped_column(String(128), nullable=True)
    winner_team_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    winner_team_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    winner_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<ScoreboardSettings state={self.reveal_state} countdown={self.countdown}>"
