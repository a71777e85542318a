"""Scoreboard API — public read model, visibility toggles and reveal controls."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from itweek.celery_app import celery
from itweek.db import get_session
from itweek.scoreboard_service import (
    public_board,
    reset_reveal,
    reveal_winner,
    set_force_navigation,
    settings_snapshot,
    start_countdown,
    tick_countdown,
    update_settings,
)

router = APIRouter(prefix="/scoreboard", tags=["scoreboard"])
logger = logging.getLogger(__name__)


class SettingsPayload(BaseModel):
    hide_names: bool | None = None
    hide_scores: bool | None = None
    hide_bars: bool | None = None
    hide_top2: bool | None = None
    hide_rank_3: bool | None = None
    hide_rank_4: bool | None = None
    hide_all: bool | None = None
    force_navigation: str | None = None
    actor: str | None = None


class RevealPayload(BaseModel):
    countdown: int | None = None
    # Let the worker drive ticks and the final reveal.
    auto: bool = False
    actor: str | None = None


@router.get("")
async def get_scoreboard(db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    return await public_board(db)


@router.patch("/settings")
async def patch_settings(payload: SettingsPayload, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    fields = payload.model_dump(exclude_none=True, exclude={"actor", "force_navigation"})
    row = await update_settings(db, fields, actor=payload.actor)
    if "force_navigation" in payload.model_fields_set:
        row = await set_force_navigation(db, payload.force_navigation, actor=payload.actor)
    return settings_snapshot(row)


@router.post("/reveal/{step}")
async def post_reveal(step: str, payload: RevealPayload | None = None, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    """Drive the reveal: `start`, `tick`, `winner` or `reset`."""
    payload = payload or RevealPayload()
    if step == "start":
        row = await start_countdown(db, payload.countdown, actor=payload.actor)
        if payload.auto:
            celery.send_task(
                "itweek.workers.reveal.run_reveal_countdown",
                args=[int(row.countdown), payload.actor],
                queue="scoreboard",
            )
    elif step == "tick":
        row = await tick_countdown(db, payload.countdown, actor=payload.actor)
    elif step == "winner":
        row = await reveal_winner(db, actor=payload.actor)
    elif step == "reset":
        row = await reset_reveal(db, actor=payload.actor)
    else:
        raise HTTPException(status_code=404, detail=f"Unknown reveal step: {step}")
    logger.info(f"Scoreboard reveal step {step} applied")
    return settings_snapshot(row)
