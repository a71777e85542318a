"""Score API — merit/demerit application, log maintenance and reconciliation."""
from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from itweek.config import settings
from itweek.db import get_session
from itweek.score_service import (
    apply_delta,
    delete_score_entry,
    point_tally,
    recalculate_all_totals,
    reset_all_scores,
    score_drift,
    score_history,
)

router = APIRouter(tags=["scores"])
logger = logging.getLogger(__name__)


class ActorPayload(BaseModel):
    actor: str | None = None


class ScoreDeltaPayload(ActorPayload):
    delta: int = Field(default_factory=lambda: settings.DEFAULT_SCORE_DELTA)
    reason: str


@router.post("/teams/{team_id}/score")
async def post_score(team_id: int, payload: ScoreDeltaPayload, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    """Positive delta is a merit, negative a demerit. The team never drops below 0."""
    change = await apply_delta(db, team_id, payload.delta, payload.reason, actor=payload.actor)
    return asdict(change)


@router.delete("/score-logs/{entry_id}")
async def delete_score_log(entry_id: int, actor: str | None = None, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    change = await delete_score_entry(db, entry_id, actor=actor)
    return asdict(change)


@router.post("/scores/recalculate")
async def post_recalculate(payload: ActorPayload | None = None, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    totals = await recalculate_all_totals(db, actor=payload.actor if payload else None)
    return {"status": "recalculated", "teams": totals}


@router.post("/scores/reset")
async def post_reset(payload: ActorPayload | None = None, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    count = await reset_all_scores(db, actor=payload.actor if payload else None)
    return {"status": "reset", "teams": count, "score": settings.BASE_SCORE}


@router.get("/score-logs")
async def get_score_logs(
    team: str | None = None,
    kind: str = "all",
    search: str | None = None,
    limit: int = 500,
    db: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    return await score_history(db, team=team, kind=kind, search=search, limit=limit)


@router.get("/scores/tally")
async def get_tally(db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    return await point_tally(db)


@router.get("/scores/drift")
async def get_drift(db: AsyncSession = Depends(get_session)) -> list[dict[str, Any]]:
    """Stored vs. reconciled score per team, without writing anything."""
    return await score_drift(db)
