"""Periodic probe comparing stored team scores with the score log."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from itweek.celery_app import celery
from itweek.db import async_session_factory
from itweek.score_service import score_drift

logger = logging.getLogger(__name__)


@celery.task(name="itweek.workers.drift.run_score_drift_probe")
def run_score_drift_probe() -> dict[str, Any]:
    return asyncio.run(_run_score_drift_probe())


async def _run_score_drift_probe() -> dict[str, Any]:
    async with async_session_factory() as session:
        report = await score_drift(session)
    drifted = [row for row in report if row["drift"] != 0]
    if drifted:
        logger.warning(
            "Score drift detected for %s team(s)",
            len(drifted),
            extra={"teams": {row["team_name"]: row["drift"] for row in drifted}},
        )
    else:
        logger.info("Score drift probe clean (%s teams)", len(report))
    return {"teams": len(report), "drifted": len(drifted)}
