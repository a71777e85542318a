"""Timed reveal sequence: countdown ticks followed by the winner reveal."""
from __future__ import annotations

import asyncio
import logging

from itweek.celery_app import celery
from itweek.config import settings
from itweek.db import async_session_factory
from itweek.errors import InvalidTransition
from itweek.models.scoreboard import RevealState
from itweek.reveal_engine import state_name
from itweek.scoreboard_service import get_settings, reveal_winner, tick_countdown

logger = logging.getLogger(__name__)


@celery.task(name="itweek.workers.reveal.run_reveal_countdown")
def run_reveal_countdown(start: int, actor: str | None = None) -> str:
    return asyncio.run(_run_reveal_countdown(start, actor))


async def _run_reveal_countdown(start: int, actor: str | None = None, *, tick_s: float | None = None) -> str:
    """Tick once per interval down to 0, then reveal.

    Stops quietly when an operator aborts or drives the reveal by hand in the
    meantime; returns the final reveal state.
    """
    interval = settings.COUNTDOWN_TICK_S if tick_s is None else tick_s
    async with async_session_factory() as session:
        value = int(start)
        while value > 0:
            await asyncio.sleep(interval)
            row = await get_settings(session)
            if state_name(row.reveal_state) != RevealState.COUNTDOWN.value or int(row.countdown) != value:
                logger.info("Reveal countdown interrupted at %s (state=%s)", value, row.reveal_state)
                return state_name(row.reveal_state)
            value -= 1
            await tick_countdown(session, value, actor=actor)

        await asyncio.sleep(interval)
        try:
            row = await reveal_winner(session, actor=actor)
        except InvalidTransition as exc:
            logger.info("Reveal skipped: %s", exc)
            row = await get_settings(session)
        logger.info("Reveal finished: winner=%s", row.winner_team_name)
        return state_name(row.reveal_state)
