"""Scoreboard settings persistence and reveal transitions.

Centralises updates to the `scoreboard_settings` singleton. Viewers only read
it; every write goes through here so transitions are validated and audited.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from itweek.audit import record_audit
from itweek.config import settings as app_settings
from itweek.diffs import generate_field_changes
from itweek.errors import ValidationError
from itweek.metrics import REVEAL_TRANSITIONS_TOTAL
from itweek.models.audit import AuditAction
from itweek.models.scoreboard import SETTINGS_ROW_ID, RevealState, ScoreboardSettings
from itweek.models.team import Team
from itweek.reveal_engine import (
    count_up_frames,
    redact_board,
    select_winner,
    state_name,
    validate_transition,
)

logger = logging.getLogger(__name__)

TOGGLE_FIELDS = (
    "hide_names",
    "hide_scores",
    "hide_bars",
    "hide_top2",
    "hide_rank_3",
    "hide_rank_4",
    "hide_all",
)


def settings_snapshot(row: ScoreboardSettings) -> dict[str, Any]:
    data: dict[str, Any] = {field: bool(getattr(row, field)) for field in TOGGLE_FIELDS}
    data.update(
        reveal_state=state_name(row.reveal_state),
        countdown=int(row.countdown or 0),
        force_navigation=row.force_navigation,
        updated_at=row.updated_at,
    )
    return data


async def get_settings(session: AsyncSession) -> ScoreboardSettings:
    """Load the singleton, creating it on first use."""
    stmt = (
        select(ScoreboardSettings)
        .where(ScoreboardSettings.id == SETTINGS_ROW_ID)
        .execution_options(populate_existing=True)
    )
    row = (await session.execute(stmt)).scalar()
    if row is not None:
        return row
    session.add(ScoreboardSettings(id=SETTINGS_ROW_ID))
    try:
        await session.commit()
    except IntegrityError:
        # Another writer created it first.
        await session.rollback()
    return (await session.execute(stmt)).scalar_one()


async def update_settings(
    session: AsyncSession,
    toggles: Mapping[str, Any],
    *,
    actor: str | None = None,
) -> ScoreboardSettings:
    """Apply visibility toggles. Unknown keys are rejected before any write."""
    unknown = sorted(set(toggles) - set(TOGGLE_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown scoreboard settings: {', '.join(unknown)}")

    row = await get_settings(session)
    before = {field: bool(getattr(row, field)) for field in TOGGLE_FIELDS}
    after = {field: bool(value) for field, value in toggles.items() if value is not None}
    changes = generate_field_changes(before, after)
    if not changes:
        return row
    for field, value in after.items():
        setattr(row, field, value)
    await session.commit()

    await record_audit(
        session,
        action=AuditAction.SCOREBOARD_SETTINGS,
        actor=actor,
        target_name="scoreboard",
        details=changes,
    )
    return row


async def set_force_navigation(
    session: AsyncSession,
    target: str | None,
    *,
    actor: str | None = None,
) -> ScoreboardSettings:
    row = await get_settings(session)
    before = row.force_navigation
    row.force_navigation = (target or "").strip() or None
    await session.commit()
    await record_audit(
        session,
        action=AuditAction.SCOREBOARD_SETTINGS,
        actor=actor,
        target_name="scoreboard",
        details={"force_navigation": {"old": before, "new": row.force_navigation}},
    )
    return row


async def _apply_transition(
    session: AsyncSession,
    row: ScoreboardSettings,
    target: RevealState,
    *,
    countdown: int | None = None,
    actor: str | None = None,
    audit: bool = True,
) -> ScoreboardSettings:
    old_state = state_name(row.reveal_state)
    new_state = validate_transition(
        row.reveal_state,
        target,
        current_countdown=int(row.countdown or 0),
        new_countdown=countdown,
    )
    row.reveal_state = new_state.value
    if new_state == RevealState.COUNTDOWN:
        row.countdown = int(countdown)
    elif new_state == RevealState.IDLE:
        row.countdown = 0
        row.winner_team_id = None
        row.winner_team_name = None
        row.winner_score = None
    await session.commit()

    REVEAL_TRANSITIONS_TOTAL.labels(from_state=old_state, to_state=new_state.value).inc()
    if audit:
        await record_audit(
            session,
            action=AuditAction.REVEAL_TRANSITION,
            actor=actor,
            target_name="scoreboard",
            details={
                "from": old_state,
                "to": new_state.value,
                "countdown": row.countdown,
                "winner_team_name": row.winner_team_name,
                "winner_score": row.winner_score,
            },
        )
    logger.info("Scoreboard reveal %s -> %s", old_state, new_state.value)
    return row


async def start_countdown(
    session: AsyncSession,
    start: int | None = None,
    *,
    actor: str | None = None,
) -> ScoreboardSettings:
    value = app_settings.DEFAULT_COUNTDOWN if start is None else int(start)
    row = await get_settings(session)
    return await _apply_transition(session, row, RevealState.COUNTDOWN, countdown=value, actor=actor)


async def tick_countdown(
    session: AsyncSession,
    value: int | None = None,
    *,
    actor: str | None = None,
) -> ScoreboardSettings:
    """Move the countdown down (by one when `value` is omitted). Ticks are not audited."""
    row = await get_settings(session)
    new_value = int(row.countdown or 0) - 1 if value is None else int(value)
    return await _apply_transition(
        session, row, RevealState.COUNTDOWN, countdown=new_value, actor=actor, audit=False
    )


async def ranked_teams(session: AsyncSession) -> list[Team]:
    """Teams by score descending; equal scores keep id order."""
    return list(
        (
            await session.execute(
                select(Team)
                .order_by(Team.score.desc(), Team.id.asc())
                .execution_options(populate_existing=True)
            )
        ).scalars().all()
    )


async def reveal_winner(session: AsyncSession, *, actor: str | None = None) -> ScoreboardSettings:
    """countdown → winner. The winner is snapshotted here and not re-derived afterwards."""
    row = await get_settings(session)
    validate_transition(row.reveal_state, RevealState.WINNER)
    winner = select_winner(await ranked_teams(session))
    row.winner_team_id = winner.id if winner else None
    row.winner_team_name = winner.name if winner else None
    row.winner_score = int(winner.score) if winner else None
    return await _apply_transition(session, row, RevealState.WINNER, actor=actor)


async def reset_reveal(session: AsyncSession, *, actor: str | None = None) -> ScoreboardSettings:
    row = await get_settings(session)
    return await _apply_transition(session, row, RevealState.IDLE, actor=actor)


def _winner_payload(row: ScoreboardSettings) -> dict[str, Any] | None:
    # hide_all blanks the whole board, the winner banner included.
    if row.hide_all or row.winner_team_id is None or state_name(row.reveal_state) != RevealState.WINNER.value:
        return None
    score = int(row.winner_score or 0)
    return {
        "team_id": row.winner_team_id,
        "name": row.winner_team_name,
        "score": score,
        "count_up": count_up_frames(score),
    }


async def public_board(session: AsyncSession) -> dict[str, Any]:
    """Read model polled / streamed to every public viewer."""
    row = await get_settings(session)
    teams = await ranked_teams(session)
    return {
        "settings": settings_snapshot(row),
        "teams": redact_board(teams, row),
        "winner": _winner_payload(row),
        "poll_interval_s": app_settings.SCOREBOARD_POLL_INTERVAL_S,
    }
