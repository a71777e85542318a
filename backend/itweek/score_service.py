"""Score accumulation — merit/demerit deltas, the append-only score log and reconciliation.

A team's score is `BASE_SCORE + sum(log deltas)` when reconciled. Between
reconciliations the stored score may drift (zero clamping, manual overrides,
concurrent admins); `recalculate_all_totals` repairs it and `score_drift`
reports it without writing.

Log entries join to teams by `team_id`. Rows written before ids were kept
(`team_id IS NULL`) fall back to the `team_name` snapshot.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from itweek.audit import record_audit
from itweek.config import settings
from itweek.diffs import generate_score_delta
from itweek.errors import NotFoundError, ValidationError
from itweek.metrics import (
    SCORE_ADJUSTMENTS_TOTAL,
    SCORE_DRIFT_GAUGE,
    SCORE_LOG_DELETIONS_TOTAL,
    SCORE_RECONCILIATIONS_TOTAL,
)
from itweek.models.audit import AuditAction
from itweek.models.score_log import ScoreLogEntry
from itweek.models.scoring_event import ScoringEvent
from itweek.models.team import Team

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScoreChange:
    team_id: int
    team_name: str
    old_score: int
    new_score: int
    delta: int
    log_entry_id: int | None = None


def clamp_score(value: int) -> int:
    return max(0, int(value))


def _clamped_sum(delta: int):
    raw = Team.score + delta
    return case((raw < 0, 0), else_=raw)


async def _get_team(session: AsyncSession, team_id: int) -> Team:
    team = (
        await session.execute(
            select(Team).where(Team.id == team_id).execution_options(populate_existing=True)
        )
    ).scalar()
    if team is None:
        raise NotFoundError(f"Team {team_id} not found")
    return team


async def _current_score(session: AsyncSession, team_id: int) -> int:
    return int((await session.execute(select(Team.score).where(Team.id == team_id))).scalar_one())


async def apply_delta(
    session: AsyncSession,
    team_id: int,
    delta: int,
    reason: str,
    *,
    actor: str | None = None,
) -> ScoreChange:
    """Add `delta` to a team (floor 0) and append the log entry in one commit."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason (event name or manual text) is required")
    try:
        delta = int(delta)
    except (TypeError, ValueError):
        raise ValidationError(f"Delta must be an integer, got {delta!r}")
    if delta == 0:
        raise ValidationError("Delta must be non-zero")

    team = await _get_team(session, team_id)
    team_name = team.name
    old_score = await _current_score(session, team_id)

    await session.execute(
        update(Team)
        .where(Team.id == team_id)
        .values(score=_clamped_sum(delta))
        .execution_options(synchronize_session=False)
    )
    entry = ScoreLogEntry(team_id=team_id, team_name=team_name, delta=delta, reason=reason, actor=actor)
    session.add(entry)
    await session.flush()
    new_score = await _current_score(session, team_id)
    entry_id = entry.id
    await session.commit()

    kind = "merit" if delta > 0 else "demerit"
    SCORE_ADJUSTMENTS_TOTAL.labels(kind=kind).inc()
    await record_audit(
        session,
        action=AuditAction.APPLY_SCORE,
        actor=actor,
        target_name=team_name,
        details={"reason": reason, "log_entry_id": entry_id, **generate_score_delta(old_score, new_score, delta)},
    )
    logger.info("%s %+d for %s (%s): %s -> %s", kind, delta, team_name, reason, old_score, new_score)
    return ScoreChange(team_id, team_name, old_score, new_score, delta, entry_id)


async def _resolve_entry_team(session: AsyncSession, entry: ScoreLogEntry) -> Team | None:
    if entry.team_id is not None:
        team = (await session.execute(select(Team).where(Team.id == entry.team_id))).scalar()
        if team is not None:
            return team
    return (await session.execute(select(Team).where(Team.name == entry.team_name))).scalar()


async def delete_score_entry(
    session: AsyncSession,
    entry_id: int,
    *,
    actor: str | None = None,
) -> ScoreChange:
    """Remove a log entry and reverse its effect on the owning team, atomically."""
    entry = (await session.execute(select(ScoreLogEntry).where(ScoreLogEntry.id == entry_id))).scalar()
    if entry is None:
        raise NotFoundError(f"Score log entry {entry_id} not found")
    team = await _resolve_entry_team(session, entry)
    if team is None:
        raise NotFoundError(f"Team {entry.team_name!r} for score log entry {entry_id} not found")

    team_id, team_name = team.id, team.name
    delta, reason, created_at = entry.delta, entry.reason, entry.created_at
    old_score = await _current_score(session, team_id)

    await session.execute(
        update(Team)
        .where(Team.id == team_id)
        .values(score=_clamped_sum(-delta))
        .execution_options(synchronize_session=False)
    )
    await session.delete(entry)
    await session.flush()
    new_score = await _current_score(session, team_id)
    await session.commit()

    SCORE_LOG_DELETIONS_TOTAL.inc()
    await record_audit(
        session,
        action=AuditAction.DELETE_SCORE,
        actor=actor,
        target_name=team_name,
        details={
            "entry_id": entry_id,
            "removed_delta": delta,
            "reason": reason,
            "entry_created_at": created_at.isoformat() if created_at else None,
            "score_from": old_score,
            "score_to": new_score,
        },
    )
    logger.info("Deleted score entry %s (%+d) for %s: %s -> %s", entry_id, delta, team_name, old_score, new_score)
    return ScoreChange(team_id, team_name, old_score, new_score, -delta, entry_id)


def reconciled_totals(teams: list[Team], entries: list[ScoreLogEntry], base: int | None = None) -> dict[int, int]:
    """`{team_id: base + sum(deltas)}` clamped at 0. Pure function of the log."""
    base = settings.BASE_SCORE if base is None else base
    by_id: dict[int, int] = defaultdict(int)
    by_name: dict[str, int] = defaultdict(int)
    for entry in entries:
        if entry.team_id is not None:
            by_id[entry.team_id] += int(entry.delta)
        else:
            by_name[entry.team_name] += int(entry.delta)
    return {
        team.id: clamp_score(base + by_id.get(team.id, 0) + by_name.get(team.name, 0))
        for team in teams
    }


async def _teams_and_log(session: AsyncSession) -> tuple[list[Team], list[ScoreLogEntry]]:
    teams = list(
        (
            await session.execute(
                select(Team).order_by(Team.id.asc()).execution_options(populate_existing=True)
            )
        ).scalars().all()
    )
    entries = list((await session.execute(select(ScoreLogEntry))).scalars().all())
    return teams, entries


async def recalculate_all_totals(session: AsyncSession, *, actor: str | None = None) -> dict[str, int]:
    """Rewrite every team score from the log. Idempotent."""
    teams, entries = await _teams_and_log(session)
    totals = reconciled_totals(teams, entries)
    changed: dict[str, dict[str, int]] = {}
    for team in teams:
        final = totals[team.id]
        if team.score != final:
            changed[team.name] = {"from": team.score, "to": final}
        team.score = final
    result = {team.name: totals[team.id] for team in teams}
    await session.commit()

    SCORE_RECONCILIATIONS_TOTAL.labels(operation="recalculate").inc()
    await record_audit(
        session,
        action=AuditAction.RECALCULATE_SCORES,
        actor=actor,
        target_name="ALL TEAMS",
        details={"teams": len(teams), "entries": len(entries), "changed": changed},
    )
    logger.info("Recalculated %s team scores from %s log entries (%s changed)", len(teams), len(entries), len(changed))
    return result


async def reset_all_scores(session: AsyncSession, *, actor: str | None = None) -> int:
    """Set every team to the base score. The log is left untouched."""
    result = await session.execute(
        update(Team).values(score=settings.BASE_SCORE).execution_options(synchronize_session=False)
    )
    await session.commit()
    count = int(result.rowcount or 0)

    SCORE_RECONCILIATIONS_TOTAL.labels(operation="reset").inc()
    await record_audit(
        session,
        action=AuditAction.RESET_SCORES,
        actor=actor,
        target_name="ALL TEAMS",
        details={"teams": count, "score": settings.BASE_SCORE},
    )
    logger.info("Reset %s team scores to %s", count, settings.BASE_SCORE)
    return count


async def score_drift(session: AsyncSession) -> list[dict[str, Any]]:
    """Stored vs. reconciled score per team; also updates the drift gauge."""
    teams, entries = await _teams_and_log(session)
    totals = reconciled_totals(teams, entries)
    report = []
    for team in teams:
        drift = int(team.score) - totals[team.id]
        SCORE_DRIFT_GAUGE.labels(team=team.name).set(drift)
        report.append({"team_id": team.id, "team_name": team.name, "stored": team.score, "reconciled": totals[team.id], "drift": drift})
    return report


async def point_tally(session: AsyncSession) -> dict[str, Any]:
    """Per-team breakdown: base, per-event sums, `other` residual and the stored total.

    `other` is whatever the event columns do not explain (manual reasons,
    clamping, legacy points), so base + events + other always equals the total.
    """
    teams, entries = await _teams_and_log(session)
    events = list((await session.execute(select(ScoringEvent).order_by(ScoringEvent.name.asc()))).scalars().all())
    event_names = [e.name for e in events]
    event_set = set(event_names)
    base = settings.BASE_SCORE

    ranked = sorted(teams, key=lambda t: t.score, reverse=True)
    rows = []
    for team in ranked:
        mine = [
            e for e in entries
            if e.team_id == team.id or (e.team_id is None and e.team_name == team.name)
        ]
        per_event = {name: 0 for name in event_names}
        for e in mine:
            if e.reason in event_set:
                per_event[e.reason] += int(e.delta)
        events_sum = sum(per_event.values())
        rows.append(
            {
                "team_id": team.id,
                "team_name": team.name,
                "base": base,
                "events": per_event,
                "other": int(team.score) - base - events_sum,
                "total": int(team.score),
            }
        )
    return {
        "base": base,
        "events": event_names,
        "teams": rows,
        "highest_score": rows[0]["total"] if rows else 0,
    }


async def score_history(
    session: AsyncSession,
    *,
    team: str | None = None,
    kind: str = "all",
    search: str | None = None,
    limit: int = 500,
) -> dict[str, Any]:
    """Newest-first score log with merit / demerit / net totals over the filtered rows."""
    stmt = select(ScoreLogEntry).order_by(ScoreLogEntry.created_at.desc(), ScoreLogEntry.id.desc())
    if team and team != "all":
        stmt = stmt.where(ScoreLogEntry.team_name == team)
    if kind == "merit":
        stmt = stmt.where(ScoreLogEntry.delta > 0)
    elif kind == "demerit":
        stmt = stmt.where(ScoreLogEntry.delta <= 0)
    stmt = stmt.limit(max(1, min(limit, 2000)))
    entries = list((await session.execute(stmt)).scalars().all())

    if search:
        needle = search.strip().lower()
        entries = [
            e for e in entries
            if needle in e.team_name.lower() or needle in (e.reason or "").lower()
        ]

    merit = sum(e.delta for e in entries if e.delta > 0)
    demerit = sum(e.delta for e in entries if e.delta < 0)
    return {
        "items": [
            {
                "id": e.id,
                "team_id": e.team_id,
                "team_name": e.team_name,
                "delta": e.delta,
                "reason": e.reason,
                "actor": e.actor,
                "created_at": e.created_at,
            }
            for e in entries
        ],
        "totals": {"merit": merit, "demerit": demerit, "net": merit + demerit},
    }
