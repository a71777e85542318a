"""Attendance ledger — check-in / check-out against the general and staff logbooks.

A scan resolves the badge to a person, routes by role to one logbook and
applies the open-session rule. Outcomes are classified values, not exceptions,
so a batch can keep going past unknown badges and duplicates.

The open-session guard does not rely on check-then-act alone:
- check-in inserts against a partial unique index (`time_out IS NULL`), so a
  concurrent second insert fails and is reported as `duplicate`;
- check-out is a conditional UPDATE that only matches a still-open row.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from itweek.audit import record_audit
from itweek.errors import NotFoundError, ValidationError
from itweek.metrics import SCANS_TOTAL
from itweek.models.audit import AuditAction
from itweek.models.logbook import LOGBOOK_MODELS, LogbookKind
from itweek.models.person import STAFF_ROLES, Person, PersonRole

logger = logging.getLogger(__name__)


class ScanAction(str, enum.Enum):
    CHECK_IN = "check-in"
    CHECK_OUT = "check-out"


class ScanStatus(str, enum.Enum):
    OK = "ok"
    MISSING = "missing"
    DUPLICATE = "duplicate"
    NOT_CHECKED_IN = "not_checked_in"
    NO_ACTIVE_SESSION = "no_active_session"
    ERROR = "error"


_ACTION_ALIASES = {
    "check-in": ScanAction.CHECK_IN,
    "time-in": ScanAction.CHECK_IN,
    "in": ScanAction.CHECK_IN,
    "check-out": ScanAction.CHECK_OUT,
    "time-out": ScanAction.CHECK_OUT,
    "out": ScanAction.CHECK_OUT,
}

_MESSAGES = {
    (ScanAction.CHECK_IN, ScanStatus.OK): "Checked In ✓",
    (ScanAction.CHECK_IN, ScanStatus.DUPLICATE): "Already checked in!",
    (ScanAction.CHECK_OUT, ScanStatus.OK): "Checked Out ✓",
    (ScanAction.CHECK_OUT, ScanStatus.NOT_CHECKED_IN): "Already checked out. No active check-in found.",
    (ScanAction.CHECK_OUT, ScanStatus.NO_ACTIVE_SESSION): "No active check-in found.",
}

_AUDIT_ACTIONS = {
    (ScanAction.CHECK_IN, False): AuditAction.SCAN_IN,
    (ScanAction.CHECK_OUT, False): AuditAction.SCAN_OUT,
    (ScanAction.CHECK_IN, True): AuditAction.BATCH_SCAN,
    (ScanAction.CHECK_OUT, True): AuditAction.BATCH_SCAN_OUT,
}


@dataclass(slots=True)
class ScanOutcome:
    status: ScanStatus
    badge_id: str
    action: ScanAction
    person_id: int | None = None
    full_name: str | None = None
    logbook: LogbookKind | None = None
    message: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "badge_id": self.badge_id,
            "action": self.action.value,
            "person_id": self.person_id,
            "full_name": self.full_name,
            "logbook": self.logbook.value if self.logbook else None,
            "message": self.message,
        }


def parse_action(raw: ScanAction | str) -> ScanAction:
    if isinstance(raw, ScanAction):
        return raw
    action = _ACTION_ALIASES.get(str(raw or "").strip().lower())
    if action is None:
        raise ValidationError(f"Unknown scan action: {raw!r}")
    return action


def is_staff(role: PersonRole | str | None) -> bool:
    try:
        return PersonRole(role) in STAFF_ROLES
    except ValueError:
        return False


def logbook_for_role(role: PersonRole | str | None) -> LogbookKind:
    return LogbookKind.STAFF if is_staff(role) else LogbookKind.GENERAL


def format_duration(time_in: datetime | None, time_out: datetime | None) -> str | None:
    """`"1h 5m"` / `"12m"`; `None` while the session is still open."""
    if time_in is None or time_out is None:
        return None
    minutes_total = int((_as_utc(time_out) - _as_utc(time_in)).total_seconds() // 60)
    hours, minutes = divmod(max(0, minutes_total), 60)
    return f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def find_person_by_badge(session: AsyncSession, badge_id: str) -> Person | None:
    badge = (badge_id or "").strip()
    if not badge:
        return None
    return (
        await session.execute(select(Person).where(Person.badge_uuid == badge).limit(1))
    ).scalar()


async def _has_session(session: AsyncSession, model, person_id: int, *, open_: bool) -> bool:
    condition = model.time_out.is_(None) if open_ else model.time_out.is_not(None)
    found = (
        await session.execute(
            select(model.id).where(model.person_id == person_id, condition).limit(1)
        )
    ).scalar()
    return found is not None


async def _check_in(session: AsyncSession, model, person: Person, now: datetime) -> ScanStatus:
    if await _has_session(session, model, person.id, open_=True):
        return ScanStatus.DUPLICATE
    session.add(model(person_id=person.id, time_in=now, time_out=None))
    try:
        await session.commit()
    except IntegrityError:
        # Lost the race against another scanner; the index kept one open row.
        await session.rollback()
        return ScanStatus.DUPLICATE
    return ScanStatus.OK


async def _check_out(session: AsyncSession, model, person: Person, now: datetime) -> ScanStatus:
    open_id = (
        await session.execute(
            select(model.id)
            .where(model.person_id == person.id, model.time_out.is_(None))
            .order_by(model.time_in.desc(), model.id.desc())
            .limit(1)
        )
    ).scalar()
    if open_id is None:
        if await _has_session(session, model, person.id, open_=False):
            return ScanStatus.NOT_CHECKED_IN
        return ScanStatus.NO_ACTIVE_SESSION

    result = await session.execute(
        update(model)
        .where(model.id == open_id, model.time_out.is_(None))
        .values(time_out=now)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        await session.rollback()
        return ScanStatus.NOT_CHECKED_IN
    await session.commit()
    return ScanStatus.OK


async def process_scan(
    session: AsyncSession,
    badge_id: str,
    action: ScanAction | str,
    *,
    actor: str | None = None,
    batch: bool = False,
) -> ScanOutcome:
    """Apply one scan and commit. Every `ok` also appends an audit row."""
    scan_action = parse_action(action)
    badge = (badge_id or "").strip()
    source = "batch" if batch else "interactive"

    person = await find_person_by_badge(session, badge)
    if person is None:
        SCANS_TOTAL.labels(logbook="none", action=scan_action.value, outcome=ScanStatus.MISSING.value, source=source).inc()
        return ScanOutcome(
            status=ScanStatus.MISSING,
            badge_id=badge,
            action=scan_action,
            message="Person not found.",
        )

    # Keep plain values: a rollback inside check-in/out expires ORM state.
    person_id, full_name = person.id, person.full_name
    kind = logbook_for_role(person.role)
    model = LOGBOOK_MODELS[kind]
    now = datetime.now(timezone.utc)

    if scan_action == ScanAction.CHECK_IN:
        status = await _check_in(session, model, person, now)
    else:
        status = await _check_out(session, model, person, now)

    SCANS_TOTAL.labels(logbook=kind.value, action=scan_action.value, outcome=status.value, source=source).inc()

    if status == ScanStatus.OK:
        details: dict[str, Any] = {"mode": scan_action.value, "uuid": badge, "logbook": kind.value}
        await record_audit(
            session,
            action=_AUDIT_ACTIONS[(scan_action, batch)],
            actor=actor,
            target_name=full_name,
            person_id=person_id,
            details=details,
        )
        logger.info("%s %s (%s logbook)", full_name, scan_action.value, kind.value)

    return ScanOutcome(
        status=status,
        badge_id=badge,
        action=scan_action,
        person_id=person_id,
        full_name=full_name,
        logbook=kind,
        message=_MESSAGES.get((scan_action, status)),
    )


async def process_scan_batch(
    session: AsyncSession,
    badge_ids: Iterable[Any],
    mode: ScanAction | str,
    *,
    actor: str | None = None,
) -> list[ScanOutcome]:
    """Sequential scans, one outcome per non-blank id. A failing id never aborts the batch."""
    scan_action = parse_action(mode)
    outcomes: list[ScanOutcome] = []
    for raw in badge_ids:
        badge = str(raw or "").strip()
        if not badge:
            continue
        try:
            outcome = await process_scan(session, badge, scan_action, actor=actor, batch=True)
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.warning("Batch scan failed for %s: %s", badge, exc)
            SCANS_TOTAL.labels(logbook="none", action=scan_action.value, outcome=ScanStatus.ERROR.value, source="batch").inc()
            outcome = ScanOutcome(
                status=ScanStatus.ERROR,
                badge_id=badge,
                action=scan_action,
                message=str(exc),
            )
        outcomes.append(outcome)
    return outcomes


async def list_logbook(
    session: AsyncSession,
    *,
    kind: LogbookKind = LogbookKind.GENERAL,
    status_filter: str = "all",
    limit: int = 100,
) -> list[dict[str, Any]]:
    """Latest sessions with the person's name/team/badge, newest first."""
    model = LOGBOOK_MODELS[kind]
    stmt = (
        select(model, Person)
        .join(Person, Person.id == model.person_id)
        .order_by(model.time_in.desc(), model.id.desc())
        .limit(max(1, min(limit, 500)))
    )
    if status_filter == "in":
        stmt = stmt.where(model.time_out.is_(None))
    elif status_filter == "out":
        stmt = stmt.where(model.time_out.is_not(None))

    rows = (await session.execute(stmt)).all()
    return [
        {
            "id": entry.id,
            "person_id": person.id,
            "full_name": person.full_name,
            "team_name": person.team_name,
            "badge_uuid": person.badge_uuid,
            "role": person.role,
            "time_in": entry.time_in,
            "time_out": entry.time_out,
            "duration": format_duration(entry.time_in, entry.time_out),
        }
        for entry, person in rows
    ]


def logbook_stats(rows: list[dict[str, Any]], *, today: datetime | None = None) -> dict[str, int]:
    day = (today or datetime.now(timezone.utc)).date()
    return {
        "total": len(rows),
        "currently_in": sum(1 for r in rows if r["time_out"] is None),
        "checked_out": sum(1 for r in rows if r["time_out"] is not None),
        "today_check_ins": sum(
            1 for r in rows if r["time_in"] is not None and _as_utc(r["time_in"]).date() == day
        ),
    }


async def person_attendance(
    session: AsyncSession,
    badge_id: str,
    *,
    limit: int = 20,
) -> dict[str, Any]:
    """A person's own sessions from the logbook their role routes to."""
    person = await find_person_by_badge(session, badge_id)
    if person is None:
        raise NotFoundError(f"No person with badge {badge_id!r}")
    kind = logbook_for_role(person.role)
    model = LOGBOOK_MODELS[kind]
    entries = (
        await session.execute(
            select(model)
            .where(model.person_id == person.id)
            .order_by(model.time_in.desc(), model.id.desc())
            .limit(max(1, min(limit, 200)))
        )
    ).scalars().all()
    return {
        "person_id": person.id,
        "full_name": person.full_name,
        "logbook": kind.value,
        "checked_in": any(e.time_out is None for e in entries),
        "items": [
            {
                "id": e.id,
                "time_in": e.time_in,
                "time_out": e.time_out,
                "duration": format_duration(e.time_in, e.time_out),
            }
            for e in entries
        ],
    }
