"""Roster maintenance — people, teams and the scoring-event catalog."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from itweek.audit import record_audit
from itweek.config import settings
from itweek.diffs import generate_field_changes
from itweek.errors import ConflictError, EditLimitReached, NotFoundError, ValidationError
from itweek.models.audit import AuditAction
from itweek.models.logbook import LOGBOOK_MODELS
from itweek.models.person import Person, PersonRole
from itweek.models.score_log import ScoreLogEntry
from itweek.models.scoring_event import ScoringEvent
from itweek.models.team import Team

logger = logging.getLogger(__name__)

# Roles that compete and must belong to a team.
TEAM_ROLES = frozenset({PersonRole.STUDENT, PersonRole.LEADER})

PERSON_FIELDS = ("full_name", "team_name", "role")


def _clean(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def parse_role(raw: PersonRole | str | None) -> PersonRole:
    if raw is None or raw == "":
        return PersonRole.STUDENT
    try:
        return PersonRole(str(raw.value if isinstance(raw, PersonRole) else raw).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown role: {raw!r}")


def person_snapshot(person: Person) -> dict[str, Any]:
    return {field: getattr(person, field) for field in PERSON_FIELDS}


async def _require_team(session: AsyncSession, team_name: str | None, role: PersonRole) -> str | None:
    if team_name is None:
        if role in TEAM_ROLES:
            raise ValidationError(f"A team is required for role {role.value}")
        return None
    exists = (await session.execute(select(Team.id).where(Team.name == team_name))).scalar()
    if exists is None:
        raise ValidationError(f"Team {team_name!r} does not exist")
    return team_name


async def _get_person(session: AsyncSession, person_id: int) -> Person:
    person = (
        await session.execute(
            select(Person).where(Person.id == person_id).execution_options(populate_existing=True)
        )
    ).scalar()
    if person is None:
        raise NotFoundError(f"Person {person_id} not found")
    return person


async def register_person(
    session: AsyncSession,
    full_name: str,
    team_name: str | None = None,
    role: PersonRole | str | None = None,
    *,
    actor: str | None = None,
) -> Person:
    """Create a person with a fresh badge uuid."""
    name = _clean(full_name)
    if name is None:
        raise ValidationError("Full name is required")
    person_role = parse_role(role)
    team = await _require_team(session, _clean(team_name), person_role)

    person = Person(full_name=name, team_name=team, role=person_role.value)
    session.add(person)
    await session.commit()

    await record_audit(
        session,
        action=AuditAction.REGISTER,
        actor=actor or name,
        target_name=name,
        person_id=person.id,
        details={"team_name": team, "role": person_role.value, "badge_uuid": person.badge_uuid},
    )
    logger.info("Registered %s (%s, team=%s)", name, person_role.value, team)
    return person


async def self_edit(
    session: AsyncSession,
    badge_id: str,
    *,
    full_name: str | None = None,
    team_name: str | None = None,
) -> Person:
    """Self-service profile edit, capped at `SELF_EDIT_LIMIT` per person.

    The counter moves with a conditional UPDATE so two concurrent edits can
    never both pass the cap.
    """
    badge = (badge_id or "").strip()
    person = (
        await session.execute(
            select(Person).where(Person.badge_uuid == badge).execution_options(populate_existing=True)
        )
    ).scalar()
    if person is None:
        raise NotFoundError(f"No person with badge {badge_id!r}")

    before = person_snapshot(person)
    after: dict[str, Any] = {}
    if full_name is not None:
        name = _clean(full_name)
        if name is None:
            raise ValidationError("Full name cannot be blank")
        after["full_name"] = name
    if team_name is not None:
        after["team_name"] = await _require_team(session, _clean(team_name), parse_role(person.role))
    changes = generate_field_changes(before, after)
    if not changes:
        return person

    limit = settings.SELF_EDIT_LIMIT
    result = await session.execute(
        update(Person)
        .where(Person.id == person.id, Person.edit_count < limit)
        .values(edit_count=Person.edit_count + 1, **after)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        raise EditLimitReached(f"Profile edit limit of {limit} reached")
    await session.commit()

    person = await _get_person(session, person.id)
    await record_audit(
        session,
        action=AuditAction.SELF_EDIT,
        actor=person.full_name,
        target_name=person.full_name,
        person_id=person.id,
        details={"changes": changes, "edit_count": person.edit_count, "limit": limit},
    )
    return person


async def admin_update_person(
    session: AsyncSession,
    person_id: int,
    *,
    full_name: str | None = None,
    role: PersonRole | str | None = None,
    team_name: str | None = None,
    actor: str | None = None,
) -> Person:
    """Edit without the self-service cap. Audited only when a field changed."""
    person = await _get_person(session, person_id)
    before = person_snapshot(person)

    new_role = parse_role(role) if role is not None else parse_role(person.role)
    after: dict[str, Any] = {"role": new_role.value}
    if full_name is not None:
        name = _clean(full_name)
        if name is None:
            raise ValidationError("Full name cannot be blank")
        after["full_name"] = name
    if team_name is not None or new_role.value != before["role"]:
        wanted = _clean(team_name) if team_name is not None else before["team_name"]
        after["team_name"] = await _require_team(session, wanted, new_role)

    changes = generate_field_changes(before, after)
    if not changes:
        return person
    for field, value in after.items():
        setattr(person, field, value)
    await session.commit()

    await record_audit(
        session,
        action=AuditAction.UPDATE_USER,
        actor=actor,
        target_name=person.full_name,
        person_id=person.id,
        details=changes,
    )
    return person


async def delete_person(session: AsyncSession, person_id: int, *, actor: str | None = None) -> None:
    """Delete a person together with their sessions in both logbooks."""
    person = await _get_person(session, person_id)
    snapshot = {**person_snapshot(person), "badge_uuid": person.badge_uuid}
    for model in LOGBOOK_MODELS.values():
        await session.execute(delete(model).where(model.person_id == person_id))
    await session.delete(person)
    await session.commit()

    await record_audit(
        session,
        action=AuditAction.DELETE_USER,
        actor=actor,
        target_name=snapshot["full_name"],
        details=snapshot,
    )
    logger.info("Deleted person %s (%s)", person_id, snapshot["full_name"])


async def create_team(session: AsyncSession, name: str, *, actor: str | None = None) -> Team:
    team_name = _clean(name)
    if team_name is None:
        raise ValidationError("Team name is required")
    existing = (await session.execute(select(Team.id).where(Team.name == team_name))).scalar()
    if existing is not None:
        raise ConflictError(f"Team {team_name!r} already exists")

    team = Team(name=team_name, score=settings.BASE_SCORE)
    session.add(team)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ConflictError(f"Team {team_name!r} already exists")

    await record_audit(
        session,
        action=AuditAction.CREATE_TEAM,
        actor=actor,
        target_name=team_name,
        details={"score": team.score},
    )
    return team


async def delete_team(session: AsyncSession, team_id: int, *, actor: str | None = None) -> None:
    """Remove a team. Its score log survives, keyed by the name snapshot only."""
    team = (await session.execute(select(Team).where(Team.id == team_id))).scalar()
    if team is None:
        raise NotFoundError(f"Team {team_id} not found")
    name, score = team.name, team.score
    await session.execute(
        update(ScoreLogEntry)
        .where(ScoreLogEntry.team_id == team_id)
        .values(team_id=None)
        .execution_options(synchronize_session=False)
    )
    await session.delete(team)
    await session.commit()

    await record_audit(
        session,
        action=AuditAction.DELETE_TEAM,
        actor=actor,
        target_name=name,
        details={"score": score},
    )


async def list_teams_with_counts(session: AsyncSession) -> list[dict[str, Any]]:
    """Teams by name with a derived member count."""
    members = (
        select(Person.team_name, func.count(Person.id).label("members"))
        .where(Person.team_name.is_not(None))
        .group_by(Person.team_name)
        .subquery()
    )
    rows = (
        await session.execute(
            select(Team, func.coalesce(members.c.members, 0))
            .outerjoin(members, members.c.team_name == Team.name)
            .order_by(Team.name.asc())
            .execution_options(populate_existing=True)
        )
    ).all()
    return [
        {"id": team.id, "name": team.name, "score": team.score, "members": int(count)}
        for team, count in rows
    ]


async def create_scoring_event(
    session: AsyncSession,
    name: str,
    category: str | None = None,
    *,
    actor: str | None = None,
) -> ScoringEvent:
    event_name = _clean(name)
    if event_name is None:
        raise ValidationError("Event name is required")
    event_category = (_clean(category) or "GENERAL").upper()
    existing = (await session.execute(select(ScoringEvent.id).where(ScoringEvent.name == event_name))).scalar()
    if existing is not None:
        raise ConflictError(f"Scoring event {event_name!r} already exists")

    event = ScoringEvent(name=event_name, category=event_category)
    session.add(event)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ConflictError(f"Scoring event {event_name!r} already exists")

    await record_audit(
        session,
        action=AuditAction.CREATE_EVENT,
        actor=actor,
        target_name=event_name,
        details={"category": event_category},
    )
    return event


async def delete_scoring_event(session: AsyncSession, event_id: int, *, actor: str | None = None) -> None:
    """Drop a catalog entry. Score log rows that used its name are left as they are."""
    event = (await session.execute(select(ScoringEvent).where(ScoringEvent.id == event_id))).scalar()
    if event is None:
        raise NotFoundError(f"Scoring event {event_id} not found")
    name, category = event.name, event.category
    await session.delete(event)
    await session.commit()

    await record_audit(
        session,
        action=AuditAction.DELETE_EVENT,
        actor=actor,
        target_name=name,
        details={"category": category},
    )


async def list_scoring_events(session: AsyncSession) -> list[ScoringEvent]:
    return list(
        (await session.execute(select(ScoringEvent).order_by(ScoringEvent.name.asc()))).scalars().all()
    )
