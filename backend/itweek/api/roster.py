"""Roster API — registration, profile edits, teams and the scoring-event catalog."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from itweek.db import get_session
from itweek.models.person import Person
from itweek.models.scoring_event import ScoringEvent
from itweek.roster_service import (
    admin_update_person,
    create_scoring_event,
    create_team,
    delete_person,
    delete_scoring_event,
    delete_team,
    list_scoring_events,
    list_teams_with_counts,
    register_person,
    self_edit,
)

router = APIRouter(tags=["roster"])


class RegisterPayload(BaseModel):
    full_name: str
    team_name: str | None = None
    role: str | None = None


class SelfEditPayload(BaseModel):
    full_name: str | None = None
    team_name: str | None = None


class AdminPersonPayload(BaseModel):
    full_name: str | None = None
    team_name: str | None = None
    role: str | None = None
    actor: str | None = None


class TeamPayload(BaseModel):
    name: str
    actor: str | None = None


class ScoringEventPayload(BaseModel):
    name: str
    category: str | None = None
    actor: str | None = None


def _person_out(person: Person) -> dict[str, Any]:
    return {
        "id": person.id,
        "badge_uuid": person.badge_uuid,
        "full_name": person.full_name,
        "team_name": person.team_name,
        "role": person.role,
        "edit_count": person.edit_count,
    }


def _event_out(event: ScoringEvent) -> dict[str, Any]:
    return {"id": event.id, "name": event.name, "category": event.category}


@router.post("/people", status_code=201)
async def post_person(payload: RegisterPayload, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    person = await register_person(db, payload.full_name, payload.team_name, payload.role)
    return _person_out(person)


@router.patch("/people/self/{badge_id}")
async def patch_self(badge_id: str, payload: SelfEditPayload, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    person = await self_edit(db, badge_id, full_name=payload.full_name, team_name=payload.team_name)
    return _person_out(person)


@router.patch("/people/{person_id}")
async def patch_person(person_id: int, payload: AdminPersonPayload, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    person = await admin_update_person(
        db,
        person_id,
        full_name=payload.full_name,
        role=payload.role,
        team_name=payload.team_name,
        actor=payload.actor,
    )
    return _person_out(person)


@router.delete("/people/{person_id}")
async def remove_person(person_id: int, actor: str | None = None, db: AsyncSession = Depends(get_session)) -> dict[str, str]:
    await delete_person(db, person_id, actor=actor)
    return {"status": "deleted"}


@router.get("/teams")
async def get_teams(db: AsyncSession = Depends(get_session)) -> list[dict[str, Any]]:
    return await list_teams_with_counts(db)


@router.post("/teams", status_code=201)
async def post_team(payload: TeamPayload, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    team = await create_team(db, payload.name, actor=payload.actor)
    return {"id": team.id, "name": team.name, "score": team.score}


@router.delete("/teams/{team_id}")
async def remove_team(team_id: int, actor: str | None = None, db: AsyncSession = Depends(get_session)) -> dict[str, str]:
    await delete_team(db, team_id, actor=actor)
    return {"status": "deleted"}


@router.get("/scoring-events")
async def get_scoring_events(db: AsyncSession = Depends(get_session)) -> list[dict[str, Any]]:
    return [_event_out(e) for e in await list_scoring_events(db)]


@router.post("/scoring-events", status_code=201)
async def post_scoring_event(payload: ScoringEventPayload, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    event = await create_scoring_event(db, payload.name, payload.category, actor=payload.actor)
    return _event_out(event)


@router.delete("/scoring-events/{event_id}")
async def remove_scoring_event(event_id: int, actor: str | None = None, db: AsyncSession = Depends(get_session)) -> dict[str, str]:
    await delete_scoring_event(db, event_id, actor=actor)
    return {"status": "deleted"}
