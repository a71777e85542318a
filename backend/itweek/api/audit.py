"""Audit log API — read-only, newest first."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from itweek.audit import list_audit_logs
from itweek.db import get_session

router = APIRouter(tags=["audit"])


@router.get("/audit-logs")
async def get_audit_logs(
    action: str | None = None,
    search: str | None = None,
    limit: int = 200,
    db: AsyncSession = Depends(get_session),
) -> list[dict[str, Any]]:
    rows = await list_audit_logs(db, action=action, search=search, limit=limit)
    return [
        {
            "id": row.id,
            "actor": row.actor,
            "action": row.action,
            "target_name": row.target_name,
            "person_id": row.person_id,
            "details": row.details,
            "created_at": row.created_at,
        }
        for row in rows
    ]
