"""Audit trail recorder.

Every durable mutation appends one `AuditLogEntry`. The write happens after the
primary mutation has been committed, in its own commit, so a failed audit
write never undoes or blocks the change it documents.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from itweek.metrics import AUDIT_WRITE_FAILURES_TOTAL, AUDIT_WRITES_TOTAL
from itweek.models.audit import AuditAction, AuditLogEntry

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def _action_value(action: AuditAction | str) -> str:
    if isinstance(action, AuditAction):
        return action.value
    return str(action)


async def record_audit(
    session: AsyncSession,
    *,
    action: AuditAction | str,
    actor: str | None = None,
    target_name: str | None = None,
    details: dict[str, Any] | str | None = None,
    person_id: int | None = None,
) -> bool:
    """Append and commit one audit row. Returns `False` when the write failed.

    Must be called with no pending primary work on `session`: on failure the
    session is rolled back.
    """
    action_name = _action_value(action)
    if isinstance(details, str):
        details = {"message": details}
    row = AuditLogEntry(
        actor=actor or SYSTEM_ACTOR,
        action=action_name,
        target_name=target_name,
        person_id=person_id,
        details=details,
    )
    try:
        session.add(row)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        AUDIT_WRITE_FAILURES_TOTAL.labels(action=action_name).inc()
        logger.error(
            "Audit write failed for %s on %r: %s", action_name, target_name, exc,
            extra={"action": action_name},
        )
        return False
    AUDIT_WRITES_TOTAL.labels(action=action_name).inc()
    return True


async def list_audit_logs(
    session: AsyncSession,
    *,
    action: str | None = None,
    search: str | None = None,
    limit: int = 200,
) -> list[AuditLogEntry]:
    """Newest first. `search` matches actor, target name or action (case-insensitive)."""
    stmt = select(AuditLogEntry).order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
    if action and action != "all":
        stmt = stmt.where(AuditLogEntry.action == action)
    if search:
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(
                AuditLogEntry.actor.ilike(pattern),
                AuditLogEntry.target_name.ilike(pattern),
                AuditLogEntry.action.ilike(pattern),
            )
        )
    stmt = stmt.limit(max(1, min(limit, 1000)))
    return list((await session.execute(stmt)).scalars().all())
