"""Scan API — interactive and batched check-in / check-out, logbook views."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import JSONResponse

from itweek.db import get_session
from itweek.errors import ValidationError
from itweek.ledger import (
    ScanAction,
    ScanStatus,
    list_logbook,
    logbook_stats,
    parse_action,
    person_attendance,
    process_scan,
    process_scan_batch,
)
from itweek.models.logbook import LogbookKind

router = APIRouter(tags=["attendance"])
logger = logging.getLogger(__name__)

# Offline scanners only know one "nothing to close" status.
_BATCH_STATUS = {ScanStatus.NO_ACTIVE_SESSION: ScanStatus.NOT_CHECKED_IN}


class ScanPayload(BaseModel):
    badge_id: str
    action: str = ScanAction.CHECK_IN.value
    actor: str | None = None


@router.post("/api/scan")
async def batch_scan(request: Request, db: AsyncSession = Depends(get_session)) -> JSONResponse:
    """Batched scans from offline scanners: `{uuids: [...], mode: 'time-in'|'time-out'}`."""
    try:
        body = await request.json()
    except ValueError:
        body = None
    uuids = body.get("uuids") if isinstance(body, dict) else None
    if not isinstance(uuids, list):
        return JSONResponse({"error": "Invalid payload, expected uuids array"}, status_code=400)
    try:
        mode = parse_action(body.get("mode") or ScanAction.CHECK_IN.value)
    except ValidationError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)

    try:
        outcomes = await process_scan_batch(db, uuids, mode, actor=body.get("actor"))
    except Exception as exc:
        logger.exception("Batch scan handler failed")
        return JSONResponse({"error": str(exc)}, status_code=500)

    results: list[dict[str, Any]] = []
    for outcome in outcomes:
        status = _BATCH_STATUS.get(outcome.status, outcome.status)
        item: dict[str, Any] = {"uuid": outcome.badge_id, "status": status.value}
        if outcome.message and status == ScanStatus.ERROR:
            item["message"] = outcome.message
        results.append(item)
    return JSONResponse({"results": results})


@router.api_route("/api/scan", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def batch_scan_wrong_method() -> JSONResponse:
    return JSONResponse({"error": "Method not allowed"}, status_code=405, headers={"Allow": "POST"})


@router.post("/scan")
async def scan(payload: ScanPayload, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    """Single interactive scan. Classified outcomes are returned, never raised."""
    outcome = await process_scan(db, payload.badge_id, payload.action, actor=payload.actor)
    return outcome.as_dict()


@router.get("/logbook")
async def get_logbook(
    kind: LogbookKind = LogbookKind.GENERAL,
    status: str = "all",
    limit: int = 100,
    db: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    rows = await list_logbook(db, kind=kind, status_filter=status, limit=limit)
    return {"kind": kind.value, "stats": logbook_stats(rows), "items": rows}


@router.get("/people/{badge_id}/attendance")
async def get_attendance(badge_id: str, limit: int = 20, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    return await person_attendance(db, badge_id, limit=limit)
