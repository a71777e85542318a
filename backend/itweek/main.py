"""FastAPI application — health, metrics, CORS, scoreboard SSE and product APIs."""
from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    generate_latest,
    multiprocess,
)
from starlette.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse

from itweek.api.audit import router as audit_router
from itweek.api.roster import router as roster_router
from itweek.api.scans import router as scans_router
from itweek.api.scoreboard import router as scoreboard_router
from itweek.api.scores import router as scores_router
from itweek.config import settings
from itweek.db import async_session_factory, init_models
from itweek.errors import ConflictError, ITWeekError, NotFoundError, ValidationError
from itweek.logging_config import setup_logging
from itweek.metrics import SSE_EVENTS_SENT_TOTAL
from itweek.scoreboard_service import public_board

logger = logging.getLogger(__name__)


def _json_dumps(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str, sort_keys=True)


def _sse_frame(event_type: str, payload: dict) -> str:
    return f"event: {event_type}\ndata: {_json_dumps(payload)}\n\n"


def error_status(exc: ITWeekError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — setup / teardown."""
    setup_logging()
    if settings.DB_AUTO_CREATE:
        await init_models()
    logger.info("IT Week API starting", extra={"env": settings.APP_ENV})
    yield
    logger.info("IT Week API shutting down")


app = FastAPI(
    title="IT Week",
    version="0.1.0",
    description="Attendance ledger, team scoring and live scoreboard for IT Week",
    lifespan=lifespan,
)

# ── CORS ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.APP_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ITWeekError)
async def itweek_error_handler(request: Request, exc: ITWeekError) -> JSONResponse:
    status = error_status(exc)
    if status >= 500:
        logger.error(f"Unhandled service error on {request.url.path}: {exc}")
    return JSONResponse({"detail": str(exc)}, status_code=status)


app.include_router(scans_router)
app.include_router(scores_router)
app.include_router(roster_router)
app.include_router(scoreboard_router)
app.include_router(audit_router)


# ── Health ──
@app.get("/health", tags=["ops"])
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok", "service": "itweek"}


# ── Prometheus Metrics ──
@app.get("/metrics", tags=["ops"])
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    try:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        data = generate_latest(registry)
    except ValueError:
        # Not running in multiprocess mode
        data = generate_latest()
    return PlainTextResponse(content=data, media_type=CONTENT_TYPE_LATEST)


@app.get("/scoreboard/stream", tags=["sse"])
async def scoreboard_stream(request: Request) -> StreamingResponse:
    """SSE feed of the public scoreboard, polled from the database.

    A `SCOREBOARD` frame is sent whenever the redacted board or the reveal
    state differs from the last one sent; otherwise a `ping` keeps the
    connection open.
    """

    async def event_generator() -> AsyncGenerator[str, None]:
        last_sent: str | None = None
        while True:
            if await request.is_disconnected():
                break

            async with async_session_factory() as session:
                board = await public_board(session)
            encoded = _json_dumps(board)
            if encoded != last_sent:
                last_sent = encoded
                SSE_EVENTS_SENT_TOTAL.labels(event_type="SCOREBOARD").inc()
                yield _sse_frame("SCOREBOARD", board)
            else:
                SSE_EVENTS_SENT_TOTAL.labels(event_type="ping").inc()
                yield _sse_frame("ping", {})
            await asyncio.sleep(settings.SCOREBOARD_POLL_INTERVAL_S)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
