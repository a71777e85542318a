"""Celery application — RabbitMQ broker, Redis result backend.

Two queues: `scoreboard` for timed reveal sequences and `maintenance` for
periodic score reconciliation probes.
"""
from __future__ import annotations

from celery import Celery
from kombu import Exchange, Queue

from itweek.config import settings

celery = Celery(
    "itweek",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.REDIS_URL,
)

# ── Serialisation ──
celery.conf.accept_content = ["json"]
celery.conf.task_serializer = "json"
celery.conf.result_serializer = "json"
celery.conf.timezone = "UTC"
celery.conf.enable_utc = True

# ── Reliability ──
# A reveal must not be replayed after a worker crash halfway through it.
celery.conf.task_acks_late = False
celery.conf.worker_prefetch_multiplier = 1

# ── Exchanges & Queues ──
default_exchange = Exchange("itweek", type="direct")

celery.conf.task_queues = (
    Queue("scoreboard", default_exchange, routing_key="scoreboard"),
    Queue("maintenance", default_exchange, routing_key="maintenance"),
)

celery.conf.task_default_queue = "maintenance"
celery.conf.task_default_exchange = "itweek"
celery.conf.task_default_routing_key = "maintenance"

# ── Task routes ──
celery.conf.task_routes = {
    "itweek.workers.reveal.run_reveal_countdown": {"queue": "scoreboard"},
    "itweek.workers.drift.run_score_drift_probe": {"queue": "maintenance"},
}

# ── Beat Schedule ──
celery.conf.beat_schedule = {
    "score-drift-probe": {
        "task": "itweek.workers.drift.run_score_drift_probe",
        "schedule": float(settings.DRIFT_PROBE_INTERVAL_S),
    },
}

celery.conf.imports = ("itweek.workers.reveal", "itweek.workers.drift")
