"""Prometheus metrics for the ledger, scoring and scoreboard."""
from __future__ import annotations

from prometheus_client import Counter, Gauge


SCANS_TOTAL = Counter(
    "itweek_scans_total",
    "Badge scans by logbook, action and outcome",
    ["logbook", "action", "outcome", "source"],
)

SCORE_ADJUSTMENTS_TOTAL = Counter(
    "itweek_score_adjustments_total",
    "Merit / demerit adjustments applied",
    ["kind"],
)

SCORE_LOG_DELETIONS_TOTAL = Counter(
    "itweek_score_log_deletions_total",
    "Score log entries deleted with compensating reversal",
)

SCORE_RECONCILIATIONS_TOTAL = Counter(
    "itweek_score_reconciliations_total",
    "Bulk score operations",
    ["operation"],
)

SCORE_DRIFT_GAUGE = Gauge(
    "itweek_score_drift",
    "Stored team score minus reconciled (base + log) score",
    ["team"],
)

AUDIT_WRITES_TOTAL = Counter(
    "itweek_audit_writes_total",
    "Audit rows written by action",
    ["action"],
)

AUDIT_WRITE_FAILURES_TOTAL = Counter(
    "itweek_audit_write_failures_total",
    "Audit writes that failed (primary mutation kept)",
    ["action"],
)

REVEAL_TRANSITIONS_TOTAL = Counter(
    "itweek_reveal_transitions_total",
    "Scoreboard reveal state transitions",
    ["from_state", "to_state"],
)

SSE_EVENTS_SENT_TOTAL = Counter(
    "itweek_sse_events_sent_total",
    "SSE events sent by type",
    ["event_type"],
)
