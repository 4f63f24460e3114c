"""
Metrics collection for Match Desk.
Wraps prometheus_client with async-safe patterns.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
LEDGER_MUTATIONS = Counter(
    "md_ledger_mutations_total",
    "Committed lineup/event/referee mutations",
    ["operation", "source"],
)
LEDGER_REJECTIONS = Counter(
    "md_ledger_rejections_total",
    "Mutations rejected before commit",
    ["operation", "reason"],
)
RECONCILIATIONS = Counter(
    "md_reconciliations_total",
    "Scoreboard recomputations",
    ["trigger"],
)
SCOREBOARD_DRIFT = Counter(
    "md_scoreboard_drift_total",
    "Repairs where the stored scoreboard disagreed with the ledger",
)
SYNC_PASSES = Counter(
    "md_sync_passes_total",
    "Sync adapter passes",
    ["kind", "outcome"],
)
FEED_REQUESTS = Counter(
    "md_feed_requests_total",
    "HTTP requests made to the sync feed",
    ["status"],
)

# ── Histograms ──────────────────────────────────────────────────────────
RECONCILE_LATENCY = Histogram(
    "md_reconcile_seconds",
    "Time spent recomputing a scoreboard",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
)
SYNC_PASS_LATENCY = Histogram(
    "md_sync_pass_seconds",
    "Duration of a sync pass including the feed fetch",
    ["kind"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Gauges ──────────────────────────────────────────────────────────────
SYNC_ACTIVE_TASKS = Gauge(
    "md_sync_active_tasks",
    "Matches with a running periodic sync task",
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        histogram.labels(**labels).observe(elapsed)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
