"""
Prometheus metrics helpers for AdLex.

Provides the shared metric definitions for the check queue and the
embedding queue, so both the workers and the HTTP surfaces report into
the same default registry.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

# ── Check queue ──
CHECKS_ENQUEUED = Counter(
    "adlex_checks_enqueued_total",
    "Total number of checks accepted by the queue.",
    ["priority"],
)
CHECKS_COMPLETED = Counter(
    "adlex_checks_completed_total",
    "Total number of checks whose processing attempt succeeded.",
)
CHECK_RETRIES = Counter(
    "adlex_check_retries_total",
    "Total number of check retries scheduled after a failed attempt.",
)
CHECKS_FAILED = Counter(
    "adlex_checks_failed_total",
    "Total number of checks marked failed after exhausting retries.",
)
QUEUE_PENDING = Gauge(
    "adlex_check_queue_pending",
    "Checks waiting for a worker slot.",
)
QUEUE_IN_FLIGHT = Gauge(
    "adlex_check_queue_in_flight",
    "Checks currently being processed.",
)

# ── Embedding queue ──
EMBEDDINGS_GENERATED = Counter(
    "adlex_embeddings_generated_total",
    "Dictionary phrases whose vector was generated and stored.",
)
EMBEDDINGS_FAILED = Counter(
    "adlex_embeddings_failed_total",
    "Dictionary phrases whose vector generation failed.",
)
