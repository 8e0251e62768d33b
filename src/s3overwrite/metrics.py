"""Prometheus metrics definitions for s3overwrite.

All metrics use the ``s3overwrite_`` prefix for namespace isolation.
Nothing is registered until ``init_metrics()`` runs; until then the
module-level references stay ``None`` and callers skip recording.
"""

from __future__ import annotations

from prometheus_client import Counter

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# ---------------------------------------------------------------------------
# Overwrite outcomes  (labels: mode, outcome)
# ---------------------------------------------------------------------------
overwrites_total: Counter | None = None

# ---------------------------------------------------------------------------
# Store calls  (labels: operation, status)
# ---------------------------------------------------------------------------
store_calls_total: Counter | None = None

# ---------------------------------------------------------------------------
# Byte counters
# ---------------------------------------------------------------------------
bytes_uploaded_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics in the default registry.

    Safe to call more than once; only the first call registers collectors.
    """
    global _initialized
    global overwrites_total, store_calls_total, bytes_uploaded_total

    if _initialized:
        return

    overwrites_total = Counter(
        "s3overwrite_overwrites_total",
        "Total overwrite invocations by ACL mode and outcome",
        ["mode", "outcome"],
    )

    store_calls_total = Counter(
        "s3overwrite_store_calls_total",
        "Total object store calls by operation and status",
        ["operation", "status"],
    )

    bytes_uploaded_total = Counter(
        "s3overwrite_bytes_uploaded_total",
        "Total bytes of replacement content uploaded",
    )

    _initialized = True
