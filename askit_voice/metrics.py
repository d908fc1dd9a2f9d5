"""In-memory per-stage metrics since process start (request_count, error_count, latency_ms)."""

from __future__ import annotations

_metrics: dict[str, dict[str, int | float]] = {}


def _bucket(stage: str) -> dict[str, int | float]:
    return _metrics.setdefault(
        stage, {"request_count": 0, "error_count": 0, "sum_latency_ms": 0.0}
    )


def record_request(stage: str, latency_ms: float, error: bool = False) -> None:
    """Record one capability call or pipeline stage."""
    b = _bucket(stage)
    b["request_count"] = b.get("request_count", 0) + 1
    b["sum_latency_ms"] = b.get("sum_latency_ms", 0.0) + latency_ms
    if error:
        b["error_count"] = b.get("error_count", 0) + 1


def get_metrics() -> dict[str, dict[str, int | float]]:
    """Return current metrics keyed by stage."""
    out: dict[str, dict[str, int | float]] = {}
    for stage, b in _metrics.items():
        total = b.get("request_count", 0)
        sum_ms = b.get("sum_latency_ms", 0.0)
        avg = sum_ms / total if total else 0.0
        out[stage] = {
            "request_count": total,
            "error_count": b.get("error_count", 0),
            "latency_ms_avg": round(avg, 2),
        }
    return out


def reset_metrics() -> None:
    """Reset in-memory counters (for tests only)."""
    _metrics.clear()
