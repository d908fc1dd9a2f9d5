"""Structured stage logging (one JSON line per pipeline stage)."""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from typing import Any


SERVICE_NAME = "askit-voice"


def log_stage(
    stage: str,
    latency_ms: float,
    session_id: str | None = None,
    error: bool = False,
    error_kind: str | None = None,
    detail: dict[str, Any] | None = None,
) -> None:
    """Emit one JSON line to stderr. Never pass raw transcripts in `detail`."""
    payload: dict[str, Any] = {
        "ts": datetime.now(tz=timezone.utc).isoformat(),
        "service": SERVICE_NAME,
        "stage": stage,
        "latency_ms": round(latency_ms, 2),
        "session_id": session_id,
        "error": error,
        "error_kind": error_kind,
    }
    if detail:
        payload.update(detail)
    print(json.dumps(payload), file=sys.stderr)
