"""Pluggable per-stage tracing for the voice pipeline (NoopTracer / LangSmith)."""

from __future__ import annotations

import hashlib
import logging
import os
from contextlib import contextmanager
from typing import Iterator, Protocol

logger = logging.getLogger(__name__)

DEFAULT_PROJECT = "askit-voice"

# LangSmith run_type per pipeline stage; anything else is a chain.
STAGE_RUN_TYPES = {
    "speech_to_text": "tool",
    "analyze_intent": "llm",
    "synthesize_speech": "tool",
}


def text_hash(text: str) -> str:
    """Short SHA-256 tag for a transcript; spans and logs never carry the utterance itself."""
    return hashlib.sha256(text.encode()).hexdigest()[:16]


class Tracer(Protocol):
    """span(stage, tags) wraps one pipeline stage; exceptions propagate unchanged."""

    def span(self, name: str, tags: dict[str, str]) -> Iterator[None]:
        ...


class NoopTracer:
    @contextmanager
    def span(self, name: str, tags: dict[str, str]) -> Iterator[None]:
        yield


def make_tracer() -> Tracer:
    """LangSmith when LANGSMITH_ENABLED=1 and a key is set; NoopTracer otherwise or if it fails to load."""
    if os.environ.get("LANGSMITH_ENABLED") != "1":
        return NoopTracer()
    if not os.environ.get("LANGSMITH_API_KEY"):
        return NoopTracer()
    try:
        return _LangSmithTracer(os.environ.get("LANGSMITH_PROJECT") or DEFAULT_PROJECT)
    except Exception:
        logger.warning("tracing: LangSmith unavailable, falling back to no-op", exc_info=True)
        return NoopTracer()


class _LangSmithTracer:
    """One RunTree per stage; the stage error kind is attached when it fails."""

    def __init__(self, project_name: str) -> None:
        from langsmith.run_trees import RunTree

        self._run_tree = RunTree
        self.project_name = project_name

    @contextmanager
    def span(self, name: str, tags: dict[str, str]) -> Iterator[None]:
        run = self._run_tree(
            name=name,
            run_type=STAGE_RUN_TYPES.get(name, "chain"),
            project_name=self.project_name,
            inputs={"tags": dict(tags)},
            extra={"metadata": tags},
        )
        error: str | None = None
        try:
            yield
        except Exception as e:
            error = getattr(e, "kind", type(e).__name__)
            raise
        finally:
            run.end(error=error)
            try:
                run.post()
            except Exception:
                # Tracing must never fail an utterance.
                logger.debug("tracing: failed to post run %s", name, exc_info=True)
