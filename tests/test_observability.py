"""Stage logging, in-memory metrics and tracer selection."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from askit_voice import logging_utils as logging_utils_module
from askit_voice import metrics as metrics_module
from askit_voice.errors import RateLimitError
from askit_voice.tracing import NoopTracer, make_tracer, text_hash


def test_metrics_average_latency_per_stage() -> None:
    metrics_module.record_request("speech_to_text", 100.0)
    metrics_module.record_request("speech_to_text", 300.0, error=True)
    metrics_module.record_request("analyze_intent", 50.0)

    m = metrics_module.get_metrics()
    assert m["speech_to_text"] == {"request_count": 2, "error_count": 1, "latency_ms_avg": 200.0}
    assert m["analyze_intent"]["error_count"] == 0


def test_reset_metrics() -> None:
    metrics_module.record_request("utterance", 10.0)
    metrics_module.reset_metrics()
    assert metrics_module.get_metrics() == {}


def test_log_stage_emits_one_json_line(capsys) -> None:
    logging_utils_module.log_stage(
        "analyze_intent",
        latency_ms=12.345,
        session_id="abc",
        error=True,
        error_kind="rate_limit",
        detail={"intent": "general_query"},
    )
    err = capsys.readouterr().err.strip().splitlines()
    assert len(err) == 1
    payload = json.loads(err[0])
    assert payload["service"] == "askit-voice"
    assert payload["stage"] == "analyze_intent"
    assert payload["latency_ms"] == 12.35
    assert payload["error_kind"] == "rate_limit"
    assert payload["intent"] == "general_query"


def test_text_hash_is_stable_and_short() -> None:
    assert text_hash("bijli ka bill") == text_hash("bijli ka bill")
    assert len(text_hash("bijli ka bill")) == 16
    assert text_hash("bijli ka bill") != text_hash("tax bharna hai")


def test_tracer_defaults_to_noop() -> None:
    with patch.dict("os.environ", {"LANGSMITH_ENABLED": "0"}, clear=False):
        tracer = make_tracer()
    assert isinstance(tracer, NoopTracer)
    with tracer.span("speech_to_text", {"session_id": "abc"}):
        pass


def test_tracer_noop_without_api_key() -> None:
    with patch.dict("os.environ", {"LANGSMITH_ENABLED": "1", "LANGSMITH_API_KEY": ""}, clear=False):
        assert isinstance(make_tracer(), NoopTracer)


def test_langsmith_span_posts_run_with_stage_type() -> None:
    pytest.importorskip("langsmith")
    with patch.dict(
        "os.environ",
        {"LANGSMITH_ENABLED": "1", "LANGSMITH_API_KEY": "ls-test", "LANGSMITH_PROJECT": "voice-dev"},
        clear=False,
    ), patch("langsmith.run_trees.RunTree") as run_tree:
        tracer = make_tracer()
        with tracer.span("analyze_intent", {"session_id": "abc"}):
            pass

    kwargs = run_tree.call_args.kwargs
    assert kwargs["run_type"] == "llm"
    assert kwargs["project_name"] == "voice-dev"
    run_tree.return_value.end.assert_called_once_with(error=None)
    run_tree.return_value.post.assert_called_once()


def test_langsmith_span_records_error_kind() -> None:
    pytest.importorskip("langsmith")
    with patch.dict(
        "os.environ", {"LANGSMITH_ENABLED": "1", "LANGSMITH_API_KEY": "ls-test"}, clear=False
    ), patch("langsmith.run_trees.RunTree") as run_tree:
        tracer = make_tracer()
        with pytest.raises(RateLimitError):
            with tracer.span("speech_to_text", {}):
                raise RateLimitError("Too many requests. Please wait before trying again.")

    run_tree.return_value.end.assert_called_once_with(error="rate_limit")
