"""Command-line entry point."""

from __future__ import annotations

import argparse
import json
from unittest.mock import patch

import pytest

from askit_voice import cli


def _args(**overrides) -> argparse.Namespace:
    values = {"file": None, "simplify": None, "lang": "en", "no_speak": True}
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.mark.asyncio
async def test_missing_key_exits_with_usage_error(capsys) -> None:
    with patch.dict("os.environ", {"OPENAI_API_KEY": ""}, clear=False):
        code = await cli._run(_args())
    assert code == 2
    assert "OPENAI_API_KEY" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_file_mode_prints_transcript_and_analysis(tmp_path, openai_client, capsys) -> None:
    recording = tmp_path / "query.wav"
    recording.write_bytes(b"RIFF" + b"\x00" * 64)

    with patch.dict("os.environ", {"OPENAI_API_KEY": "sk-test"}, clear=False), patch(
        "askit_voice.capability._build_client", return_value=openai_client
    ):
        code = await cli._run(_args(file=str(recording)))

    assert code == 0
    out = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert out["transcript"] == "bijli ka bill batao"
    assert out["analysis"]["intent"] == "electricity_bill"
    assert openai_client.audio.transcriptions.create.await_args.kwargs["file"].name == "recording.wav"


@pytest.mark.asyncio
async def test_simplify_mode(openai_client, make_chat_response, capsys) -> None:
    openai_client.chat.completions.create.return_value = make_chat_response("We are checking your documents")

    with patch.dict("os.environ", {"OPENAI_API_KEY": "sk-test"}, clear=False), patch(
        "askit_voice.capability._build_client", return_value=openai_client
    ):
        code = await cli._run(_args(simplify="Document verification in progress", lang="hi"))

    assert code == 0
    assert capsys.readouterr().out.strip() == "We are checking your documents"


@pytest.mark.asyncio
async def test_missing_file_reports_error(tmp_path, openai_client, capsys) -> None:
    missing = tmp_path / "nope.wav"

    with patch.dict("os.environ", {"OPENAI_API_KEY": "sk-test"}, clear=False), patch(
        "askit_voice.capability._build_client", return_value=openai_client
    ):
        code = await cli._run(_args(file=str(missing)))

    assert code == 1
    assert f"error: cannot read {missing}" in capsys.readouterr().err
    openai_client.audio.transcriptions.create.assert_not_called()
    openai_client.close.assert_awaited_once()
