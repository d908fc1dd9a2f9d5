"""Shared fakes: audio source/stream, player, and a mocked OpenAI client. No network, no hardware."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from askit_voice import metrics as metrics_module
from askit_voice.config import VoiceConfig
from askit_voice.models import AudioArtifact


class FakeStream:
    def __init__(self, start_error: Exception | None = None) -> None:
        self.start_error = start_error
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def close(self) -> None:
        self.closed = True


class FakeSource:
    """In-memory AudioSource; tests push PCM with feed() and device faults with fail()."""

    def __init__(
        self,
        formats: tuple[str, ...] = ("audio/wav",),
        supported: bool = True,
        open_error: Exception | None = None,
        start_error: Exception | None = None,
    ) -> None:
        self.formats = formats
        self.supported = supported
        self.open_error = open_error
        self.start_error = start_error
        self.opened: list[FakeStream] = []
        self.constraints: Any = None
        self._on_chunk: Any = None
        self._on_error: Any = None

    def is_supported(self) -> bool:
        return self.supported

    def supports_format(self, mime_type: str) -> bool:
        return mime_type in self.formats

    def open(self, constraints, on_chunk, on_error) -> FakeStream:
        if self.open_error is not None:
            raise self.open_error
        self.constraints = constraints
        self._on_chunk = on_chunk
        self._on_error = on_error
        stream = FakeStream(self.start_error)
        self.opened.append(stream)
        return stream

    def feed(self, data: bytes) -> None:
        self._on_chunk(data)

    def fail(self, exc: Exception) -> None:
        self._on_error(exc)


class RecordingTracer:
    """Collects (stage, tags, error kind) per span."""

    def __init__(self) -> None:
        self.spans: list[tuple[str, dict[str, str], str | None]] = []

    @contextmanager
    def span(self, name: str, tags: dict[str, str]):
        try:
            yield
        except Exception as e:
            self.spans.append((name, dict(tags), getattr(e, "kind", "unexpected")))
            raise
        self.spans.append((name, dict(tags), None))


class FakePlayer:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.played: list[tuple[bytes, str]] = []
        self.stop_calls = 0

    async def play(self, audio: bytes, mime_type: str) -> None:
        if self.error is not None:
            raise self.error
        self.played.append((audio, mime_type))

    def stop(self) -> None:
        self.stop_calls += 1


def chat_response(content: str | None) -> MagicMock:
    return MagicMock(choices=[MagicMock(message=MagicMock(content=content))])


def make_openai_client(
    transcript: str = "bijli ka bill batao",
    content: str | None = (
        '{"intent": "electricity_bill", "entities": {"service": "electricity", "action": "check"},'
        ' "simplifiedQuery": "Check my electricity bill", "language": "hi",'
        ' "response": "Aapka bijli ka bill dekhne ke liye consumer number dijiye."}'
    ),
    audio: bytes = b"ID3fake-mp3-bytes",
) -> MagicMock:
    client = MagicMock()
    client.audio.transcriptions.create = AsyncMock(return_value=MagicMock(text=transcript))
    client.chat.completions.create = AsyncMock(return_value=chat_response(content))
    client.audio.speech.create = AsyncMock(return_value=MagicMock(content=audio))
    client.close = AsyncMock()
    return client


def provider_status_error(cls: type, status: int) -> Exception:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return cls("provider error", response=response, body=None)


@pytest.fixture(autouse=True)
def _reset_metrics() -> None:
    metrics_module.reset_metrics()


@pytest.fixture
def config() -> VoiceConfig:
    return VoiceConfig(openai_api_key="sk-test", sample_rate=16000)


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def make_source() -> type[FakeSource]:
    return FakeSource


@pytest.fixture
def player() -> FakePlayer:
    return FakePlayer()


@pytest.fixture
def make_player() -> type[FakePlayer]:
    return FakePlayer


@pytest.fixture
def openai_client() -> MagicMock:
    return make_openai_client()


@pytest.fixture
def make_openai() -> Any:
    return make_openai_client


@pytest.fixture
def make_chat_response() -> Any:
    return chat_response


@pytest.fixture
def make_status_error() -> Any:
    return provider_status_error


@pytest.fixture
def artifact() -> AudioArtifact:
    """Two seconds of recorded speech, 50 000 bytes, supported encoding."""
    return AudioArtifact(data=b"\x1a" * 50_000, mime_type="audio/webm", duration_seconds=2.0)


@pytest.fixture
def tracer() -> RecordingTracer:
    return RecordingTracer()
