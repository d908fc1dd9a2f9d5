"""OpenAI capability client: speech-to-text, intent analysis, speech synthesis, simplification.

Every operation is gated by the rate limiter, validates its input, sanitizes
the provider output and raises only the classified errors in askit_voice.errors.
"""

from __future__ import annotations

import inspect
import io
import json
import re
import time
from contextlib import contextmanager
from typing import Any, Iterator

import httpx
import jsonschema
import openai
import pydantic
from openai import AsyncOpenAI

from askit_voice import logging_utils as logging_utils_module
from askit_voice import metrics as metrics_module
from askit_voice.config import VoiceConfig
from askit_voice.contracts import INTENT_ANALYSIS_SCHEMA, validate_or_raise
from askit_voice.errors import (
    RateLimitError,
    SecurityError,
    ValidationError,
    VoiceError,
)
from askit_voice.models import (
    ALLOWED_AUDIO_TYPES,
    DEFAULT_INTENT,
    DEFAULT_LANGUAGE,
    INTENTS,
    AudioArtifact,
    IntentAnalysis,
    base_mime_type,
    fallback_analysis,
)
from askit_voice.prompts import get_intent_system_content, get_simplify_system_content
from askit_voice.rate_limiter import SlidingWindowRateLimiter
from askit_voice.sanitize import sanitize_input

MAX_SPEECH_TEXT_LENGTH = 4000
MAX_LANGUAGE_LENGTH = 35

# OpenAI TTS voices
TTS_VOICES = frozenset({"alloy", "echo", "fable", "onyx", "nova", "shimmer"})
DEFAULT_TTS_VOICE = "nova"


def _build_client(config: VoiceConfig) -> AsyncOpenAI | None:
    """Return an OpenAI client or None if no API key is configured."""
    if not config.has_credential:
        return None
    return AsyncOpenAI(
        api_key=config.openai_api_key,
        http_client=httpx.AsyncClient(timeout=config.timeout_s),
    )


def _extract_json_from_text(text: str) -> dict[str, Any] | None:
    """Extract JSON object from model output (may be wrapped in markdown)."""
    text = (text or "").strip()
    match = re.search(r"```(?:json)?\s*([\s\S]*?)```", text)
    if match:
        text = match.group(1).strip()
    match = re.search(r"\{[\s\S]*\}", text)
    if match:
        try:
            parsed = json.loads(match.group(0))
            return parsed if isinstance(parsed, dict) else None
        except json.JSONDecodeError:
            pass
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _sanitize_value(value: Any) -> Any:
    """Sanitize strings at any depth of a JSON value; numbers, bools and null pass through."""
    if isinstance(value, str):
        return sanitize_input(value)
    if isinstance(value, dict):
        return _sanitize_entities(value)
    if isinstance(value, list):
        return [_sanitize_value(v) for v in value]
    return value


def _sanitize_entities(entities: dict[Any, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in entities.items():
        key = sanitize_input(str(k))
        if key:
            out[key] = _sanitize_value(v)
    return out


def _parse_analysis(raw: dict[str, Any], sanitized_query: str) -> IntentAnalysis | None:
    """Map raw provider JSON to IntentAnalysis; None if it cannot satisfy the contract."""
    intent = str(raw.get("intent") or "").strip()
    if intent not in INTENTS:
        intent = DEFAULT_INTENT

    entities = raw.get("entities")
    entities = _sanitize_entities(entities) if isinstance(entities, dict) else {}

    simplified = raw.get("simplifiedQuery", raw.get("simplified_query"))
    simplified = sanitize_input(simplified) if isinstance(simplified, str) else ""

    language = raw.get("language")
    language = (
        sanitize_input(language, max_length=MAX_LANGUAGE_LENGTH)
        if isinstance(language, str)
        else ""
    )

    response = raw.get("response")
    response = sanitize_input(response) if isinstance(response, str) else None

    payload: dict[str, Any] = {
        "intent": intent,
        "entities": entities,
        "simplifiedQuery": simplified or sanitized_query,
        "language": language or DEFAULT_LANGUAGE,
        "response": response or None,
    }
    try:
        validate_or_raise(payload, INTENT_ANALYSIS_SCHEMA)
        return IntentAnalysis.model_validate(payload)
    except (jsonschema.ValidationError, pydantic.ValidationError):
        return None


def classify_provider_error(exc: Exception, operation: str) -> VoiceError:
    """Wrap a provider/transport failure into the error taxonomy."""
    if isinstance(exc, VoiceError):
        return exc
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return SecurityError(f"{operation} failed: the provider rejected the configured API key.")
    if isinstance(exc, openai.RateLimitError):
        return RateLimitError("The AI service is busy. Please wait before trying again.")
    if isinstance(exc, openai.BadRequestError):
        return ValidationError(f"{operation} failed: {exc.message}")
    if isinstance(exc, openai.APITimeoutError):
        return SecurityError(f"{operation} failed: the AI service timed out.")
    if isinstance(exc, openai.APIConnectionError):
        return SecurityError(f"{operation} failed: could not reach the AI service.")
    return SecurityError(f"{operation} failed: {exc}")


async def _read_audio(resp: Any) -> bytes:
    """Binary response body; the SDK exposes .content or an async aread()."""
    content = getattr(resp, "content", None)
    if isinstance(content, bytes):
        return content
    aread = getattr(resp, "aread", None)
    if callable(aread):
        data = await aread()
        if isinstance(data, bytes):
            return data
    return b""


class CapabilityClient:
    """Validated, rate-limited, sanitized access to the AI capability provider."""

    def __init__(
        self,
        config: VoiceConfig | None = None,
        *,
        limiter: SlidingWindowRateLimiter | None = None,
        client: Any = None,
    ) -> None:
        self.config = config or VoiceConfig.from_env()
        self.limiter = limiter or SlidingWindowRateLimiter(
            self.config.rate_limit_max_requests,
            self.config.rate_limit_window_s,
        )
        self._client = client if client is not None else _build_client(self.config)

    @property
    def available(self) -> bool:
        """False when no credential is configured; every operation then raises SecurityError."""
        return self._client is not None

    def _ensure_client(self) -> Any:
        if self._client is None:
            raise SecurityError(
                "OpenAI API key not configured. Please set OPENAI_API_KEY in the environment."
            )
        return self._client

    def _admit(self) -> None:
        if not self.limiter.admit():
            raise RateLimitError(
                "Too many requests. Please wait before trying again.",
                limit=self.limiter.max_requests,
                window_seconds=self.limiter.window_seconds,
                retry_in=self.limiter.retry_in(),
            )

    @contextmanager
    def _observe(self, stage: str, detail: dict[str, Any] | None = None) -> Iterator[None]:
        t0 = time.perf_counter()
        error_kind: str | None = None
        try:
            yield
        except Exception as e:
            error_kind = getattr(e, "kind", "unexpected")
            raise
        finally:
            latency_ms = (time.perf_counter() - t0) * 1000
            metrics_module.record_request(stage, latency_ms=latency_ms, error=error_kind is not None)
            logging_utils_module.log_stage(
                stage,
                latency_ms=latency_ms,
                error=error_kind is not None,
                error_kind=error_kind,
                detail=detail,
            )

    def validate_audio(self, artifact: AudioArtifact) -> None:
        """Size and encoding checks applied before any upload."""
        if artifact.size == 0:
            raise ValidationError("No audio data recorded. Please try speaking louder.")
        if artifact.size > self.config.max_audio_bytes:
            raise ValidationError("Audio file too large")
        if base_mime_type(artifact.mime_type) not in ALLOWED_AUDIO_TYPES:
            raise ValidationError("Invalid audio file type")

    async def speech_to_text(self, artifact: AudioArtifact) -> str:
        """Transcribe a recording; returns sanitized, non-empty text."""
        with self._observe("speech_to_text", {"audio_bytes": artifact.size}):
            client = self._ensure_client()
            self._admit()
            self.validate_audio(artifact)

            file_obj = io.BytesIO(artifact.data)
            file_obj.name = f"recording.{artifact.extension}"
            try:
                resp = await client.audio.transcriptions.create(
                    file=file_obj,
                    model=self.config.stt_model,
                    response_format="json",
                    temperature=0.2,
                )
            except Exception as e:
                raise classify_provider_error(e, "Speech recognition") from e

            transcript = sanitize_input(getattr(resp, "text", "") or "")
            if not transcript:
                raise ValidationError("No speech detected in audio")
            return transcript

    async def analyze_intent(self, transcript: str) -> IntentAnalysis:
        """Classify a transcript into the fixed intent set.

        Provider output that is present but not a usable JSON object yields the
        default general_query analysis. Transport and auth failures are raised.
        """
        with self._observe("analyze_intent"):
            client = self._ensure_client()
            self._admit()

            sanitized = sanitize_input(transcript)
            if not sanitized:
                raise ValidationError("No speech detected. Please try speaking clearly.")

            try:
                resp = await client.chat.completions.create(
                    model=self.config.nlu_model,
                    messages=[
                        {"role": "system", "content": get_intent_system_content()},
                        {"role": "user", "content": sanitized},
                    ],
                    temperature=0.3,
                    max_tokens=500,
                    response_format={"type": "json_object"},
                )
            except Exception as e:
                raise classify_provider_error(e, "Language processing") from e

            content = resp.choices[0].message.content if resp.choices else None
            if not content or not content.strip():
                raise ValidationError("No response from AI service")

            parsed = _extract_json_from_text(content)
            analysis = _parse_analysis(parsed, sanitized) if parsed is not None else None
            if analysis is None:
                logging_utils_module.log_stage(
                    "analyze_intent_fallback", latency_ms=0.0, detail={"intent": DEFAULT_INTENT}
                )
                return fallback_analysis(sanitized)
            return analysis

    async def synthesize_speech(self, text: str, language: str = DEFAULT_LANGUAGE) -> bytes:
        """Return one playable audio buffer (config.tts_format) for `text`."""
        with self._observe("synthesize_speech", {"language": language}):
            client = self._ensure_client()
            self._admit()

            sanitized = sanitize_input(text, max_length=None)
            if not sanitized:
                raise ValidationError("Nothing to say")
            if len(sanitized) > MAX_SPEECH_TEXT_LENGTH:
                raise ValidationError("Text too long for speech synthesis")

            voice = self.config.tts_voice if self.config.tts_voice in TTS_VOICES else DEFAULT_TTS_VOICE
            try:
                resp = await client.audio.speech.create(
                    model=self.config.tts_model,
                    voice=voice,
                    input=sanitized,
                    response_format=self.config.tts_format,
                    speed=self.config.tts_speed,
                )
                audio = await _read_audio(resp)
            except Exception as e:
                raise classify_provider_error(e, "Speech synthesis") from e

            if not audio:
                raise SecurityError("Speech synthesis failed: empty audio response")
            return audio

    async def simplify(self, content: str, language: str = DEFAULT_LANGUAGE) -> str:
        """Rewrite portal language in plain words; returns `content` unchanged on any failure."""
        try:
            with self._observe("simplify", {"language": language}):
                client = self._ensure_client()
                self._admit()

                sanitized = sanitize_input(content)
                try:
                    resp = await client.chat.completions.create(
                        model=self.config.nlu_model,
                        messages=[
                            {"role": "system", "content": get_simplify_system_content(language)},
                            {"role": "user", "content": sanitized},
                        ],
                        temperature=0.2,
                        max_tokens=300,
                    )
                except Exception as e:
                    raise classify_provider_error(e, "Simplification") from e

                simplified = resp.choices[0].message.content if resp.choices else None
                return sanitize_input(simplified) or sanitized or content
        except Exception:
            return content

    async def aclose(self) -> None:
        if self._client is None:
            return
        result = self._client.close()
        if inspect.isawaitable(result):
            await result


__all__ = ["CapabilityClient", "classify_provider_error"]
