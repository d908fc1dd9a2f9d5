"""Data model for captured audio and intent analysis (intent_analysis.schema.json)."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Intent = Literal[
    "electricity_bill",
    "aadhaar_status",
    "ration_card",
    "tax_services",
    "general_query",
]

INTENTS = frozenset({
    "electricity_bill", "aadhaar_status", "ration_card", "tax_services", "general_query",
})

DEFAULT_INTENT: Intent = "general_query"
DEFAULT_LANGUAGE = "en"

# Recording encodings in priority order: compressed container, lossless fallback, raw PCM.
RECORDING_FORMATS: tuple[str, ...] = ("audio/ogg", "audio/flac", "audio/wav")

# Encodings accepted by the transcription provider (codec parameters stripped first).
ALLOWED_AUDIO_TYPES = frozenset({
    "audio/webm", "audio/ogg", "audio/flac", "audio/wav", "audio/x-wav",
    "audio/mpeg", "audio/mp3", "audio/mp4", "audio/m4a", "audio/x-m4a",
})

# File extension hint sent with the upload; the provider sniffs format by name.
AUDIO_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/flac": "flac",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/mp4": "mp4",
    "audio/m4a": "m4a",
    "audio/x-m4a": "m4a",
}


def base_mime_type(mime_type: str) -> str:
    """'audio/webm;codecs=opus' -> 'audio/webm'."""
    return (mime_type or "").split(";", 1)[0].strip().lower()


class AudioArtifact(BaseModel):
    """A finalized recording: one binary object plus its declared encoding."""

    data: bytes
    mime_type: str = Field(min_length=1, description="Declared encoding, e.g. audio/ogg")
    duration_seconds: Optional[float] = Field(default=None, ge=0.0)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return AUDIO_EXTENSIONS.get(base_mime_type(self.mime_type), "wav")


class IntentAnalysis(BaseModel):
    """Structured interpretation of one transcript."""

    model_config = ConfigDict(populate_by_name=True)

    intent: Intent = DEFAULT_INTENT
    entities: dict[str, Any] = Field(default_factory=dict)
    simplified_query: str = Field(alias="simplifiedQuery", description="Normalized restatement")
    language: str = Field(default=DEFAULT_LANGUAGE, min_length=1, description="BCP-47-like code")
    response: Optional[str] = Field(default=None, description="Text meant for spoken playback")

    def to_contract(self) -> dict[str, Any]:
        """Dump with wire names; `response` omitted when absent."""
        return self.model_dump(by_alias=True, exclude_none=True)


def fallback_analysis(sanitized_query: str) -> IntentAnalysis:
    """Default analysis used when provider output cannot be interpreted."""
    return IntentAnalysis(
        intent=DEFAULT_INTENT,
        entities={},
        simplified_query=sanitized_query,
        language=DEFAULT_LANGUAGE,
    )
