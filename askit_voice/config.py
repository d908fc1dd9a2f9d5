"""Pipeline configuration resolved from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_float(name: str, default: float) -> float:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    return (os.environ.get(name) or "").strip() or default


@dataclass(frozen=True)
class VoiceConfig:
    openai_api_key: str = ""
    stt_model: str = "whisper-1"
    nlu_model: str = "gpt-4o-mini"
    tts_model: str = "tts-1"
    tts_voice: str = "nova"
    tts_speed: float = 0.9
    tts_format: str = "mp3"
    rate_limit_max_requests: int = 10
    rate_limit_window_s: float = 60.0
    max_audio_bytes: int = 25 * 1024 * 1024
    max_recording_s: float = 30.0
    error_display_s: float = 5.0
    sample_rate: int = 44100
    channels: int = 1
    timeout_s: float = 30.0

    @property
    def has_credential(self) -> bool:
        return bool(self.openai_api_key.strip())

    @classmethod
    def from_env(cls) -> "VoiceConfig":
        return cls(
            openai_api_key=(os.environ.get("OPENAI_API_KEY") or "").strip(),
            stt_model=_env_str("STT_MODEL", cls.stt_model),
            nlu_model=_env_str("NLU_MODEL", cls.nlu_model),
            tts_model=_env_str("TTS_MODEL", cls.tts_model),
            tts_voice=_env_str("TTS_VOICE", cls.tts_voice).lower(),
            tts_speed=_env_float("TTS_SPEED", cls.tts_speed),
            rate_limit_max_requests=_env_int("RATE_LIMIT_MAX_REQUESTS", cls.rate_limit_max_requests),
            rate_limit_window_s=_env_float("RATE_LIMIT_WINDOW_S", cls.rate_limit_window_s),
            max_audio_bytes=_env_int("MAX_AUDIO_BYTES", cls.max_audio_bytes),
            max_recording_s=_env_float("MAX_RECORDING_S", cls.max_recording_s),
            error_display_s=_env_float("ERROR_DISPLAY_S", cls.error_display_s),
            sample_rate=_env_int("SAMPLE_RATE", cls.sample_rate),
            timeout_s=_env_float("OPENAI_TIMEOUT_S", cls.timeout_s),
        )


__all__ = ["VoiceConfig"]
