"""Environment-resolved configuration."""

from __future__ import annotations

from unittest.mock import patch

from askit_voice.config import VoiceConfig


def test_defaults() -> None:
    cfg = VoiceConfig()
    assert cfg.has_credential is False
    assert cfg.rate_limit_max_requests == 10
    assert cfg.rate_limit_window_s == 60.0
    assert cfg.max_audio_bytes == 25 * 1024 * 1024
    assert cfg.max_recording_s == 30.0
    assert cfg.error_display_s == 5.0
    assert cfg.tts_speed == 0.9


def test_from_env_overrides() -> None:
    with patch.dict(
        "os.environ",
        {
            "OPENAI_API_KEY": "  sk-live  ",
            "TTS_VOICE": "Alloy",
            "RATE_LIMIT_MAX_REQUESTS": "3",
            "MAX_RECORDING_S": "12.5",
        },
        clear=False,
    ):
        cfg = VoiceConfig.from_env()
    assert cfg.openai_api_key == "sk-live"
    assert cfg.has_credential
    assert cfg.tts_voice == "alloy"
    assert cfg.rate_limit_max_requests == 3
    assert cfg.max_recording_s == 12.5


def test_from_env_ignores_malformed_numbers() -> None:
    with patch.dict(
        "os.environ",
        {"RATE_LIMIT_WINDOW_S": "soon", "SAMPLE_RATE": "high"},
        clear=False,
    ):
        cfg = VoiceConfig.from_env()
    assert cfg.rate_limit_window_s == 60.0
    assert cfg.sample_rate == 44100


def test_missing_key_means_no_credential() -> None:
    with patch.dict("os.environ", {"OPENAI_API_KEY": ""}, clear=False):
        cfg = VoiceConfig.from_env()
    assert not cfg.has_credential
