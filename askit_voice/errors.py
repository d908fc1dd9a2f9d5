"""Error taxonomy shared by the recorder, the capability client and the session."""

from __future__ import annotations


class VoiceError(Exception):
    """Base for every classified pipeline failure; `message` is user-facing."""

    kind = "voice"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SecurityError(VoiceError):
    """Capability misconfigured, provider auth failure, or a wrapped unexpected failure."""

    kind = "security"


class RateLimitError(VoiceError):
    """Admission denied by the rate limiter or by the provider."""

    kind = "rate_limit"

    def __init__(
        self,
        message: str,
        *,
        limit: int | None = None,
        window_seconds: float | None = None,
        retry_in: float | None = None,
    ) -> None:
        super().__init__(message)
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_in = retry_in


class ValidationError(VoiceError):
    """Input failed a structural check (empty, oversized, wrong encoding)."""

    kind = "validation"


class AudioError(VoiceError):
    """Device or capture-level failure."""

    kind = "audio"


__all__ = [
    "AudioError",
    "RateLimitError",
    "SecurityError",
    "ValidationError",
    "VoiceError",
]
