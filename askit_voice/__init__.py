"""Voice command pipeline: capture, transcribe, analyze intent, speak back."""

from askit_voice.errors import (
    AudioError,
    RateLimitError,
    SecurityError,
    ValidationError,
    VoiceError,
)

__version__ = "0.1.0"

__all__ = [
    "AudioError",
    "RateLimitError",
    "SecurityError",
    "ValidationError",
    "VoiceError",
    "__version__",
]
