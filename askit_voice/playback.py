"""Playback of synthesized replies."""

from __future__ import annotations

import asyncio
import io
from typing import Protocol

import soundfile as sf


class AudioPlayer(Protocol):
    async def play(self, audio: bytes, mime_type: str) -> None:
        """Play one buffer; returns when playback ends or is stopped."""
        ...

    def stop(self) -> None:
        ...


class SoundDevicePlayer:
    """Decode with soundfile and play through sounddevice, off the event loop."""

    def __init__(self, device: int | str | None = None) -> None:
        self.device = device

    def _decode(self, audio: bytes):
        data, sample_rate = sf.read(io.BytesIO(audio), dtype="float32")
        return data, sample_rate

    def _play_blocking(self, audio: bytes) -> None:
        import sounddevice as sd

        data, sample_rate = self._decode(audio)
        sd.play(data, samplerate=sample_rate, device=self.device)
        sd.wait()

    async def play(self, audio: bytes, mime_type: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._play_blocking, audio)

    def stop(self) -> None:
        import sounddevice as sd

        sd.stop()


__all__ = ["AudioPlayer", "SoundDevicePlayer"]
