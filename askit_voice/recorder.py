"""Recording controller: one microphone capture session at a time.

The controller owns the capture stream for the whole session and releases it
on every exit path (stop, auto-timeout, device error). Chunks are raw PCM16;
finalization encodes them into the first container the source supports.
"""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

import numpy as np
import soundfile as sf

from askit_voice import logging_utils as logging_utils_module
from askit_voice.config import VoiceConfig
from askit_voice.errors import AudioError, ValidationError, VoiceError
from askit_voice.models import RECORDING_FORMATS, AudioArtifact

logger = logging.getLogger(__name__)

# soundfile (format, subtype) per recording MIME type
SOUNDFILE_FORMATS = {
    "audio/ogg": ("OGG", "VORBIS"),
    "audio/flac": ("FLAC", "PCM_16"),
    "audio/wav": ("WAV", "PCM_16"),
}

NO_AUDIO_MESSAGE = "No audio data recorded. Please try speaking louder."
TOO_LARGE_MESSAGE = "Audio recording too large. Please try a shorter recording."


class RecorderState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RECORDING = "recording"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass(frozen=True)
class CaptureConstraints:
    """Fixed quality constraints requested from the audio source."""

    echo_cancellation: bool = True
    noise_suppression: bool = True
    sample_rate: int = 44100
    channels: int = 1


class AudioStream(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...


class AudioSource(Protocol):
    """Capture backend. Callbacks must be invoked on the event loop thread."""

    def is_supported(self) -> bool: ...

    def supports_format(self, mime_type: str) -> bool: ...

    def open(
        self,
        constraints: CaptureConstraints,
        on_chunk: Callable[[bytes], None],
        on_error: Callable[[Exception], None],
    ) -> AudioStream: ...


@dataclass(frozen=True)
class RecorderSnapshot:
    state: RecorderState
    is_recording: bool
    audio_artifact: Optional[AudioArtifact]
    error: Optional[str]


@dataclass
class RecordingSession:
    mime_type: str
    chunks: list[bytes] = field(default_factory=list)
    stream: Optional[AudioStream] = None
    started_at: float = 0.0
    timer: Optional[asyncio.TimerHandle] = None


def encode_pcm(pcm: bytes, mime_type: str, sample_rate: int, channels: int) -> bytes:
    """Encode little-endian PCM16 into the container named by `mime_type`."""
    if not pcm:
        return b""
    fmt, subtype = SOUNDFILE_FORMATS[mime_type]
    samples = np.frombuffer(pcm, dtype=np.int16)
    if channels > 1:
        samples = samples[: len(samples) - len(samples) % channels].reshape(-1, channels)
    buf = io.BytesIO()
    sf.write(buf, samples, sample_rate, format=fmt, subtype=subtype)
    return buf.getvalue()


def _classify_device_error(exc: Exception) -> VoiceError:
    if isinstance(exc, VoiceError):
        return exc
    if isinstance(exc, PermissionError):
        return AudioError("Microphone access denied. Please allow microphone access and try again.")
    return AudioError(f"Failed to access microphone: {exc}. Please check your settings.")


class RecordingController:
    """State machine: idle -> starting -> recording -> stopping -> idle; error from starting/recording."""

    def __init__(
        self,
        source: AudioSource | None = None,
        config: VoiceConfig | None = None,
        *,
        on_timeout: Callable[[], Awaitable[Any]] | None = None,
        formats: tuple[str, ...] = RECORDING_FORMATS,
    ) -> None:
        self.config = config or VoiceConfig.from_env()
        self.source: AudioSource = source if source is not None else SoundDeviceSource()
        self.on_timeout = on_timeout
        self.formats = formats
        self.constraints = CaptureConstraints(
            sample_rate=self.config.sample_rate,
            channels=self.config.channels,
        )
        self._state = RecorderState.IDLE
        self._session: RecordingSession | None = None
        self._artifact: AudioArtifact | None = None
        self._error: str | None = None
        self._subscribers: list[Callable[[RecorderSnapshot], None]] = []
        self._timeout_task: asyncio.Task | None = None

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state == RecorderState.RECORDING

    @property
    def audio_artifact(self) -> AudioArtifact | None:
        return self._artifact

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def snapshot(self) -> RecorderSnapshot:
        return RecorderSnapshot(
            state=self._state,
            is_recording=self.is_recording,
            audio_artifact=self._artifact,
            error=self._error,
        )

    def subscribe(self, callback: Callable[[RecorderSnapshot], None]) -> Callable[[], None]:
        """Register for snapshots on every change; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def clear_error(self) -> None:
        if self._error is not None:
            self._error = None
            self._notify()

    def _notify(self) -> None:
        snap = self.snapshot
        for cb in list(self._subscribers):
            cb(snap)

    def _set_state(self, state: RecorderState) -> None:
        self._state = state
        self._notify()

    def _select_format(self) -> str:
        for mime_type in self.formats:
            if self.source.supports_format(mime_type):
                return mime_type
        raise AudioError("No supported audio recording format found")

    async def start(self) -> bool:
        """Begin a capture session. Returns False if one is already active."""
        if self._state in (RecorderState.STARTING, RecorderState.RECORDING, RecorderState.STOPPING):
            logger.info("recorder: start rejected, session already active (%s)", self._state.value)
            return False

        self._error = None
        self._artifact = None
        self._set_state(RecorderState.STARTING)

        session: RecordingSession | None = None
        try:
            if not self.source.is_supported():
                raise AudioError("Audio recording not supported on this system")
            session = RecordingSession(mime_type=self._select_format())
            session.stream = self.source.open(
                self.constraints,
                lambda chunk, s=session: self._on_chunk(s, chunk),
                lambda exc, s=session: self._on_stream_error(s, exc),
            )
            session.stream.start()
        except Exception as e:
            if session is not None:
                self._release(session)
            err = _classify_device_error(e)
            self._error = err.message
            self._set_state(RecorderState.ERROR)
            if err is e:
                raise
            raise err from e

        loop = asyncio.get_running_loop()
        session.started_at = loop.time()
        session.timer = loop.call_later(self.config.max_recording_s, self._on_timer, session)
        self._session = session
        self._set_state(RecorderState.RECORDING)
        logging_utils_module.log_stage(
            "recording_started", latency_ms=0.0, detail={"mime_type": session.mime_type}
        )
        return True

    async def stop(self) -> AudioArtifact | None:
        """Finalize the active session. No-op (None) when not recording.

        Raises ValidationError for an empty or oversized recording; the
        controller is back in idle either way.
        """
        session = self._session
        if session is None or self._state != RecorderState.RECORDING:
            return None

        self._set_state(RecorderState.STOPPING)
        if session.timer is not None:
            session.timer.cancel()

        try:
            try:
                if session.stream is not None:
                    session.stream.stop()
            finally:
                self._release(session)
            # Let chunk callbacks queued by the capture thread before stop() run.
            await asyncio.sleep(0)
            artifact = self._finalize(session)
        except VoiceError as e:
            self._finish(error=e.message)
            raise
        except Exception as e:
            err = AudioError(f"Recording failed: {e}. Please try again.")
            self._finish(error=err.message)
            raise err from e

        self._artifact = artifact
        self._finish(error=None)
        logging_utils_module.log_stage(
            "recording_finished",
            latency_ms=(artifact.duration_seconds or 0.0) * 1000,
            detail={"audio_bytes": artifact.size, "mime_type": artifact.mime_type},
        )
        return artifact

    def _finish(self, error: str | None) -> None:
        self._session = None
        self._error = error
        self._set_state(RecorderState.IDLE)

    def _finalize(self, session: RecordingSession) -> AudioArtifact:
        pcm = b"".join(session.chunks)
        if not pcm:
            raise ValidationError(NO_AUDIO_MESSAGE)
        data = encode_pcm(pcm, session.mime_type, self.constraints.sample_rate, self.constraints.channels)
        if not data:
            raise ValidationError(NO_AUDIO_MESSAGE)
        if len(data) > self.config.max_audio_bytes:
            raise ValidationError(TOO_LARGE_MESSAGE)
        frame_bytes = 2 * self.constraints.channels
        return AudioArtifact(
            data=data,
            mime_type=session.mime_type,
            duration_seconds=len(pcm) / (frame_bytes * self.constraints.sample_rate),
        )

    def _release(self, session: RecordingSession) -> None:
        stream, session.stream = session.stream, None
        if stream is None:
            return
        try:
            stream.close()
        except Exception:
            logger.exception("recorder: stream close failed")

    def _on_chunk(self, session: RecordingSession, chunk: bytes) -> None:
        if session is not self._session or not chunk:
            return
        session.chunks.append(bytes(chunk))

    def _on_stream_error(self, session: RecordingSession, exc: Exception) -> None:
        if session is not self._session or self._state != RecorderState.RECORDING:
            return
        if session.timer is not None:
            session.timer.cancel()
        self._release(session)
        self._session = None
        err = exc if isinstance(exc, AudioError) else AudioError(f"Recording failed: {exc}. Please try again.")
        self._error = err.message
        logging_utils_module.log_stage("recording_error", latency_ms=0.0, error=True, error_kind=err.kind)
        self._set_state(RecorderState.ERROR)

    def _on_timer(self, session: RecordingSession) -> None:
        if session is not self._session or self._state != RecorderState.RECORDING:
            return
        logger.info("recorder: auto-stopping after %.0f s", self.config.max_recording_s)
        self._timeout_task = asyncio.ensure_future(self._auto_stop())
        self._timeout_task.add_done_callback(self._on_auto_stop_done)

    def _on_auto_stop_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("recorder: auto-stop failed", exc_info=exc)
            logging_utils_module.log_stage(
                "auto_stop_failed", latency_ms=0.0, error=True, error_kind=getattr(exc, "kind", "unexpected")
            )

    async def _auto_stop(self) -> None:
        if self.on_timeout is not None:
            await self.on_timeout()
            return
        try:
            await self.stop()
        except VoiceError as e:
            # Already published through the snapshot error.
            logger.info("recorder: auto-stop finished with %s", e.kind)

    async def aclose(self) -> None:
        """Release any active session without producing an artifact."""
        session = self._session
        if session is not None:
            if session.timer is not None:
                session.timer.cancel()
            self._release(session)
            self._finish(error=None)
        if self._timeout_task is not None and not self._timeout_task.done():
            # Failures are reported by _on_auto_stop_done.
            await asyncio.wait({self._timeout_task})


class _SoundDeviceStream:
    def __init__(self, stream: Any, loop: asyncio.AbstractEventLoop, on_error: Callable[[Exception], None]) -> None:
        self._stream = stream
        self._loop = loop
        self._on_error = on_error
        self._stopping = False

    def finished(self) -> None:
        # PortAudio thread; a stream ending without stop() is a device failure.
        if not self._stopping:
            self._loop.call_soon_threadsafe(
                self._on_error, AudioError("Audio device stopped unexpectedly. Please try again.")
            )

    def start(self) -> None:
        self._stream.start()

    def stop(self) -> None:
        self._stopping = True
        self._stream.stop()

    def close(self) -> None:
        self._stopping = True
        self._stream.close()


class SoundDeviceSource:
    """Default microphone source backed by sounddevice (PortAudio).

    Echo cancellation and noise suppression are left to the OS audio stack;
    PortAudio exposes no switch for them.
    """

    def __init__(self, device: int | str | None = None) -> None:
        self.device = device

    def is_supported(self) -> bool:
        try:
            import sounddevice as sd
        except (ImportError, OSError):
            return False
        return bool(sd.query_devices())

    def supports_format(self, mime_type: str) -> bool:
        formats = SOUNDFILE_FORMATS.get(mime_type)
        return formats is not None and sf.check_format(*formats)

    def open(
        self,
        constraints: CaptureConstraints,
        on_chunk: Callable[[bytes], None],
        on_error: Callable[[Exception], None],
    ) -> AudioStream:
        import sounddevice as sd

        loop = asyncio.get_running_loop()
        try:
            sd.query_devices(self.device, kind="input")
        except (ValueError, sd.PortAudioError) as e:
            raise AudioError("No microphone found. Please connect a microphone and try again.") from e

        def _callback(indata, frames, time_info, status) -> None:
            if status:
                logger.debug("recorder: sounddevice status %s", status)
            # Copy bytes to avoid sharing the mutable PortAudio buffer.
            loop.call_soon_threadsafe(on_chunk, bytes(indata))

        holder: list[_SoundDeviceStream] = []
        stream = sd.RawInputStream(
            samplerate=constraints.sample_rate,
            channels=constraints.channels,
            dtype="int16",
            device=self.device,
            callback=_callback,
            finished_callback=lambda: holder[0].finished() if holder else None,
        )
        wrapped = _SoundDeviceStream(stream, loop, on_error)
        holder.append(wrapped)
        return wrapped


__all__ = [
    "AudioSource",
    "AudioStream",
    "CaptureConstraints",
    "RecorderSnapshot",
    "RecorderState",
    "RecordingController",
    "SoundDeviceSource",
    "encode_pcm",
]
