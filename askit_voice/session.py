"""Voice session orchestrator: one utterance from microphone to delivered intent.

idle -> recording -> transcribing -> analyzing -> (speaking) -> idle, with
failed reachable from any non-idle state and always followed by idle.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from askit_voice import logging_utils as logging_utils_module
from askit_voice import metrics as metrics_module
from askit_voice.capability import CapabilityClient
from askit_voice.config import VoiceConfig
from askit_voice.errors import AudioError, ValidationError, VoiceError
from askit_voice.models import DEFAULT_LANGUAGE, AudioArtifact, IntentAnalysis
from askit_voice.playback import AudioPlayer, SoundDevicePlayer
from askit_voice.recorder import RecorderSnapshot, RecorderState, RecordingController
from askit_voice.tracing import Tracer, make_tracer, text_hash

logger = logging.getLogger(__name__)

TranscriptionCallback = Callable[[str, IntentAnalysis], Any]


class SessionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    TRANSCRIBING = "transcribing"
    ANALYZING = "analyzing"
    SPEAKING = "speaking"
    FAILED = "failed"


PROCESSING_STATES = frozenset({
    SessionState.TRANSCRIBING, SessionState.ANALYZING, SessionState.SPEAKING,
})


@dataclass(frozen=True)
class SessionSnapshot:
    state: SessionState
    is_recording: bool
    is_processing: bool
    is_playing: bool
    audio_artifact: Optional[AudioArtifact]
    error: Optional[str]
    language: str
    transcript: Optional[str]
    analysis: Optional[IntentAnalysis]


@dataclass(frozen=True)
class PipelineResult:
    transcript: str
    analysis: IntentAnalysis
    spoken: bool = False


class VoiceSession:
    """Sequences recorder and capability client for one utterance at a time.

    `on_transcription(transcript, analysis)` is invoked exactly once per
    completed utterance and may be a plain function or a coroutine function.
    """

    def __init__(
        self,
        recorder: RecordingController,
        client: CapabilityClient,
        on_transcription: TranscriptionCallback,
        *,
        player: AudioPlayer | None = None,
        config: VoiceConfig | None = None,
        tracer: Tracer | None = None,
        speak_responses: bool = True,
        session_id: str | None = None,
    ) -> None:
        self.recorder = recorder
        self.client = client
        self.on_transcription = on_transcription
        self.config = config or recorder.config
        self.player: AudioPlayer = player if player is not None else SoundDevicePlayer()
        self.tracer: Tracer = tracer or make_tracer()
        self.speak_responses = speak_responses
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.language = DEFAULT_LANGUAGE

        self._state = SessionState.IDLE
        self._playing = False
        self._error: str | None = None
        self._error_timer: asyncio.TimerHandle | None = None
        self._transcript: str | None = None
        self._analysis: IntentAnalysis | None = None
        self._subscribers: list[Callable[[SessionSnapshot], None]] = []

        if recorder.on_timeout is None:
            recorder.on_timeout = self.stop_recording
        self._unsubscribe_recorder = recorder.subscribe(self._on_recorder_snapshot)

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self._state,
            is_recording=self.recorder.is_recording,
            is_processing=self._state in PROCESSING_STATES,
            is_playing=self._playing,
            audio_artifact=self.recorder.audio_artifact,
            error=self._error,
            language=self.language,
            transcript=self._transcript,
            analysis=self._analysis,
        )

    def subscribe(self, callback: Callable[[SessionSnapshot], None]) -> Callable[[], None]:
        """Register for snapshots on every change; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _notify(self) -> None:
        snap = self.snapshot
        for cb in list(self._subscribers):
            cb(snap)

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        self._notify()

    def _on_recorder_snapshot(self, snap: RecorderSnapshot) -> None:
        if snap.state == RecorderState.ERROR and self._state == SessionState.RECORDING:
            self._fail(AudioError(snap.error or "Recording failed. Please try again."))
            return
        self._notify()

    # -- errors ------------------------------------------------------------

    def _show_error(self, message: str) -> None:
        """Publish a user-facing message that clears itself after the display window."""
        self._error = message
        if self._error_timer is not None:
            self._error_timer.cancel()
        loop = asyncio.get_running_loop()
        self._error_timer = loop.call_later(self.config.error_display_s, self._expire_error, message)
        self._notify()

    def _expire_error(self, message: str) -> None:
        if self._error == message:
            self._error_timer = None
            self.recorder.clear_error()
            self._error = None
            self._notify()

    def clear_error(self) -> None:
        if self._error_timer is not None:
            self._error_timer.cancel()
            self._error_timer = None
        self.recorder.clear_error()
        if self._error is not None:
            self._error = None
            self._notify()

    def _fail(self, exc: VoiceError | None = None, message: str | None = None) -> None:
        message = message or (exc.message if exc is not None else "Voice processing failed. Please try again.")
        logging_utils_module.log_stage(
            "utterance_failed",
            latency_ms=0.0,
            session_id=self.session_id,
            error=True,
            error_kind=exc.kind if exc is not None else "unexpected",
            detail={"from_state": self._state.value},
        )
        self._state = SessionState.FAILED
        self._show_error(message)
        self._set_state(SessionState.IDLE)

    # -- inbound operations --------------------------------------------------

    async def start_recording(self) -> bool:
        """Begin capturing an utterance. False if busy or the recorder rejected it.

        The recorder is idle again while an utterance is transcribed, analyzed
        and spoken, so its single-session check alone would let a second
        utterance start mid-pipeline; the session state covers that window.
        """
        if self._state != SessionState.IDLE:
            logger.info("session: start rejected while %s", self._state.value)
            return False

        self.clear_error()
        try:
            started = await self.recorder.start()
        except VoiceError as e:
            self._fail(e)
            return False
        if not started:
            return False
        self._set_state(SessionState.RECORDING)
        return True

    async def stop_recording(self) -> PipelineResult | None:
        """Stop capturing and run the pipeline on the finished recording."""
        if self._state != SessionState.RECORDING:
            return None

        # Claim the utterance before awaiting so a concurrent auto-stop is a no-op.
        self._set_state(SessionState.TRANSCRIBING)
        try:
            artifact = await self.recorder.stop()
        except VoiceError as e:
            self._fail(e)
            return None
        if artifact is None:
            self._set_state(SessionState.IDLE)
            return None
        return await self._run_pipeline(artifact)

    async def process(self, artifact: AudioArtifact) -> PipelineResult | None:
        """Run the pipeline on an already-finalized recording (e.g. an uploaded file)."""
        if self._state != SessionState.IDLE:
            logger.info("session: process rejected while %s", self._state.value)
            return None
        self.clear_error()
        self._set_state(SessionState.TRANSCRIBING)
        return await self._run_pipeline(artifact)

    def stop_playback(self) -> None:
        if self._playing:
            self.player.stop()

    # -- pipeline ------------------------------------------------------------

    async def _run_pipeline(self, artifact: AudioArtifact) -> PipelineResult | None:
        t0 = time.perf_counter()
        tags = {"session_id": self.session_id}
        try:
            self._set_state(SessionState.TRANSCRIBING)
            with self.tracer.span("speech_to_text", tags):
                transcript = await self.client.speech_to_text(artifact)
            if not transcript.strip():
                raise ValidationError("No speech detected. Please try speaking clearly.")

            tags = {**tags, "transcript_hash": text_hash(transcript)}
            self._set_state(SessionState.ANALYZING)
            with self.tracer.span("analyze_intent", tags):
                analysis = await self.client.analyze_intent(transcript)

            self.language = analysis.language or DEFAULT_LANGUAGE
            self._transcript = transcript
            self._analysis = analysis
            result = self.on_transcription(transcript, analysis)
            if inspect.isawaitable(result):
                await result
        except VoiceError as e:
            metrics_module.record_request("utterance", (time.perf_counter() - t0) * 1000, error=True)
            self._fail(e)
            return None
        except Exception as e:
            logger.exception("session: pipeline failed")
            metrics_module.record_request("utterance", (time.perf_counter() - t0) * 1000, error=True)
            self._fail(message=f"Processing failed: {e}")
            return None

        spoken = False
        if analysis.response and self.speak_responses:
            spoken = await self._speak(analysis.response, tags)

        latency_ms = (time.perf_counter() - t0) * 1000
        metrics_module.record_request("utterance", latency_ms)
        logging_utils_module.log_stage(
            "utterance_completed",
            latency_ms=latency_ms,
            session_id=self.session_id,
            detail={
                "intent": analysis.intent,
                "language": analysis.language,
                "transcript_hash": tags["transcript_hash"],
                "spoken": spoken,
            },
        )
        self._set_state(SessionState.IDLE)
        return PipelineResult(transcript=transcript, analysis=analysis, spoken=spoken)

    async def _speak(self, text: str, tags: dict[str, str]) -> bool:
        """Synthesize and play a reply. Failures are shown but never undo the delivered result."""
        self._playing = True
        self._set_state(SessionState.SPEAKING)
        try:
            with self.tracer.span("synthesize_speech", tags):
                audio = await self.client.synthesize_speech(text, self.language)
            self.player.stop()
            await self.player.play(audio, f"audio/{self.config.tts_format}")
            return True
        except VoiceError as e:
            self._show_error(f"Voice response failed: {e.message}")
            return False
        except Exception as e:
            logger.exception("session: playback failed")
            self._show_error(f"Voice response failed: {e}")
            return False
        finally:
            self._playing = False

    async def aclose(self) -> None:
        if self._error_timer is not None:
            self._error_timer.cancel()
            self._error_timer = None
        self._unsubscribe_recorder()
        await self.recorder.aclose()
        await self.client.aclose()


__all__ = [
    "PipelineResult",
    "SessionSnapshot",
    "SessionState",
    "TranscriptionCallback",
    "VoiceSession",
]
