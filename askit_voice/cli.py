"""Push-to-talk terminal consumer for the voice pipeline.

Usage:
    askit-voice                      # Enter to start, Enter to stop, Ctrl-C to quit
    askit-voice --file query.wav     # run the pipeline on a recorded file
    askit-voice --simplify "Application status pending due to KYC mismatch" --lang hi
"""

from __future__ import annotations

import argparse
import asyncio
import json
import mimetypes
import sys
from pathlib import Path

from askit_voice.capability import CapabilityClient
from askit_voice.config import VoiceConfig
from askit_voice.models import AudioArtifact, IntentAnalysis
from askit_voice.recorder import RecordingController
from askit_voice.session import SessionSnapshot, VoiceSession


def _print_result(transcript: str, analysis: IntentAnalysis) -> None:
    print(json.dumps({"transcript": transcript, "analysis": analysis.to_contract()}, ensure_ascii=False))


def _print_error(snap: SessionSnapshot) -> None:
    if snap.error:
        print(f"error: {snap.error}", file=sys.stderr)


def _artifact_from_file(path: Path) -> AudioArtifact:
    mime_type = mimetypes.guess_type(path.name)[0] or "audio/wav"
    return AudioArtifact(data=path.read_bytes(), mime_type=mime_type)


async def _run(args: argparse.Namespace) -> int:
    config = VoiceConfig.from_env()
    client = CapabilityClient(config)
    if not client.available:
        print("OPENAI_API_KEY is not set; the voice pipeline is unavailable.", file=sys.stderr)
        return 2

    if args.simplify:
        print(await client.simplify(args.simplify, args.lang))
        await client.aclose()
        return 0

    recorder = RecordingController(config=config)
    session = VoiceSession(
        recorder,
        client,
        _print_result,
        config=config,
        speak_responses=not args.no_speak,
    )
    last_error: list[str | None] = [None]

    def _on_snapshot(snap: SessionSnapshot) -> None:
        if snap.error and snap.error != last_error[0]:
            _print_error(snap)
        last_error[0] = snap.error

    session.subscribe(_on_snapshot)
    loop = asyncio.get_running_loop()
    try:
        if args.file:
            try:
                artifact = _artifact_from_file(Path(args.file))
            except OSError as e:
                print(f"error: cannot read {args.file}: {e.strerror or e}", file=sys.stderr)
                return 1
            result = await session.process(artifact)
            return 0 if result is not None else 1

        while True:
            await loop.run_in_executor(None, input, "Press Enter to speak...")
            if not await session.start_recording():
                continue
            print("Listening. Press Enter to stop.", file=sys.stderr)
            await loop.run_in_executor(None, input)
            await session.stop_recording()
    except (EOFError, KeyboardInterrupt):
        return 0
    finally:
        await session.aclose()


def main() -> None:
    ap = argparse.ArgumentParser(description="Voice command pipeline (push-to-talk)")
    ap.add_argument("--file", help="Process an existing audio file instead of the microphone")
    ap.add_argument("--simplify", help="Simplify the given text and exit")
    ap.add_argument("--lang", default="en", help="Target language for --simplify")
    ap.add_argument("--no-speak", action="store_true", help="Do not play spoken replies")
    args = ap.parse_args()
    try:
        sys.exit(asyncio.run(_run(args)))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
