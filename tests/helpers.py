"""
Shared builders and fake speech engines for the test suite.
"""

from __future__ import annotations

import io
import threading
import time
from types import SimpleNamespace

import numpy as np
import soundfile as sf

from vocalog.exceptions import TranscriptionCancelledError
from vocalog.models import Language, SpeechSession, TranscriptSegment
from vocalog.store import RECORDING_FILENAME, SESSIONS_DIRNAME
from vocalog.transcribe.engine import AbortProbe, SpeechEngine


def make_wav(
    samples: np.ndarray,
    sample_rate: int = 16000,
    subtype: str = "PCM_16",
) -> bytes:
    """Encode samples shaped (n,) or (n, channels) as an in-memory WAV."""
    buffer = io.BytesIO()
    sf.write(buffer, samples, sample_rate, format="WAV", subtype=subtype)
    return buffer.getvalue()


def make_session(
    session_id: str,
    created_at: str = "2026-03-01T10:00:00+00:00",
    title: str = "Standup",
    transcript: str = "hello there",
) -> SpeechSession:
    return SpeechSession(
        id=session_id,
        title=title,
        language=Language.ENGLISH,
        transcript=transcript,
        segments=[TranscriptSegment(start=0.0, end=1.5, text=transcript)],
        audio_path=f"{SESSIONS_DIRNAME}/{session_id}/{RECORDING_FILENAME}",
        created_at=created_at,
    )


class ScriptedEngine(SpeechEngine):
    """Returns fixed segments and records what it was asked."""

    def __init__(self, segments: list[TranscriptSegment] | None = None) -> None:
        self.segments = segments if segments is not None else [
            TranscriptSegment(start=0.0, end=0.8, text=" hello world "),
        ]
        self.calls: list[tuple[int, Language]] = []

    def name(self) -> str:
        return "scripted"

    def transcribe(
        self,
        samples: np.ndarray,
        language: Language,
        should_abort: AbortProbe,
    ) -> list[TranscriptSegment]:
        self.calls.append((int(samples.size), language))
        return list(self.segments)


class BlockingEngine(SpeechEngine):
    """Blocks until ``release`` is set, polling the abort probe meanwhile."""

    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()

    def name(self) -> str:
        return "blocking"

    def transcribe(
        self,
        samples: np.ndarray,
        language: Language,
        should_abort: AbortProbe,
    ) -> list[TranscriptSegment]:
        self.started.set()
        while not self.release.wait(0.01):
            if should_abort():
                raise TranscriptionCancelledError()
        return [TranscriptSegment(start=0.0, end=1.0, text="done")]


class SlowWhisperModel:
    """Stands in for a pywhispercpp Model; each call sleeps and is counted."""

    def __init__(self, delay: float = 0.2) -> None:
        self.delay = delay
        self.started = threading.Event()
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def transcribe(self, media: np.ndarray, **params) -> list[SimpleNamespace]:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        self.started.set()
        try:
            time.sleep(self.delay)
        finally:
            with self._lock:
                self.active -= 1
        return [SimpleNamespace(t0=0, t1=10, text="window")]


class FailingEngine(SpeechEngine):
    def name(self) -> str:
        return "failing"

    def transcribe(
        self,
        samples: np.ndarray,
        language: Language,
        should_abort: AbortProbe,
    ) -> list[TranscriptSegment]:
        raise RuntimeError("decoder exploded")


