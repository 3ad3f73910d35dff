"""
vocalog.transcribe.engine - Speech engine interface and whisper.cpp adapter.

An engine takes mono 16kHz float32 samples, a language and a cancellation
probe, and returns timestamped segments. It runs in a worker thread and must
poll the probe often enough for cancellation to take effect.
"""

from __future__ import annotations

import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

import numpy as np

from vocalog.audio.decode import TARGET_SAMPLE_RATE
from vocalog.exceptions import (
    DependencyError,
    InvalidModelPathError,
    TranscriptionCancelledError,
)
from vocalog.logging import logger
from vocalog.models import Language, TranscriptSegment

AbortProbe = Callable[[], bool]


class SpeechEngine(ABC):
    """Blocking speech recogniser driven by the transcription coordinator."""

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def transcribe(
        self,
        samples: np.ndarray,
        language: Language,
        should_abort: AbortProbe,
    ) -> list[TranscriptSegment]:
        """Recognise speech in ``samples``.

        Implementations raise TranscriptionCancelledError (or any error) once
        ``should_abort()`` returns True.
        """


def segments_to_transcript(segments: list[TranscriptSegment]) -> tuple[str, list[TranscriptSegment]]:
    """Strip segment texts, drop empty ones and join the rest with newlines."""
    kept: list[TranscriptSegment] = []
    for segment in segments:
        text = segment.text.strip()
        if not text:
            continue
        kept.append(TranscriptSegment(start=segment.start, end=segment.end, text=text))
    return "\n".join(s.text for s in kept), kept


class WhisperCppEngine(SpeechEngine):
    """whisper.cpp via pywhispercpp, fed in fixed-length windows.

    The probe is checked before every window, so cancellation lands within
    one window's worth of inference. One whisper.cpp context serves every
    call, and windows from different calls run one at a time under
    ``_inference_lock``.
    """

    def __init__(
        self,
        model_path: Path,
        n_threads: int | None = None,
        window_seconds: float = 30.0,
    ) -> None:
        self.model_path = model_path
        self.n_threads = n_threads or os.cpu_count() or 1
        self.window_seconds = window_seconds
        self._model: Any = None
        self._model_lock = threading.Lock()
        self._inference_lock = threading.Lock()

    def name(self) -> str:
        return "whisper_cpp"

    def _load_model(self) -> Any:
        with self._model_lock:
            if self._model is not None:
                return self._model

            if not self.model_path.is_file():
                raise InvalidModelPathError(
                    f"Acoustic model not found: {self.model_path}. Run `vocalog model` first."
                )
            try:
                from pywhispercpp.model import Model
            except ImportError as e:
                raise DependencyError(
                    "pywhispercpp",
                    "whisper.cpp bindings not installed",
                    install_hint="pip install 'vocalog[whisper]'",
                ) from e

            logger.debug("Loading whisper model %s", self.model_path)
            self._model = Model(
                str(self.model_path),
                n_threads=self.n_threads,
                print_progress=False,
                print_realtime=False,
            )
            return self._model

    def transcribe(
        self,
        samples: np.ndarray,
        language: Language,
        should_abort: AbortProbe,
    ) -> list[TranscriptSegment]:
        if should_abort():
            raise TranscriptionCancelledError()
        model = self._load_model()

        params: dict[str, Any] = {
            "language": language.value,
            "translate": False,
            "no_context": True,
        }
        if language.initial_prompt:
            params["initial_prompt"] = language.initial_prompt

        window = max(1, int(self.window_seconds * TARGET_SAMPLE_RATE))
        audio = np.asarray(samples, dtype=np.float32)
        segments: list[TranscriptSegment] = []

        for offset in range(0, audio.size, window):
            chunk = audio[offset : offset + window]
            base = offset / TARGET_SAMPLE_RATE
            with self._inference_lock:
                if should_abort():
                    raise TranscriptionCancelledError()
                results = model.transcribe(chunk, **params)
            for seg in results:
                # whisper.cpp timestamps are in 10ms units
                segments.append(
                    TranscriptSegment(
                        start=round(base + seg.t0 / 100.0, 2),
                        end=round(base + seg.t1 / 100.0, 2),
                        text=seg.text,
                    )
                )
        return segments
