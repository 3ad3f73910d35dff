"""Tests for vocalog.transcribe.engine module."""

from __future__ import annotations

import threading
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import numpy as np
import pytest

from tests.helpers import SlowWhisperModel
from vocalog.exceptions import InvalidModelPathError, TranscriptionCancelledError
from vocalog.models import Language, TranscriptSegment
from vocalog.transcribe import WhisperCppEngine, segments_to_transcript


class FakeWhisperModel:
    """Stands in for pywhispercpp's Model; one segment per window."""

    def __init__(self) -> None:
        self.calls: list[tuple[int, dict[str, Any]]] = []

    def transcribe(self, media: np.ndarray, **params: Any) -> list[SimpleNamespace]:
        self.calls.append((int(media.size), params))
        return [SimpleNamespace(t0=0, t1=50, text=f" window {len(self.calls)}")]


def _engine_with_fake_model(tmp_path: Path, window_seconds: float = 1.0) -> tuple[WhisperCppEngine, FakeWhisperModel]:
    engine = WhisperCppEngine(tmp_path / "ggml-small.bin", n_threads=1, window_seconds=window_seconds)
    model = FakeWhisperModel()
    engine._model = model
    return engine, model


class TestSegmentsToTranscript:
    def test_joins_with_newlines(self) -> None:
        segments = [
            TranscriptSegment(start=0.0, end=1.0, text=" first "),
            TranscriptSegment(start=1.0, end=2.0, text="second"),
        ]
        transcript, kept = segments_to_transcript(segments)
        assert transcript == "first\nsecond"
        assert [s.text for s in kept] == ["first", "second"]

    def test_drops_blank_segments(self) -> None:
        segments = [
            TranscriptSegment(start=0.0, end=1.0, text="  "),
            TranscriptSegment(start=1.0, end=2.0, text="kept"),
        ]
        transcript, kept = segments_to_transcript(segments)
        assert transcript == "kept"
        assert len(kept) == 1
        assert kept[0].start == 1.0

    def test_empty(self) -> None:
        assert segments_to_transcript([]) == ("", [])


class TestWhisperCppEngine:
    def test_missing_model_raises(self, tmp_path: Path) -> None:
        engine = WhisperCppEngine(tmp_path / "missing.bin")
        with pytest.raises(InvalidModelPathError):
            engine.transcribe(np.zeros(160, dtype=np.float32), Language.ENGLISH, lambda: False)

    def test_windows_offset_timestamps(self, tmp_path: Path) -> None:
        engine, model = _engine_with_fake_model(tmp_path)
        samples = np.zeros(40000, dtype=np.float32)

        segments = engine.transcribe(samples, Language.ENGLISH, lambda: False)

        assert [call[0] for call in model.calls] == [16000, 16000, 8000]
        assert [(s.start, s.end) for s in segments] == [(0.0, 0.5), (1.0, 1.5), (2.0, 2.5)]

    def test_english_params(self, tmp_path: Path) -> None:
        engine, model = _engine_with_fake_model(tmp_path)
        engine.transcribe(np.zeros(100, dtype=np.float32), Language.ENGLISH, lambda: False)

        params = model.calls[0][1]
        assert params["language"] == "en"
        assert params["translate"] is False
        assert "initial_prompt" not in params

    def test_chinese_gets_initial_prompt(self, tmp_path: Path) -> None:
        engine, model = _engine_with_fake_model(tmp_path)
        engine.transcribe(np.zeros(100, dtype=np.float32), Language.CHINESE, lambda: False)

        params = model.calls[0][1]
        assert params["language"] == "zh"
        assert params["initial_prompt"] == Language.CHINESE.initial_prompt

    def test_abort_before_start(self, tmp_path: Path) -> None:
        engine, model = _engine_with_fake_model(tmp_path)
        with pytest.raises(TranscriptionCancelledError):
            engine.transcribe(np.zeros(100, dtype=np.float32), Language.ENGLISH, lambda: True)
        assert model.calls == []

    def test_abort_between_windows(self, tmp_path: Path) -> None:
        engine, model = _engine_with_fake_model(tmp_path)
        probes = iter([False, False, True])

        with pytest.raises(TranscriptionCancelledError):
            engine.transcribe(np.zeros(48000, dtype=np.float32), Language.ENGLISH, lambda: next(probes))

        assert len(model.calls) == 1

    def test_concurrent_calls_share_context_serially(self, tmp_path: Path) -> None:
        engine = WhisperCppEngine(tmp_path / "ggml-small.bin", n_threads=1, window_seconds=0.5)
        model = SlowWhisperModel(delay=0.05)
        engine._model = model
        results: list[list[TranscriptSegment]] = []

        def run() -> None:
            results.append(
                engine.transcribe(np.zeros(16000, dtype=np.float32), Language.ENGLISH, lambda: False)
            )

        workers = [threading.Thread(target=run) for _ in range(3)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(5)

        assert model.max_active == 1
        assert [len(segments) for segments in results] == [2, 2, 2]
