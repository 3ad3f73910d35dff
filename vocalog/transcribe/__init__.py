"""
vocalog.transcribe - Single-flight transcription.

The coordinator admits at most one job, runs the blocking engine off the
event loop and writes the finished session through to the store.
"""

from __future__ import annotations

from vocalog.transcribe.coordinator import ActiveJobGuard, TranscriptionCoordinator
from vocalog.transcribe.engine import SpeechEngine, WhisperCppEngine, segments_to_transcript

__all__ = [
    "ActiveJobGuard",
    "SpeechEngine",
    "TranscriptionCoordinator",
    "WhisperCppEngine",
    "segments_to_transcript",
]
