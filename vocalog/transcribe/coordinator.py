"""
vocalog.transcribe.coordinator - Single-flight transcription coordinator.

Admits at most one transcription at a time, persists the raw recording before
inference, runs decode + inference in a worker thread with a cancellation
probe, and writes the finished session through to the store.
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from concurrent.futures import Executor
from datetime import datetime
from pathlib import Path

from vocalog.audio.decode import (
    TARGET_SAMPLE_RATE,
    decode_audio_base64,
    load_for_inference,
    probe_wav,
)
from vocalog.exceptions import (
    EngineError,
    StorageError,
    TranscriptionCancelledError,
    TranscriptionInProgressError,
    VocalogError,
)
from vocalog.io import remove_tree, write_bytes
from vocalog.logging import logger
from vocalog.models import Language, SpeechSession, TranscriptSegment
from vocalog.store import (
    RECORDING_FILENAME,
    ActiveJob,
    SessionStore,
    SpeechState,
    write_session_sidecars,
)
from vocalog.transcribe.engine import SpeechEngine, segments_to_transcript


class ActiveJobGuard:
    """Scoped ownership of the active-job slot.

    ``async with ActiveJobGuard(state)`` either admits a new job or raises
    TranscriptionInProgressError. The slot is released by an explicit
    ``release()``, by ``__aexit__`` otherwise, and as a last resort by a
    callback scheduled on the loop when the guard is abandoned mid-flight.
    """

    def __init__(self, state: SpeechState) -> None:
        self._state = state
        self.job = ActiveJob()
        self._admitted = False
        self._released = False
        self._loop: asyncio.AbstractEventLoop | None = None

    async def __aenter__(self) -> ActiveJobGuard:
        async with self._state.lock:
            if self._state.active_job is not None:
                raise TranscriptionInProgressError()
            self._state.active_job = self.job
        self._admitted = True
        self._loop = asyncio.get_running_loop()
        logger.debug("Transcription job admitted")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self.release()
        finally:
            self.release_nowait()

    @property
    def released(self) -> bool:
        return self._released

    async def release(self) -> None:
        if not self._admitted or self._released:
            return
        async with self._state.lock:
            self._clear_slot()
        self._released = True
        logger.debug("Transcription job released")

    def release_nowait(self) -> None:
        """Fallback release that never awaits.

        Also raises the cancellation flag so an orphaned worker stops at its
        next probe.
        """
        if not self._admitted or self._released:
            return
        self._released = True
        self.job.cancel()
        loop = self._loop
        if loop is not None and not loop.is_closed():
            try:
                loop.call_soon_threadsafe(self._clear_slot)
                logger.warning("Transcription job abandoned; releasing slot")
                return
            except RuntimeError:
                pass
        self._clear_slot()

    def _clear_slot(self) -> None:
        # Critical sections on the state never await, so a loop callback
        # cannot land inside one.
        if self._state.active_job is self.job:
            self._state.active_job = None

    def __del__(self) -> None:
        self.release_nowait()


def default_title(language: Language, when: datetime) -> str:
    return f"{language.display_name} transcript {when:%H:%M:%S}"


class TranscriptionCoordinator:
    """Runs transcriptions one at a time against a session store."""

    def __init__(
        self,
        store: SessionStore,
        engine: SpeechEngine,
        executor: Executor | None = None,
        target_sample_rate: int = TARGET_SAMPLE_RATE,
    ) -> None:
        self.store = store
        self.engine = engine
        self.executor = executor
        self.target_sample_rate = target_sample_rate

    async def transcribe(
        self,
        audio: bytes | str,
        language: str | Language,
        title: str | None = None,
    ) -> SpeechSession:
        """Transcribe a WAV recording into a new stored session.

        Args:
            audio: Raw WAV bytes, or base64 / data-URL text
            language: Language tag ("en", "zh" or an alias)
            title: Optional session title; a timestamped default otherwise

        Returns:
            The persisted session

        Raises:
            UnsupportedLanguageError: Unknown language, before any I/O
            AudioFormatError: Payload is not a usable WAV container
            TranscriptionInProgressError: Another job holds the slot
            TranscriptionCancelledError: cancel() was called during the job
            EngineError: The speech engine failed
            StorageError: Artifacts or index could not be written
        """
        lang = Language.parse(language)
        audio_bytes = decode_audio_base64(audio) if isinstance(audio, str) else bytes(audio)
        info = probe_wav(audio_bytes)

        session_id = str(uuid.uuid4())
        session_dir = self.store.session_dir(session_id)
        recording = session_dir / RECORDING_FILENAME

        async with ActiveJobGuard(self.store.state) as guard:
            logger.info(
                "Transcribing %.1fs of %s audio as session %s",
                info.duration_seconds,
                lang.value,
                session_id,
            )
            try:
                write_bytes(recording, audio_bytes)
            except OSError as e:
                await guard.release()
                remove_tree(session_dir)
                raise StorageError(f"Could not save recording {recording}: {e}") from e

            try:
                segments = await self._run_engine(audio_bytes, lang, guard.job.cancel_event)
            except asyncio.CancelledError:
                guard.job.cancel()
                remove_tree(session_dir)
                raise
            except Exception as e:
                cancelled = guard.job.cancelled
                await guard.release()
                remove_tree(session_dir)
                if cancelled:
                    logger.info("Session %s cancelled", session_id)
                    if isinstance(e, TranscriptionCancelledError):
                        raise
                    raise TranscriptionCancelledError() from e
                if isinstance(e, VocalogError):
                    raise
                raise EngineError(f"{self.engine.name()} failed: {e}") from e

            await guard.release()

        return await self._finish(session_id, session_dir, recording, lang, title, segments)

    async def _run_engine(
        self,
        audio_bytes: bytes,
        language: Language,
        cancel_event: threading.Event,
    ) -> list[TranscriptSegment]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self.executor,
            self._infer,
            audio_bytes,
            language,
            cancel_event,
        )

    def _infer(
        self,
        audio_bytes: bytes,
        language: Language,
        cancel_event: threading.Event,
    ) -> list[TranscriptSegment]:
        samples = load_for_inference(audio_bytes, self.target_sample_rate)
        return self.engine.transcribe(samples, language, cancel_event.is_set)

    async def _finish(
        self,
        session_id: str,
        session_dir: Path,
        recording: Path,
        language: Language,
        title: str | None,
        segments: list[TranscriptSegment],
    ) -> SpeechSession:
        transcript, kept = segments_to_transcript(segments)
        now = datetime.now().astimezone()
        session = SpeechSession(
            id=session_id,
            title=title.strip() if title and title.strip() else default_title(language, now),
            language=language,
            transcript=transcript,
            segments=kept,
            audio_path=self.store.relative_path(recording),
            created_at=now.isoformat(),
        )
        try:
            write_session_sidecars(session_dir, transcript, kept)
            await self.store.insert_session(session)
        except BaseException:
            remove_tree(session_dir)
            raise
        logger.info("Session %s stored with %d segments", session_id, len(kept))
        return session

    async def cancel(self) -> bool:
        """Flag the running job for cancellation.

        Returns:
            True if a job was active; the job stops at the engine's next probe
        """
        async with self.store.state.lock:
            job = self.store.state.active_job
            if job is None:
                return False
            job.cancel()
        logger.info("Cancellation requested for active transcription")
        return True
