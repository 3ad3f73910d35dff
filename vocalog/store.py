"""
vocalog.store - Session store and the shared guarded state.

The in-memory session list is authoritative; sessions.json mirrors it and is
rewritten whole after every mutation. The same lock also guards the single
active-job slot used by the transcription coordinator, so admission and list
mutations never interleave.

Layout under the base directory:

    sessions.json             full index, pretty-printed array
    sessions/<id>/            per-session artifacts
        recording.wav
        transcript.txt
        segments.json
"""

from __future__ import annotations

import asyncio
import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from vocalog.exceptions import (
    InvalidStoragePathError,
    SerializationError,
    SessionNotFoundError,
    StorageError,
)
from vocalog.io import read_json, remove_tree, write_json, write_text
from vocalog.logging import logger
from vocalog.models import SpeechSession, TranscriptSegment

INDEX_FILENAME = "sessions.json"
SESSIONS_DIRNAME = "sessions"
RECORDING_FILENAME = "recording.wav"
TRANSCRIPT_FILENAME = "transcript.txt"
SEGMENTS_FILENAME = "segments.json"


@dataclass
class ActiveJob:
    """The single running transcription; holds its cancellation flag."""

    cancel_event: threading.Event = field(default_factory=threading.Event)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


class SpeechState:
    """Session list and active-job slot behind one asyncio lock.

    Callers must hold ``lock`` to read or write either field.
    """

    def __init__(self, sessions: list[SpeechSession]) -> None:
        self.lock = asyncio.Lock()
        self.sessions = sessions
        self.active_job: ActiveJob | None = None


def _created_key(session: SpeechSession) -> datetime:
    try:
        created = datetime.fromisoformat(session.created_at)
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if created.tzinfo is None:
        created = created.astimezone()
    return created


def sort_newest_first(sessions: list[SpeechSession]) -> None:
    """Sort sessions in place by creation time, newest first."""
    sessions.sort(key=_created_key, reverse=True)


def write_session_sidecars(
    session_dir: Path,
    transcript: str,
    segments: list[TranscriptSegment],
) -> None:
    """Write transcript.txt and segments.json next to the recording."""
    try:
        write_text(session_dir / TRANSCRIPT_FILENAME, transcript)
        write_json(
            session_dir / SEGMENTS_FILENAME,
            [segment.model_dump(mode="json") for segment in segments],
        )
    except OSError as e:
        raise StorageError(f"Could not write session files in {session_dir}: {e}") from e


class SessionStore:
    """Durable list of speech sessions rooted at a base directory."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir
        self.sessions_dir = base_dir / SESSIONS_DIRNAME
        self.index_path = base_dir / INDEX_FILENAME

        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create {self.sessions_dir}: {e}") from e

        self.state = SpeechState(self._load_index())

    def _load_index(self) -> list[SpeechSession]:
        if not self.index_path.exists():
            self._write_index([])
            return []
        try:
            raw = read_json(self.index_path)
        except json.JSONDecodeError as e:
            raise SerializationError(f"Malformed session index {self.index_path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Could not read {self.index_path}: {e}") from e
        if not isinstance(raw, list):
            raise SerializationError(f"Session index {self.index_path} is not a list")
        try:
            sessions = [SpeechSession.model_validate(item) for item in raw]
        except ValidationError as e:
            raise SerializationError(f"Invalid session record in {self.index_path}: {e}") from e
        logger.debug("Loaded %d sessions from %s", len(sessions), self.index_path)
        return sessions

    def _write_index(self, sessions: list[SpeechSession]) -> None:
        try:
            write_json(self.index_path, [s.model_dump(mode="json") for s in sessions])
        except OSError as e:
            raise StorageError(f"Could not write {self.index_path}: {e}") from e

    def persist(self) -> None:
        """Rewrite the index from the in-memory list. Caller holds the lock."""
        self._write_index(self.state.sessions)

    def session_dir(self, session_id: str) -> Path:
        """Artifact directory for a session id, refusing ids that leave sessions/."""
        if (
            not session_id.strip()
            or session_id in (".", "..")
            or "\x00" in session_id
            or "/" in session_id
            or "\\" in session_id
        ):
            raise InvalidStoragePathError(f"Invalid session id: {session_id!r}")
        return self.sessions_dir / session_id

    def relative_path(self, path: Path) -> str:
        return path.relative_to(self.base_dir).as_posix()

    def audio_file(self, session: SpeechSession) -> Path:
        """Resolve a session's audio artifact inside the base directory.

        Raises:
            InvalidStoragePathError: If audio_path points outside the base dir
        """
        base = self.base_dir.resolve()
        path = (base / session.audio_path).resolve()
        if base not in path.parents:
            raise InvalidStoragePathError(
                f"Audio path escapes storage directory: {session.audio_path}"
            )
        return path

    async def list_sessions(self) -> list[SpeechSession]:
        """Snapshot of all sessions, newest first."""
        async with self.state.lock:
            return [s.model_copy(deep=True) for s in self.state.sessions]

    async def get_session(self, session_id: str) -> SpeechSession:
        async with self.state.lock:
            for session in self.state.sessions:
                if session.id == session_id:
                    return session.model_copy(deep=True)
        raise SessionNotFoundError(session_id)

    async def insert_session(self, session: SpeechSession) -> None:
        """Add a freshly created session at the front and persist."""
        async with self.state.lock:
            self.state.sessions.insert(0, session)
            try:
                self.persist()
            except StorageError:
                self.state.sessions.remove(session)
                raise

    async def upsert_sessions(self, sessions: list[SpeechSession]) -> None:
        """Replace sessions by id or append them, re-sort and persist once."""
        async with self.state.lock:
            for session in sessions:
                self._upsert_locked(session)
            sort_newest_first(self.state.sessions)
            self.persist()

    def _upsert_locked(self, session: SpeechSession) -> None:
        existing = self.state.sessions
        for i, current in enumerate(existing):
            if current.id == session.id:
                del existing[i]
                break
        existing.append(session)

    async def update_session(
        self,
        session_id: str,
        title: str | None = None,
        transcript: str | None = None,
    ) -> SpeechSession:
        """Apply a partial update; blank values are ignored.

        Raises:
            SessionNotFoundError: If no session has this id
        """
        async with self.state.lock:
            session = next((s for s in self.state.sessions if s.id == session_id), None)
            if session is None:
                raise SessionNotFoundError(session_id)

            if title is not None and title.strip():
                session.title = title.strip()

            if transcript is not None and transcript.strip():
                session.transcript = transcript
                path = self.session_dir(session.id) / TRANSCRIPT_FILENAME
                try:
                    write_text(path, transcript)
                except OSError as e:
                    raise StorageError(f"Could not write {path}: {e}") from e

            self.persist()
            return session.model_copy(deep=True)

    async def delete_session(self, session_id: str) -> bool:
        """Remove a session and its artifacts.

        Unknown ids are a no-op.

        Returns:
            True if a session was removed
        """
        async with self.state.lock:
            index = next(
                (i for i, s in enumerate(self.state.sessions) if s.id == session_id),
                None,
            )
            if index is None:
                logger.debug("Delete of unknown session %s ignored", session_id)
                return False
            session = self.state.sessions.pop(index)
            self.persist()

        try:
            session_dir = self.session_dir(session.id)
        except InvalidStoragePathError as e:
            logger.warning("Not removing artifacts for %s: %s", session.id, e)
            return True
        remove_tree(session_dir)
        logger.info("Deleted session %s", session.id)
        return True
