"""
vocalog.backup - Export and import of self-contained session bundles.

A backup record carries the session metadata plus the recording embedded as
a base64 data URL, so a bundle can be moved between machines without the
sessions/ directory.
"""

from __future__ import annotations

import base64
import json
import mimetypes
from pathlib import Path, PurePath

from pydantic import TypeAdapter, ValidationError

from vocalog.audio.decode import decode_audio_base64
from vocalog.exceptions import SerializationError, StorageError
from vocalog.io import read_json, remove_tree, write_bytes, write_json
from vocalog.logging import logger
from vocalog.models import SpeechSession, SpeechSessionBackup
from vocalog.store import SessionStore, write_session_sidecars

DEFAULT_AUDIO_FILENAME = "recording.wav"

_AUDIO_MIME_TYPES = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
    ".webm": "audio/webm",
}

_BACKUP_LIST = TypeAdapter(list[SpeechSessionBackup])


def guess_audio_mime(filename: str) -> str:
    """Best-effort mime type from a file extension."""
    suffix = PurePath(filename).suffix.lower()
    if suffix in _AUDIO_MIME_TYPES:
        return _AUDIO_MIME_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def sanitize_audio_filename(name: str) -> str:
    """Reduce a supplied filename to a safe bare name.

    Names that are blank, contain a path separator, or are dot entries fall
    back to recording.wav.
    """
    trimmed = name.strip()
    if not trimmed or "/" in trimmed or "\\" in trimmed:
        return DEFAULT_AUDIO_FILENAME
    candidate = PurePath(trimmed).name
    if not candidate or candidate in (".", ".."):
        return DEFAULT_AUDIO_FILENAME
    return candidate


def encode_audio_data_url(data: bytes, filename: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{guess_audio_mime(filename)};base64,{encoded}"


class BackupCodec:
    """Converts between the session store and backup records."""

    def __init__(self, store: SessionStore) -> None:
        self.store = store

    async def export_sessions(self) -> list[SpeechSessionBackup]:
        """Build a backup record for every stored session.

        Raises:
            StorageError: A session's audio artifact cannot be read
            InvalidStoragePathError: A stored audio path escapes the base dir
        """
        sessions = await self.store.list_sessions()
        exported: list[SpeechSessionBackup] = []
        for session in sessions:
            audio_path = self.store.audio_file(session)
            try:
                audio_bytes = audio_path.read_bytes()
            except OSError as e:
                raise StorageError(f"Could not read audio for session {session.id}: {e}") from e

            filename = audio_path.name or DEFAULT_AUDIO_FILENAME
            exported.append(
                SpeechSessionBackup(
                    id=session.id,
                    title=session.title,
                    language=session.language,
                    transcript=session.transcript,
                    segments=[s.model_copy() for s in session.segments],
                    created_at=session.created_at,
                    audio_filename=filename,
                    audio_base64=encode_audio_data_url(audio_bytes, filename),
                )
            )
        logger.info("Exported %d sessions", len(exported))
        return exported

    async def import_sessions(self, records: list[SpeechSessionBackup]) -> int:
        """Write backup records into the store, replacing sessions with the same id.

        Every payload is decoded before anything is written, so a malformed
        record leaves the store untouched.

        Returns:
            Number of records imported
        """
        if not records:
            return 0

        prepared: list[tuple[SpeechSessionBackup, bytes, str, Path]] = []
        for record in records:
            audio_bytes = decode_audio_base64(record.audio_base64)
            filename = sanitize_audio_filename(record.audio_filename)
            session_dir = self.store.session_dir(record.id)
            prepared.append((record, audio_bytes, filename, session_dir))

        imported: list[SpeechSession] = []
        for record, audio_bytes, filename, session_dir in prepared:
            if session_dir.exists() and not remove_tree(session_dir):
                raise StorageError(f"Could not replace existing session directory {session_dir}")
            audio_path = session_dir / filename
            try:
                write_bytes(audio_path, audio_bytes)
            except OSError as e:
                raise StorageError(f"Could not write {audio_path}: {e}") from e
            write_session_sidecars(session_dir, record.transcript, record.segments)

            imported.append(
                SpeechSession(
                    id=record.id,
                    title=record.title,
                    language=record.language,
                    transcript=record.transcript,
                    segments=record.segments,
                    audio_path=self.store.relative_path(audio_path),
                    created_at=record.created_at,
                )
            )

        await self.store.upsert_sessions(imported)
        logger.info("Imported %d sessions", len(imported))
        return len(imported)


def write_backup_file(path: Path, records: list[SpeechSessionBackup]) -> None:
    """Save backup records as a pretty-printed JSON array."""
    try:
        write_json(path, [r.model_dump(mode="json") for r in records])
    except OSError as e:
        raise StorageError(f"Could not write backup {path}: {e}") from e


def read_backup_file(path: Path) -> list[SpeechSessionBackup]:
    """Load backup records from a JSON array file.

    Raises:
        SerializationError: The file is not a valid backup bundle
        StorageError: The file cannot be read
    """
    try:
        raw = read_json(path)
    except json.JSONDecodeError as e:
        raise SerializationError(f"Backup {path} is not valid JSON: {e}") from e
    except OSError as e:
        raise StorageError(f"Could not read backup {path}: {e}") from e
    try:
        return _BACKUP_LIST.validate_python(raw)
    except ValidationError as e:
        raise SerializationError(f"Backup {path} has invalid records: {e}") from e
