"""Tests for vocalog.backup module - export and import bundles."""

from __future__ import annotations

import asyncio
import base64
import json
from pathlib import Path

import pytest

from tests.helpers import make_session
from vocalog.backup import (
    BackupCodec,
    guess_audio_mime,
    read_backup_file,
    sanitize_audio_filename,
    write_backup_file,
)
from vocalog.exceptions import AudioFormatError, InvalidStoragePathError, SerializationError
from vocalog.models import Language, SpeechSessionBackup, TranscriptSegment
from vocalog.store import SEGMENTS_FILENAME, TRANSCRIPT_FILENAME, SessionStore


def _store_with_sessions(base_dir: Path, *session_ids: str) -> SessionStore:
    store = SessionStore(base_dir)
    for i, session_id in enumerate(session_ids):
        session = make_session(session_id, created_at=f"2026-03-0{i + 1}T09:00:00+00:00")
        audio = base_dir / session.audio_path
        audio.parent.mkdir(parents=True)
        audio.write_bytes(f"RIFF-{session_id}".encode())
        asyncio.run(store.insert_session(session))
    return store


def _record(session_id: str, created_at: str, **overrides) -> SpeechSessionBackup:
    fields = {
        "id": session_id,
        "title": f"Session {session_id}",
        "language": Language.ENGLISH,
        "transcript": "imported text",
        "segments": [TranscriptSegment(start=0.0, end=2.0, text="imported text")],
        "created_at": created_at,
        "audio_filename": "clip.wav",
        "audio_base64": "data:audio/wav;base64," + base64.b64encode(b"RIFF-data").decode(),
    }
    fields.update(overrides)
    return SpeechSessionBackup(**fields)


class TestHelpers:
    def test_guess_audio_mime(self) -> None:
        assert guess_audio_mime("a.wav") == "audio/wav"
        assert guess_audio_mime("a.MP3") == "audio/mpeg"
        assert guess_audio_mime("noext") == "application/octet-stream"

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("clip.wav", "clip.wav"),
            ("  clip.wav  ", "clip.wav"),
            ("", "recording.wav"),
            ("../evil.wav", "recording.wav"),
            ("dir\\evil.wav", "recording.wav"),
            ("..", "recording.wav"),
        ],
    )
    def test_sanitize_audio_filename(self, name: str, expected: str) -> None:
        assert sanitize_audio_filename(name) == expected


class TestExport:
    def test_empty_store(self, base_dir: Path) -> None:
        codec = BackupCodec(SessionStore(base_dir))
        assert asyncio.run(codec.export_sessions()) == []

    def test_embeds_audio(self, base_dir: Path) -> None:
        codec = BackupCodec(_store_with_sessions(base_dir, "a"))

        records = asyncio.run(codec.export_sessions())

        assert len(records) == 1
        record = records[0]
        assert record.id == "a"
        assert record.audio_filename == "recording.wav"
        assert record.audio_base64.startswith("data:audio/wav;base64,")
        encoded = record.audio_base64.split(",", 1)[1]
        assert base64.b64decode(encoded) == b"RIFF-a"


class TestImport:
    def test_empty_import(self, base_dir: Path) -> None:
        codec = BackupCodec(SessionStore(base_dir))
        assert asyncio.run(codec.import_sessions([])) == 0

    def test_export_then_import_restores_store(self, tmp_path: Path) -> None:
        source = _store_with_sessions(tmp_path / "source", "a", "b")
        records = asyncio.run(BackupCodec(source).export_sessions())

        target = SessionStore(tmp_path / "target")
        count = asyncio.run(BackupCodec(target).import_sessions(records))

        assert count == 2
        original = asyncio.run(source.list_sessions())
        restored = asyncio.run(target.list_sessions())
        assert [s.model_dump() for s in restored] == [s.model_dump() for s in original]
        for session in restored:
            assert target.audio_file(session).read_bytes() == f"RIFF-{session.id}".encode()

    def test_writes_sidecars(self, base_dir: Path) -> None:
        store = SessionStore(base_dir)
        asyncio.run(BackupCodec(store).import_sessions([_record("x", "2026-03-01T09:00:00+00:00")]))

        session_dir = store.session_dir("x")
        assert (session_dir / "clip.wav").read_bytes() == b"RIFF-data"
        assert (session_dir / TRANSCRIPT_FILENAME).read_text(encoding="utf-8") == "imported text"
        assert json.loads((session_dir / SEGMENTS_FILENAME).read_text())[0]["end"] == 2.0
        assert asyncio.run(store.get_session("x")).audio_path == "sessions/x/clip.wav"

    def test_unsafe_filename_falls_back(self, base_dir: Path) -> None:
        store = SessionStore(base_dir)
        record = _record("x", "2026-03-01T09:00:00+00:00", audio_filename="../../escape.wav")

        asyncio.run(BackupCodec(store).import_sessions([record]))

        assert (store.session_dir("x") / "recording.wav").exists()
        assert not (base_dir / "escape.wav").exists()

    @pytest.mark.parametrize("bad_id", ["../outside", "a\x00b", "  "])
    def test_rejects_unsafe_id(self, base_dir: Path, bad_id: str) -> None:
        store = SessionStore(base_dir)
        record = _record(bad_id, "2026-03-01T09:00:00+00:00")

        with pytest.raises(InvalidStoragePathError):
            asyncio.run(BackupCodec(store).import_sessions([record]))

        assert asyncio.run(store.list_sessions()) == []

    def test_replaces_existing_session(self, base_dir: Path) -> None:
        store = _store_with_sessions(base_dir, "a")
        record = _record("a", "2026-03-01T09:00:00+00:00", title="Replaced")

        asyncio.run(BackupCodec(store).import_sessions([record]))

        sessions = asyncio.run(store.list_sessions())
        assert len(sessions) == 1
        assert sessions[0].title == "Replaced"
        assert not (store.session_dir("a") / "recording.wav").exists()

    def test_sorts_newest_first(self, base_dir: Path) -> None:
        store = SessionStore(base_dir)
        records = [
            _record("old", "2026-01-01T09:00:00+00:00"),
            _record("new", "2026-05-01T09:00:00+00:00"),
            _record("mid", "2026-03-01T09:00:00+00:00"),
        ]

        asyncio.run(BackupCodec(store).import_sessions(records))

        assert [s.id for s in asyncio.run(store.list_sessions())] == ["new", "mid", "old"]

    def test_bad_payload_leaves_store_untouched(self, base_dir: Path) -> None:
        store = SessionStore(base_dir)
        records = [
            _record("good", "2026-01-01T09:00:00+00:00"),
            _record("bad", "2026-01-02T09:00:00+00:00", audio_base64="%%%"),
        ]

        with pytest.raises(AudioFormatError):
            asyncio.run(BackupCodec(store).import_sessions(records))

        assert asyncio.run(store.list_sessions()) == []
        assert not store.session_dir("good").exists()


class TestBackupFile:
    def test_write_then_read(self, tmp_path: Path) -> None:
        path = tmp_path / "backup.json"
        records = [_record("x", "2026-03-01T09:00:00+00:00")]

        write_backup_file(path, records)

        assert read_backup_file(path) == records

    def test_ignores_unknown_fields(self, tmp_path: Path) -> None:
        path = tmp_path / "backup.json"
        raw = _record("x", "2026-03-01T09:00:00+00:00").model_dump(mode="json")
        raw["extra_field"] = True
        path.write_text(json.dumps([raw]))

        assert read_backup_file(path)[0].id == "x"

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "backup.json"
        path.write_text("[not json")
        with pytest.raises(SerializationError):
            read_backup_file(path)

    def test_invalid_records(self, tmp_path: Path) -> None:
        path = tmp_path / "backup.json"
        path.write_text(json.dumps([{"id": "x"}]))
        with pytest.raises(SerializationError):
            read_backup_file(path)
