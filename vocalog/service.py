"""
vocalog.service - The operation surface consumed by callers.

Wires config, session store, model provisioner, transcription coordinator and
backup codec around one base directory.
"""

from __future__ import annotations

from pathlib import Path

from vocalog.backup import BackupCodec
from vocalog.config import VocalogConfig, load_config
from vocalog.models import (
    Language,
    ModelStatus,
    SpeechSession,
    SpeechSessionBackup,
)
from vocalog.provision import EventSink, ModelProvisioner
from vocalog.store import SessionStore
from vocalog.transcribe.coordinator import TranscriptionCoordinator
from vocalog.transcribe.engine import SpeechEngine, WhisperCppEngine


class SpeechService:
    """Facade over one Vocalog storage directory."""

    def __init__(
        self,
        base_dir: Path,
        config: VocalogConfig | None = None,
        engine: SpeechEngine | None = None,
        emit: EventSink | None = None,
    ) -> None:
        self.base_dir = base_dir
        self.config = config if config is not None else load_config(base_dir)
        self.model_path = base_dir / self.config.model_filename

        self.store = SessionStore(base_dir)
        self.provisioner = ModelProvisioner(
            model_path=self.model_path,
            model_url=self.config.model_url,
            bundled_relative_path=self.config.bundled_model_relative_path,
            resource_dirs=self.config.resource_dirs,
            chunk_size=self.config.download_chunk_size,
            emit=emit,
        )
        self.engine = engine or WhisperCppEngine(
            self.model_path,
            n_threads=self.config.whisper_threads,
            window_seconds=self.config.window_seconds,
        )
        self.coordinator = TranscriptionCoordinator(self.store, self.engine)
        self.backups = BackupCodec(self.store)

    async def ensure_model(self) -> ModelStatus:
        return await self.provisioner.ensure_model()

    def model_status(self) -> ModelStatus:
        return self.provisioner.status()

    async def list_sessions(self) -> list[SpeechSession]:
        return await self.store.list_sessions()

    async def get_session(self, session_id: str) -> SpeechSession:
        return await self.store.get_session(session_id)

    async def delete_session(self, session_id: str) -> bool:
        return await self.store.delete_session(session_id)

    async def update_session(
        self,
        session_id: str,
        title: str | None = None,
        transcript: str | None = None,
    ) -> SpeechSession:
        return await self.store.update_session(session_id, title=title, transcript=transcript)

    async def transcribe(
        self,
        audio: bytes | str,
        language: str | Language | None = None,
        title: str | None = None,
    ) -> SpeechSession:
        return await self.coordinator.transcribe(
            audio,
            language if language is not None else self.config.default_language,
            title,
        )

    async def cancel_transcription(self) -> bool:
        return await self.coordinator.cancel()

    async def export_sessions(self) -> list[SpeechSessionBackup]:
        return await self.backups.export_sessions()

    async def import_sessions(self, records: list[SpeechSessionBackup]) -> int:
        return await self.backups.import_sessions(records)
