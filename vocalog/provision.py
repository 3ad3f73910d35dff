"""
vocalog.provision - Acoustic model provisioning.

Guarantees the whisper model file exists locally: reuse it when present,
copy a bundled copy when one ships with the app, otherwise stream it from the
distribution URL while reporting progress to an observer.
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import Callable

import aiohttp
from pydantic import BaseModel

from vocalog.exceptions import NetworkError, StorageError
from vocalog.logging import logger
from vocalog.models import (
    ModelDownloadProgress,
    ModelStatus,
    ModelStatusEvent,
    ModelStatusKind,
)

MODEL_PROGRESS_EVENT = "model-progress"
MODEL_STATUS_EVENT = "model-status"

EventSink = Callable[[str, BaseModel], None]

PACKAGE_RESOURCES_DIR = Path(__file__).parent / "resources"


def _discard(event: str, payload: BaseModel) -> None:
    pass


class ModelProvisioner:
    """Makes sure the acoustic model is available at ``model_path``."""

    def __init__(
        self,
        model_path: Path,
        model_url: str,
        bundled_relative_path: str = "models/ggml-small.bin",
        resource_dirs: list[Path] | None = None,
        chunk_size: int = 64 * 1024,
        emit: EventSink | None = None,
    ) -> None:
        self.model_path = model_path
        self.model_url = model_url
        self.bundled_relative_path = bundled_relative_path
        self.resource_dirs = list(resource_dirs or [])
        self.chunk_size = chunk_size
        self._emit = emit or _discard

    @property
    def partial_path(self) -> Path:
        return self.model_path.with_name(self.model_path.name + ".part")

    def status(self) -> ModelStatus:
        """Readiness from a filesystem check only."""
        ready = self.model_path.is_file()
        return ModelStatus(
            ready=ready,
            downloaded=False,
            model_path=str(self.model_path) if ready else None,
        )

    def bundled_candidates(self) -> list[Path]:
        """Bundled model locations in search order."""
        candidates: list[Path] = []
        for base in self.resource_dirs:
            for directory in (
                base,
                base / "resources",
                base / "Resources",
                base / ".." / "resources",
                base / ".." / "Resources",
            ):
                candidates.append(directory / self.bundled_relative_path)
        candidates.append(PACKAGE_RESOURCES_DIR / self.bundled_relative_path)
        candidates.append(Path("resources") / self.bundled_relative_path)
        return candidates

    def _notify(self, event: str, payload: BaseModel) -> None:
        try:
            self._emit(event, payload)
        except Exception as e:
            logger.warning("Model event observer failed on %s: %s", event, e)

    def _status_event(self, kind: ModelStatusKind, message: str | None = None) -> None:
        self._notify(
            MODEL_STATUS_EVENT,
            ModelStatusEvent(status=kind, model_path=str(self.model_path), message=message),
        )

    async def ensure_model(self) -> ModelStatus:
        """Make the model available, downloading it if necessary.

        Returns:
            ModelStatus with ``downloaded`` True only after a fresh download

        Raises:
            NetworkError: Download failed or returned a non-2xx status
            StorageError: The model could not be written
        """
        if self.model_path.is_file():
            self._status_event(ModelStatusKind.EXISTS)
            return ModelStatus(ready=True, downloaded=False, model_path=str(self.model_path))

        try:
            self.model_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create {self.model_path.parent}: {e}") from e

        if await self._copy_bundled():
            self._status_event(ModelStatusKind.FINISHED, "using bundled model")
            return ModelStatus(ready=True, downloaded=False, model_path=str(self.model_path))

        self._status_event(ModelStatusKind.DOWNLOADING)
        try:
            await self._download()
        except asyncio.CancelledError:
            self.partial_path.unlink(missing_ok=True)
            self._status_event(ModelStatusKind.FAILED, "download cancelled")
            raise
        except Exception as e:
            self.partial_path.unlink(missing_ok=True)
            self._status_event(ModelStatusKind.FAILED, str(e))
            logger.error("Model download failed: %s", e)
            if isinstance(e, (NetworkError, StorageError)):
                raise
            if isinstance(e, OSError):
                raise StorageError(f"Could not write model file: {e}") from e
            raise NetworkError(f"Model download failed: {e}") from e

        self._status_event(ModelStatusKind.FINISHED)
        return ModelStatus(ready=True, downloaded=True, model_path=str(self.model_path))

    async def _copy_bundled(self) -> bool:
        for candidate in self.bundled_candidates():
            if not candidate.is_file():
                continue
            logger.info("Copying bundled model from %s", candidate)
            try:
                await asyncio.to_thread(shutil.copyfile, candidate, self.partial_path)
                self.partial_path.replace(self.model_path)
            except OSError as e:
                self.partial_path.unlink(missing_ok=True)
                raise StorageError(f"Could not copy bundled model {candidate}: {e}") from e
            return True
        return False

    async def _download(self) -> None:
        logger.info("Downloading model from %s", self.model_url)
        timeout = aiohttp.ClientTimeout(total=None)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.model_url) as response:
                    if not 200 <= response.status < 300:
                        raise NetworkError(
                            f"Model download failed with HTTP status {response.status}"
                        )
                    total = response.content_length
                    downloaded = 0
                    with open(self.partial_path, "wb") as f:
                        async for chunk in response.content.iter_chunked(self.chunk_size):
                            f.write(chunk)
                            downloaded += len(chunk)
                            self._notify(
                                MODEL_PROGRESS_EVENT,
                                ModelDownloadProgress(
                                    downloaded_bytes=downloaded,
                                    total_bytes=total,
                                ),
                            )
        except aiohttp.ClientError as e:
            raise NetworkError(f"Model download failed: {e}") from e

        self.partial_path.replace(self.model_path)
        logger.info("Model saved to %s (%d bytes)", self.model_path, downloaded)
