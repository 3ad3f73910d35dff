"""
vocalog.models - Session, segment, backup and model-status records.

These are the shapes that cross the package boundary: they are persisted in
sessions.json, written to backup bundles and emitted to observers.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from vocalog.exceptions import UnsupportedLanguageError

_LANGUAGE_ALIASES = {
    "en": "en",
    "english": "en",
    "zh": "zh",
    "zh-cn": "zh",
    "zh-hans": "zh",
    "chinese": "zh",
}


class Language(str, Enum):
    """Languages the transcription engine is asked to recognise."""

    ENGLISH = "en"
    CHINESE = "zh"

    @classmethod
    def parse(cls, value: str | Language) -> Language:
        """Parse a language tag, accepting common aliases case-insensitively.

        Raises:
            UnsupportedLanguageError: If the tag is not recognised
        """
        if isinstance(value, Language):
            return value
        code = _LANGUAGE_ALIASES.get(str(value).strip().lower())
        if code is None:
            raise UnsupportedLanguageError(str(value))
        return cls(code)

    @property
    def display_name(self) -> str:
        return "English" if self is Language.ENGLISH else "Chinese"

    @property
    def initial_prompt(self) -> str | None:
        """Prompt that nudges whisper toward simplified Mandarin output."""
        if self is Language.CHINESE:
            return "以下是简体中文普通话的句子。"
        return None


class TranscriptSegment(BaseModel):
    """One timestamped stretch of recognised speech."""

    start: float
    end: float
    text: str


class SpeechSession(BaseModel):
    """A persisted transcription with its audio artifact."""

    id: str
    title: str
    language: Language
    transcript: str = ""
    segments: list[TranscriptSegment] = Field(default_factory=list)
    audio_path: str
    created_at: str


class SpeechSessionBackup(BaseModel):
    """Self-contained export record with the audio embedded as a data URL."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    language: Language
    transcript: str = ""
    segments: list[TranscriptSegment] = Field(default_factory=list)
    created_at: str
    audio_filename: str = ""
    audio_base64: str


class ModelStatus(BaseModel):
    """Derived readiness of the acoustic model file."""

    ready: bool
    downloaded: bool = False
    model_path: str | None = None


class ModelStatusKind(str, Enum):
    EXISTS = "exists"
    DOWNLOADING = "downloading"
    FINISHED = "finished"
    FAILED = "failed"


class ModelStatusEvent(BaseModel):
    status: ModelStatusKind
    model_path: str | None = None
    message: str | None = None


class ModelDownloadProgress(BaseModel):
    downloaded_bytes: int
    total_bytes: int | None = None
