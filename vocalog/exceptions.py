"""
vocalog.exceptions - Custom exception classes.

All Vocalog-specific exceptions inherit from VocalogError. Errors raised by
collaborators (filesystem, aiohttp, libsndfile, the speech engine) are
converted into one of these at the module boundary.
"""

from __future__ import annotations


class VocalogError(Exception):
    """Base exception for all Vocalog errors."""

    pass


class ConfigError(VocalogError):
    """Configuration loading or validation error."""

    pass


class StorageError(VocalogError):
    """Filesystem read or write error."""

    pass


class NetworkError(VocalogError):
    """Model download error."""

    pass


class AudioFormatError(VocalogError):
    """Audio payload could not be decoded."""

    pass


class UnsupportedBitDepthError(AudioFormatError):
    """Integer sample width or encoding that the decoder does not handle."""

    def __init__(self, encoding: str, bits: int | None = None):
        self.encoding = encoding
        self.bits = bits
        detail = f"{bits}-bit" if bits is not None else encoding
        super().__init__(f"Unsupported sample encoding: {detail}")


class UnsupportedLanguageError(VocalogError):
    """Language tag is not one of the supported languages."""

    def __init__(self, language: str):
        self.language = language
        super().__init__(f"Unsupported language: {language}")


class EngineError(VocalogError):
    """Speech engine failed while transcribing."""

    pass


class SerializationError(VocalogError):
    """Session index or backup could not be parsed or serialized."""

    pass


class TranscriptionInProgressError(VocalogError):
    """A transcription job is already running."""

    def __init__(self) -> None:
        super().__init__("A transcription is already in progress")


class TranscriptionCancelledError(VocalogError):
    """The running transcription was cancelled on request."""

    def __init__(self) -> None:
        super().__init__("Transcription cancelled")


class SessionNotFoundError(VocalogError):
    """No session with the requested id."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class InvalidStoragePathError(VocalogError):
    """A stored or imported path would escape the base storage directory."""

    pass


class InvalidModelPathError(VocalogError):
    """Acoustic model path is missing or unusable."""

    pass


class DependencyError(VocalogError):
    """Required dependency missing or misconfigured."""

    def __init__(self, dependency: str, message: str, install_hint: str | None = None):
        self.dependency = dependency
        self.message = message
        self.install_hint = install_hint
        super().__init__(f"{dependency}: {message}")
