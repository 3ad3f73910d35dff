"""
vocalog.audio.decode - WAV container decoding, downmixing and resampling.

The container is parsed by libsndfile (via soundfile). Integer samples are
read back as left-justified int32 so the original integer value can be
recovered exactly and normalised by the width of its signed range.
"""

from __future__ import annotations

import base64
import binascii
import io
from dataclasses import dataclass

import numpy as np
import soundfile as sf

from vocalog.exceptions import AudioFormatError, UnsupportedBitDepthError

TARGET_SAMPLE_RATE = 16000

# subtype -> bits per sample for integer PCM
_INT_SUBTYPES = {
    "PCM_S8": 8,
    "PCM_U8": 8,
    "PCM_16": 16,
    "PCM_24": 24,
    "PCM_32": 32,
}
_FLOAT_SUBTYPES = {"FLOAT", "DOUBLE"}
_WAV_FORMATS = {"WAV", "WAVEX", "RF64"}

_INT_SCALE = {
    8: float(np.iinfo(np.int8).max),
    16: float(np.iinfo(np.int16).max),
    24: float(2**23),
    32: float(2**31),
}


@dataclass(frozen=True)
class AudioInfo:
    """Header fields of a decoded container."""

    sample_rate: int
    channels: int
    frames: int
    subtype: str

    @property
    def bits_per_sample(self) -> int | None:
        return _INT_SUBTYPES.get(self.subtype)

    @property
    def is_float(self) -> bool:
        return self.subtype in _FLOAT_SUBTYPES

    @property
    def duration_seconds(self) -> float:
        return self.frames / float(self.sample_rate) if self.sample_rate else 0.0


def _open(data: bytes) -> sf.SoundFile:
    if not data:
        raise AudioFormatError("Audio payload is empty")
    try:
        return sf.SoundFile(io.BytesIO(data))
    except RuntimeError as e:
        raise AudioFormatError(f"Could not read audio container: {e}") from e


def _validate(handle: sf.SoundFile) -> AudioInfo:
    if str(handle.format) not in _WAV_FORMATS:
        raise AudioFormatError(f"Not a WAV container: {handle.format}")
    info = AudioInfo(
        sample_rate=int(handle.samplerate),
        channels=int(handle.channels),
        frames=int(handle.frames),
        subtype=str(handle.subtype),
    )
    if info.channels <= 0:
        raise AudioFormatError("Invalid channel count: 0")
    if info.sample_rate <= 0:
        raise AudioFormatError(f"Invalid sample rate: {info.sample_rate}")
    if not info.is_float and info.bits_per_sample is None:
        raise UnsupportedBitDepthError(info.subtype)
    return info


def probe_wav(data: bytes) -> AudioInfo:
    """Read and validate the container header without decoding samples.

    Raises:
        AudioFormatError: If the payload is not a readable container
        UnsupportedBitDepthError: If the sample encoding is not handled
    """
    with _open(data) as handle:
        return _validate(handle)


def decode_wav(data: bytes) -> tuple[np.ndarray, int]:
    """Decode a WAV payload into mono float32 samples.

    Args:
        data: Raw bytes of the container

    Returns:
        Tuple of (mono samples in [-1, 1], original sample rate)

    Raises:
        AudioFormatError: If the payload is invalid
        UnsupportedBitDepthError: If the sample encoding is not handled
    """
    with _open(data) as handle:
        info = _validate(handle)
        try:
            if info.is_float:
                frames = handle.read(dtype="float32", always_2d=True)
            else:
                raw = handle.read(dtype="int32", always_2d=True)
        except RuntimeError as e:
            raise AudioFormatError(f"Could not decode audio samples: {e}") from e

    if not info.is_float:
        bits = info.bits_per_sample
        # libsndfile left-justifies every integer width into int32
        values = raw >> (32 - bits)
        frames = (values.astype(np.float64) / _INT_SCALE[bits]).astype(np.float32)

    return downmix(frames), info.sample_rate


def downmix(frames: np.ndarray) -> np.ndarray:
    """Average channels per frame into a mono buffer.

    Args:
        frames: Array shaped (n_frames,) or (n_frames, n_channels)

    Returns:
        1-D float32 array of per-frame channel means
    """
    frames = np.asarray(frames, dtype=np.float32)
    if frames.ndim == 1:
        return frames
    if frames.shape[1] == 0:
        raise AudioFormatError("Invalid channel count: 0")
    if frames.shape[1] == 1:
        return frames[:, 0].copy()
    return frames.mean(axis=1, dtype=np.float64).astype(np.float32)


def resample(samples: np.ndarray, from_rate: int, to_rate: int) -> np.ndarray:
    """Linear-interpolation resampling.

    Each destination index maps to a fractional source position
    ``i * from_rate / to_rate`` and is interpolated between the floor sample
    and the next one (clamped to the last sample). Positions whose floor
    falls past the source end are dropped.
    """
    samples = np.asarray(samples, dtype=np.float32)
    if samples.size == 0 or from_rate == to_rate:
        return samples.copy()
    if from_rate <= 0 or to_rate <= 0:
        raise AudioFormatError(f"Invalid sample rates: {from_rate} -> {to_rate}")

    ratio = from_rate / to_rate
    n = samples.size
    # half-up, not banker's rounding
    target_len = int(np.floor(n / ratio + 0.5))

    positions = np.arange(target_len, dtype=np.float64) * ratio
    floor_idx = np.floor(positions).astype(np.int64)
    keep = floor_idx < n
    positions = positions[keep]
    floor_idx = floor_idx[keep]

    next_idx = np.minimum(floor_idx + 1, n - 1)
    frac = (positions - floor_idx).astype(np.float32)
    s0 = samples[floor_idx]
    s1 = samples[next_idx]
    return (s0 + (s1 - s0) * frac).astype(np.float32)


def load_for_inference(data: bytes, target_rate: int = TARGET_SAMPLE_RATE) -> np.ndarray:
    """Decode a WAV payload and convert it to mono at the engine's rate."""
    samples, rate = decode_wav(data)
    if rate != target_rate:
        samples = resample(samples, rate, target_rate)
    return samples


def decode_audio_base64(payload: str) -> bytes:
    """Decode base64 audio, accepting an optional ``data:...;base64,`` prefix.

    Raises:
        AudioFormatError: If the payload is not valid base64
    """
    _, sep, rest = payload.partition(",")
    encoded = rest if sep else payload
    try:
        return base64.b64decode(encoded.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise AudioFormatError(f"Base64 decode failed: {e}") from e
