"""
vocalog.audio - WAV decoding and sample-rate conversion.

Produces the mono 16kHz float32 buffers the speech engine consumes.
"""

from __future__ import annotations

from vocalog.audio.decode import (
    TARGET_SAMPLE_RATE,
    AudioInfo,
    decode_audio_base64,
    decode_wav,
    downmix,
    load_for_inference,
    probe_wav,
    resample,
)

__all__ = [
    "TARGET_SAMPLE_RATE",
    "AudioInfo",
    "decode_audio_base64",
    "decode_wav",
    "downmix",
    "load_for_inference",
    "probe_wav",
    "resample",
]
