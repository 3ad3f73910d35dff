"""
Test configuration and shared fixtures.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from tests.helpers import make_wav


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    """An empty storage directory."""
    path = tmp_path / "vocalog"
    path.mkdir()
    return path


@pytest.fixture
def silent_wav() -> bytes:
    """One second of 16kHz mono silence."""
    return make_wav(np.zeros(16000, dtype=np.float32))


@pytest.fixture
def tone_wav() -> bytes:
    """Half a second of a 440Hz tone at 44.1kHz stereo."""
    t = np.arange(22050) / 44100.0
    tone = 0.5 * np.sin(2 * np.pi * 440.0 * t)
    return make_wav(np.column_stack([tone, tone]), sample_rate=44100)
