"""
Shared pytest fixtures for the chunk shuffler tests.

PCM buffers are synthetic numpy ramps so every chunk is distinguishable
after shuffling. Files only ever go to tmp_path.
"""

import numpy as np
import pytest
from scipy.io import wavfile

from chunkshuffle.pcm_format import FormatDescriptor


@pytest.fixture
def mono_fmt():
    """8 kHz mono 16-bit: 16 bytes per millisecond."""
    return FormatDescriptor(8000, 16, 1)


@pytest.fixture
def stereo_fmt():
    """8 kHz stereo 16-bit: 32 bytes per millisecond, 4-byte frames."""
    return FormatDescriptor(8000, 16, 2)


@pytest.fixture
def ramp_pcm():
    """100 ms of 8 kHz mono 16-bit audio: 800 distinct samples, 1600 bytes."""
    return np.arange(800, dtype="<i2").tobytes()


@pytest.fixture
def write_wav(tmp_path):
    """Factory writing a short int16 WAV and returning its path."""

    def _write(name="clip.wav", sample_rate=8000, n_samples=800, channels=1):
        samples = (np.arange(n_samples * channels) % 2000 - 1000).astype(np.int16)
        if channels > 1:
            samples = samples.reshape(-1, channels)
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        wavfile.write(path, sample_rate, samples)
        return path

    return _write


class ScriptedBytes:
    """Secure-random stand-in that returns a fixed sequence of words."""

    def __init__(self, words):
        self._words = list(words)
        self.requests = []

    def __call__(self, n):
        self.requests.append(n)
        return self._words.pop(0).to_bytes(n, "little")


@pytest.fixture
def scripted_bytes():
    return ScriptedBytes
