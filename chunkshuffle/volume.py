"""
Per-chunk volume randomization on raw little-endian PCM.

adjust_volume scales every sample of a chunk by one factor, clamps to the
signed range of the bit depth and rounds to the nearest integer, writing the
result back over the original bytes. Factor policies decide which factor
each chunk gets; they are plain callables returning a float.
"""

import math

import numpy as np

from chunkshuffle.errors import AlignmentError
from chunkshuffle.pcm_format import FormatDescriptor

DEFAULT_MIN_VOLUME = 0.5
DEFAULT_MAX_VOLUME = 2.3

# Native little-endian widths numpy can view directly. 24-bit is unpacked by hand.
_SAMPLE_DTYPES = {1: "<i1", 2: "<i2", 4: "<i4"}


# ---------- Factor policies ----------

class UniformVolume:
    """
    Draw a volume factor uniformly from [low, high) once per chunk.

    The defaults reproduce 0.5 + 1.8 * u, which is biased toward slight
    amplification. Pass a seed for a reproducible factor sequence.
    """

    def __init__(self, low: float = DEFAULT_MIN_VOLUME, high: float = DEFAULT_MAX_VOLUME,
                 seed=None):
        if not (0 < low <= high) or not math.isfinite(high):
            raise ValueError(f"Volume range must satisfy 0 < low <= high, got [{low}, {high})")
        self.low = low
        self.high = high
        self._rng = np.random.default_rng(seed)

    def __call__(self) -> float:
        if self.low == self.high:
            return self.low
        return float(self._rng.uniform(self.low, self.high))


class ConstantVolume:
    """Always return the same factor. ConstantVolume(1.0) leaves audio untouched."""

    def __init__(self, factor: float = 1.0):
        _check_factor(factor)
        self.factor = factor

    def __call__(self) -> float:
        return self.factor


# ---------- Sample rewriting ----------

def _check_factor(factor: float) -> None:
    if not math.isfinite(factor) or factor <= 0:
        raise ValueError(f"Volume factor must be a positive finite number, got {factor}")


def _scale(samples: np.ndarray, fmt: FormatDescriptor, factor: float) -> np.ndarray:
    """Multiply in float64, clamp to the bit depth's range, round to nearest."""
    adjusted = samples.astype(np.float64) * factor
    np.clip(adjusted, fmt.sample_min, fmt.sample_max, out=adjusted)
    return np.rint(adjusted)


def _adjust_24bit(raw: np.ndarray, fmt: FormatDescriptor, factor: float) -> None:
    triplets = raw.reshape(-1, 3)
    samples = (
        triplets[:, 0].astype(np.int32)
        | (triplets[:, 1].astype(np.int32) << 8)
        | (triplets[:, 2].astype(np.int32) << 16)
    )
    samples = np.where(samples >= 1 << 23, samples - (1 << 24), samples)

    packed = _scale(samples, fmt, factor).astype(np.int32) & 0xFFFFFF
    triplets[:, 0] = packed & 0xFF
    triplets[:, 1] = (packed >> 8) & 0xFF
    triplets[:, 2] = (packed >> 16) & 0xFF


def adjust_volume(chunk: bytearray, fmt: FormatDescriptor, factor: float) -> None:
    """
    Scale every sample of chunk by factor, in place.

    chunk must be a writable buffer (normally a bytearray) whose length is a
    whole number of samples. A misaligned chunk raises AlignmentError before
    any byte is modified. Values outside the signed range of
    fmt.bits_per_sample are clipped to the range limits.
    """
    _check_factor(factor)

    view = memoryview(chunk)
    if view.readonly:
        raise TypeError("adjust_volume needs a writable buffer, e.g. a bytearray")

    width = fmt.bytes_per_sample
    if len(chunk) % width != 0:
        raise AlignmentError(
            f"Chunk of {len(chunk)} bytes is not a whole number of {width}-byte samples"
        )
    if not chunk:
        return

    raw = np.frombuffer(view, dtype=np.uint8)
    if width == 3:
        _adjust_24bit(raw, fmt, factor)
        return

    samples = raw.view(_SAMPLE_DTYPES[width])
    samples[:] = _scale(samples, fmt, factor).astype(samples.dtype)
