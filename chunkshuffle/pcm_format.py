"""
PCM stream format description.

A FormatDescriptor says how to walk a raw little-endian PCM buffer:
how wide each sample is and how many samples make up one frame.
"""

from dataclasses import dataclass

from chunkshuffle.errors import InvalidFormatError

SUPPORTED_BIT_DEPTHS = (8, 16, 24, 32)


@dataclass(frozen=True)
class FormatDescriptor:
    sample_rate: int
    bits_per_sample: int
    channels: int

    def __post_init__(self):
        if self.sample_rate <= 0:
            raise InvalidFormatError(f"Sample rate must be positive, got {self.sample_rate}")
        if self.bits_per_sample not in SUPPORTED_BIT_DEPTHS:
            raise InvalidFormatError(
                f"Bit depth must be one of {SUPPORTED_BIT_DEPTHS}, got {self.bits_per_sample}"
            )
        if self.channels <= 0:
            raise InvalidFormatError(f"Channel count must be positive, got {self.channels}")

    @property
    def bytes_per_sample(self) -> int:
        return self.bits_per_sample // 8

    @property
    def frame_bytes(self) -> int:
        """Bytes in one frame: one sample for every channel."""
        return self.bytes_per_sample * self.channels

    @property
    def average_bytes_per_second(self) -> int:
        return self.sample_rate * self.frame_bytes

    @property
    def sample_min(self) -> int:
        return -(1 << (self.bits_per_sample - 1))

    @property
    def sample_max(self) -> int:
        return (1 << (self.bits_per_sample - 1)) - 1
