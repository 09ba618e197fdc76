"""
Chunk sizing and end-of-stream tail handling.

Chunks are the atomic unit of shuffling, so every chunk boundary must fall
on a whole sample frame. Otherwise a shuffled stereo stream would swap its
left and right channels at every misaligned boundary.
"""

from enum import Enum

from chunkshuffle.pcm_format import FormatDescriptor


class TailPolicy(Enum):
    """
    What to do with a final block that does not end on a frame boundary.

    DISCARD drops the trailing partial frame, losing less than one frame of
    audio. PAD fills the partial frame with silence (zero bytes).
    """

    DISCARD = "discard"
    PAD = "pad"


def compute_chunk_size(fmt: FormatDescriptor, duration_ms: int) -> int:
    """
    Convert a chunk duration into a byte length aligned to whole frames.

    The byte rate is first truncated to whole bytes per millisecond, then the
    result is rounded DOWN to a multiple of fmt.frame_bytes. Returns 0 when the
    duration is too short for a single frame; callers treat 0 as fatal.
    """
    if duration_ms < 0:
        raise ValueError(f"Chunk duration must be non-negative, got {duration_ms} ms")

    bytes_per_ms = fmt.average_bytes_per_second // 1000
    raw = duration_ms * bytes_per_ms
    return raw - (raw % fmt.frame_bytes)


def align_tail(block: bytearray, fmt: FormatDescriptor, policy: TailPolicy) -> int:
    """
    Make a final block frame-aligned in place.

    Returns the signed number of bytes changed: negative when bytes were
    dropped, positive when silence was appended, 0 when already aligned.
    """
    remainder = len(block) % fmt.frame_bytes
    if remainder == 0:
        return 0

    if policy is TailPolicy.DISCARD:
        del block[len(block) - remainder:]
        return -remainder

    padding = fmt.frame_bytes - remainder
    block.extend(bytes(padding))
    return padding
