"""
chunkshuffle: scramble audio by shuffling fixed-duration chunks.

Each chunk gets an independent random volume factor, then chunk order is
permuted with a cryptographically secure Fisher-Yates shuffle.
"""

from chunkshuffle.chunking import TailPolicy, compute_chunk_size
from chunkshuffle.config import ShuffleConfig
from chunkshuffle.engine import EngineState, ShuffleEngine, ShuffleReport, shuffle_pcm
from chunkshuffle.errors import (
    AlignmentError,
    ChunkShuffleError,
    ChunkSizeUnderflowError,
    DecodeError,
    InvalidFormatError,
    RandomSourceError,
)
from chunkshuffle.pcm_format import FormatDescriptor
from chunkshuffle.secure_shuffle import secure_randbelow, secure_shuffle
from chunkshuffle.volume import ConstantVolume, UniformVolume, adjust_volume

__version__ = "0.1.0"
