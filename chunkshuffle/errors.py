"""
Error types raised by the chunk shuffler.

Every error derives from ChunkShuffleError so a driver processing many
files can catch one type per file and move on to the next.
"""


class ChunkShuffleError(Exception):
    """Base class for all chunk shuffler failures."""


class InvalidFormatError(ChunkShuffleError, ValueError):
    """Sample rate, bit depth or channel count cannot describe integer PCM."""


class AlignmentError(ChunkShuffleError):
    """A chunk or sample decode would read past a buffer boundary."""


class ChunkSizeUnderflowError(ChunkShuffleError):
    """The chunk duration is too short to hold a single sample frame."""


class RandomSourceError(ChunkShuffleError):
    """The secure random source could not supply bytes."""


class DecodeError(ChunkShuffleError):
    """An input container could not be decoded to PCM."""
