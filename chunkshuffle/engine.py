"""
Shuffle engine: chunk a decoded PCM stream, randomize chunk volumes,
shuffle chunk order and hand the result to an encoder sink.

The whole stream is held in memory: a shuffle needs every chunk before the
first one can be written.

Collaborators:
- source: a binary file-like object with read(n) and close()
- sink:   an object with write(chunk), commit() and discard();
          nothing may reach the output until commit() is called
"""

import io
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from chunkshuffle.chunking import TailPolicy, align_tail, compute_chunk_size
from chunkshuffle.errors import ChunkSizeUnderflowError, DecodeError
from chunkshuffle.pcm_format import FormatDescriptor
from chunkshuffle.secure_shuffle import RandomBytes, secure_shuffle
from chunkshuffle.volume import UniformVolume, adjust_volume

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_MS = 200


class EngineState(Enum):
    READING = "reading"
    FINALIZING = "finalizing"
    DONE = "done"


@dataclass
class ShuffleReport:
    chunk_count: int = 0
    bytes_written: int = 0
    tail_bytes_dropped: int = 0
    tail_bytes_padded: int = 0


class ShuffleEngine:
    """
    Single-threaded, per-file chunk shuffler.

    Engines share nothing, so separate files may be processed in parallel
    with one engine each. One engine handles one run at a time.
    """

    def __init__(
        self,
        fmt: FormatDescriptor,
        chunk_ms: int = DEFAULT_CHUNK_MS,
        volume: Optional[Callable[[], float]] = None,
        randbytes: Optional[RandomBytes] = None,
        tail_policy: TailPolicy = TailPolicy.DISCARD,
    ) -> None:
        """
        Args:
            fmt: format of the PCM stream that will be fed to run()
            chunk_ms: chunk duration in milliseconds
            volume: callable returning one volume factor per chunk
                    (default: UniformVolume() over [0.5, 2.3))
            randbytes: secure byte source for the shuffle (default: secrets.token_bytes)
            tail_policy: how to frame-align a final partial block
        """
        self.fmt = fmt
        self.chunk_ms = chunk_ms
        self.volume = volume if volume is not None else UniformVolume()
        self.randbytes = randbytes
        self.tail_policy = tail_policy
        self.state = EngineState.DONE

        self.chunk_size = compute_chunk_size(fmt, chunk_ms)
        if self.chunk_size <= 0:
            raise ChunkSizeUnderflowError(
                f"{chunk_ms} ms at {fmt.average_bytes_per_second} bytes/s "
                f"is shorter than one {fmt.frame_bytes}-byte frame"
            )
        logger.debug("Chunk size %d bytes (%d ms, %s)", self.chunk_size, chunk_ms, fmt)

    # --------------------
    # Reading
    # --------------------

    def _read_block(self, source) -> bytearray:
        """Read up to chunk_size bytes, retrying short reads until EOF."""
        block = bytearray()
        while len(block) < self.chunk_size:
            try:
                data = source.read(self.chunk_size - len(block))
            except OSError as e:
                raise DecodeError(f"Reading decoded PCM failed: {e}") from e
            if not data:
                break
            block += data
        return block

    def read_chunks(self, source, report: Optional[ShuffleReport] = None) -> List[bytearray]:
        """
        Pull the whole source as volume-adjusted, frame-aligned chunks.

        Only the final block can be short. If it does not end on a frame
        boundary it is trimmed or padded according to tail_policy.
        """
        if report is None:
            report = ShuffleReport()

        chunks: List[bytearray] = []
        while True:
            block = self._read_block(source)
            if not block:
                break

            if len(block) < self.chunk_size:
                delta = align_tail(block, self.fmt, self.tail_policy)
                if delta < 0:
                    report.tail_bytes_dropped += -delta
                    logger.warning("Discarded %d trailing bytes of a partial frame", -delta)
                elif delta > 0:
                    report.tail_bytes_padded += delta
                    logger.warning("Padded partial final frame with %d bytes of silence", delta)
                if not block:
                    break

            adjust_volume(block, self.fmt, self.volume())
            chunks.append(block)

        report.chunk_count = len(chunks)
        return chunks

    # --------------------
    # Full run
    # --------------------

    def run(self, source, sink) -> ShuffleReport:
        """
        Read, shuffle and write one stream.

        The source is always closed. On any error the sink is discarded and
        the accumulated chunks are dropped before the error propagates, so
        either the full output is committed or none of it is.
        """
        report = ShuffleReport()
        chunks: List[bytearray] = []
        try:
            self.state = EngineState.READING
            chunks = self.read_chunks(source, report)

            self.state = EngineState.FINALIZING
            secure_shuffle(chunks, self.randbytes)
            for chunk in chunks:
                sink.write(chunk)
                report.bytes_written += len(chunk)
            sink.commit()
        except Exception:
            chunks.clear()
            sink.discard()
            raise
        finally:
            try:
                source.close()
            except OSError:
                logger.exception("Closing the PCM source failed")
            self.state = EngineState.DONE

        logger.debug("Wrote %d chunks, %d bytes", report.chunk_count, report.bytes_written)
        return report


class _BytesSink:
    def __init__(self):
        self._parts = []
        self.data = b""

    def write(self, chunk):
        self._parts.append(bytes(chunk))

    def commit(self):
        self.data = b"".join(self._parts)
        self._parts = []

    def discard(self):
        self._parts = []


def shuffle_pcm(pcm: bytes, fmt: FormatDescriptor, **engine_kwargs) -> bytes:
    """
    Shuffle an in-memory PCM buffer and return the new buffer.

    Keyword arguments are passed to ShuffleEngine.
    """
    sink = _BytesSink()
    ShuffleEngine(fmt, **engine_kwargs).run(io.BytesIO(pcm), sink)
    return sink.data
