"""
Container decoding and WAV encoding around the shuffle engine.

Decoding turns any supported container into 16-bit little-endian PCM plus a
FormatDescriptor. WAV goes through scipy.io.wavfile, FLAC/AIFF/MP3 through
soundfile, and WMA/M4A through an ffmpeg subprocess.

Encoding sinks collect chunks and only produce output on commit(), so a
failed run never leaves a truncated WAV behind.
"""

import io
import logging
import os
import struct
import subprocess
import tempfile
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import soundfile as sf
from scipy.io import wavfile

from chunkshuffle.errors import DecodeError, InvalidFormatError
from chunkshuffle.pcm_format import FormatDescriptor

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".wav", ".mp3", ".aiff", ".flac", ".wma", ".m4a")
SOUNDFILE_EXTENSIONS = (".mp3", ".aiff", ".flac")
FFMPEG_EXTENSIONS = (".wma", ".m4a")

FFMPEG_TIMEOUT_SECONDS = 300

_ENCODABLE_DTYPES = {16: "<i2", 32: "<i4"}


def is_supported_audio_file(path) -> bool:
    return Path(path).suffix.lower() in SUPPORTED_EXTENSIONS


# ---------- Decoding ----------

def to_int16(data: np.ndarray) -> np.ndarray:
    """
    Convert decoded samples of any common dtype to int16.

    uint8 is re-centred around zero, wider integers keep their top 16 bits,
    and floats are treated as [-1.0, 1.0] full scale.
    """
    data = np.asarray(data)
    if data.dtype == np.int16:
        return data
    if data.dtype == np.uint8:
        return ((data.astype(np.int16) - 128) << 8).astype(np.int16)
    if data.dtype == np.int32:
        return (data >> 16).astype(np.int16)
    if data.dtype == np.int64:
        return (data >> 48).astype(np.int16)
    if np.issubdtype(data.dtype, np.floating):
        return np.rint(np.clip(data, -1.0, 1.0) * 32767).astype(np.int16)
    raise DecodeError(f"Unsupported sample dtype: {data.dtype}")


def _pcm_result(sample_rate: int, data: np.ndarray) -> Tuple[FormatDescriptor, bytes]:
    samples = to_int16(data)
    channels = 1 if samples.ndim == 1 else samples.shape[1]
    fmt = FormatDescriptor(int(sample_rate), 16, channels)
    return fmt, np.ascontiguousarray(samples, dtype="<i2").tobytes()


def _decode_wav(source) -> Tuple[FormatDescriptor, bytes]:
    try:
        sample_rate, data = wavfile.read(source)
    except (ValueError, OSError, struct.error) as e:
        raise DecodeError(f"Could not read WAV data: {e}") from e
    return _pcm_result(sample_rate, data)


def _decode_soundfile(source) -> Tuple[FormatDescriptor, bytes]:
    try:
        data, sample_rate = sf.read(source, dtype="int16")
    except (RuntimeError, OSError, ValueError) as e:
        raise DecodeError(f"Could not decode audio: {e}") from e
    return _pcm_result(sample_rate, data)


def _run_tool(cmd, stdin_bytes: Optional[bytes]) -> bytes:
    try:
        result = subprocess.run(
            cmd,
            input=stdin_bytes,
            capture_output=True,
            timeout=FFMPEG_TIMEOUT_SECONDS,
        )
    except FileNotFoundError as e:
        raise DecodeError(f"{cmd[0]} is not installed or not on PATH") from e
    except subprocess.TimeoutExpired as e:
        raise DecodeError(f"{cmd[0]} timed out after {FFMPEG_TIMEOUT_SECONDS}s") from e

    if result.returncode != 0:
        error_msg = result.stderr.decode("utf-8", errors="ignore").strip()
        raise DecodeError(f"{cmd[0]} failed ({result.returncode}): {error_msg}")
    return result.stdout


def probe_stream(input_arg: str, stdin_bytes: Optional[bytes] = None) -> Tuple[int, int]:
    """Return (sample_rate, channels) of the first audio stream using ffprobe."""
    cmd = [
        "ffprobe",
        "-v", "error",
        "-select_streams", "a:0",
        "-show_entries", "stream=sample_rate,channels",
        "-of", "default=noprint_wrappers=1",
        input_arg,
    ]
    out = _run_tool(cmd, stdin_bytes).decode("utf-8", errors="ignore")

    fields = {}
    for line in out.splitlines():
        key, _, value = line.partition("=")
        fields[key.strip()] = value.strip()
    try:
        return int(fields["sample_rate"]), int(fields["channels"])
    except (KeyError, ValueError) as e:
        raise DecodeError(f"ffprobe found no usable audio stream in {input_arg}") from e


def _decode_ffmpeg(source) -> Tuple[FormatDescriptor, bytes]:
    if isinstance(source, (str, os.PathLike)):
        input_arg, stdin_bytes = str(source), None
    else:
        input_arg, stdin_bytes = "pipe:0", source.read()

    sample_rate, channels = probe_stream(input_arg, stdin_bytes)
    cmd = [
        "ffmpeg",
        "-v", "error",
        "-i", input_arg,
        "-f", "s16le",
        "-acodec", "pcm_s16le",
        "-ac", str(channels),
        "-ar", str(sample_rate),
        "pipe:1",
    ]
    pcm = _run_tool(cmd, stdin_bytes)
    return FormatDescriptor(sample_rate, 16, channels), pcm


def decode_audio(source, suffix: Optional[str] = None) -> Tuple[FormatDescriptor, bytes]:
    """
    Decode an audio container to 16-bit PCM.

    source is a path or a binary file-like object. suffix selects the
    decoder and defaults to the path's extension; it is required for
    file-like sources.

    Returns (FormatDescriptor, pcm_bytes).
    """
    if suffix is None:
        if not isinstance(source, (str, os.PathLike)):
            raise DecodeError("A file suffix is required to decode a file-like source")
        suffix = Path(source).suffix
    suffix = suffix.lower()
    if isinstance(source, os.PathLike):
        source = os.fspath(source)

    if suffix == ".wav":
        return _decode_wav(source)
    if suffix in SOUNDFILE_EXTENSIONS:
        return _decode_soundfile(source)
    if suffix in FFMPEG_EXTENSIONS:
        return _decode_ffmpeg(source)
    raise DecodeError(f"Unsupported audio format: {suffix or '(no extension)'}")


# ---------- Encoding ----------

class WavSink:
    """
    Collects PCM chunks and encodes them as one WAV on commit().

    Subclasses decide where the encoded WAV goes by overriding _store().
    """

    def __init__(self, fmt: FormatDescriptor):
        if fmt.bits_per_sample not in _ENCODABLE_DTYPES:
            raise InvalidFormatError(
                f"WAV output supports {sorted(_ENCODABLE_DTYPES)}-bit PCM, got {fmt.bits_per_sample}"
            )
        self.fmt = fmt
        self._parts = []
        self.committed = False

    def write(self, chunk) -> None:
        self._parts.append(bytes(chunk))

    def discard(self) -> None:
        self._parts = []

    def _samples(self) -> np.ndarray:
        pcm = b"".join(self._parts)
        samples = np.frombuffer(pcm, dtype=_ENCODABLE_DTYPES[self.fmt.bits_per_sample])
        if self.fmt.channels > 1:
            samples = samples.reshape(-1, self.fmt.channels)
        return samples

    def commit(self) -> None:
        self._store(self._samples())
        self._parts = []
        self.committed = True

    def _store(self, samples: np.ndarray) -> None:
        raise NotImplementedError


class WavBufferSink(WavSink):
    """Encode into an in-memory buffer, ready to be sent as a download."""

    def __init__(self, fmt: FormatDescriptor):
        super().__init__(fmt)
        self.buffer = io.BytesIO()

    def _store(self, samples):
        wavfile.write(self.buffer, self.fmt.sample_rate, samples)
        self.buffer.seek(0)


class WavFileSink(WavSink):
    """
    Encode to a file on disk.

    The WAV is written to a temporary file beside the target and renamed
    into place, so the target path either holds the complete output or is
    left untouched.
    """

    def __init__(self, path, fmt: FormatDescriptor):
        super().__init__(fmt)
        self.path = Path(path)

    def _store(self, samples):
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.stem}-", suffix=".part", dir=self.path.parent
        )
        os.close(fd)
        try:
            wavfile.write(tmp_path, self.fmt.sample_rate, samples)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.remove(tmp_path)
            raise
        logger.debug("Wrote %s", self.path)
