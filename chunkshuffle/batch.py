"""
Directory driver: stage input files, shuffle each one, collect the outputs.

Layout under the base directory:

    source/     drop audio files here
    .staging/   hidden work area; files are moved here as Input<N><ext>
    output/     shuffled WAV files, named <stem><R>.wav with R in [0, 9999)

A file that fails is logged and left in .staging/; the loop carries on with
the next one. A written output counts as processed even if its staged input
cannot be removed afterwards.
"""

import io
import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import numpy as np

from chunkshuffle.audio_io import WavFileSink, decode_audio, is_supported_audio_file
from chunkshuffle.config import ShuffleConfig
from chunkshuffle.engine import ShuffleEngine, ShuffleReport
from chunkshuffle.secure_shuffle import RandomBytes

logger = logging.getLogger(__name__)

SOURCE_DIR_NAME = "source"
STAGING_DIR_NAME = ".staging"
OUTPUT_DIR_NAME = "output"
OUTPUT_SUFFIX_RANGE = 9999


@dataclass
class BatchReport:
    processed: List[Path] = field(default_factory=list)
    failed: List[Path] = field(default_factory=list)


def shuffle_audio_file(
    input_path,
    output_path,
    config: Optional[ShuffleConfig] = None,
    volume_seed: Optional[int] = None,
    randbytes: Optional[RandomBytes] = None,
) -> ShuffleReport:
    """
    Decode one audio file, shuffle it and write the result as a WAV.

    The output file only appears once it has been written completely.
    """
    if config is None:
        config = ShuffleConfig()

    fmt, pcm = decode_audio(input_path)
    engine = ShuffleEngine(
        fmt,
        chunk_ms=config.chunk_ms,
        volume=config.volume_policy(seed=volume_seed),
        randbytes=randbytes,
        tail_policy=config.tail_policy,
    )
    return engine.run(io.BytesIO(pcm), WavFileSink(output_path, fmt))


# ---------- Staging ----------

def ensure_layout(base_dir) -> tuple:
    """Create source/, .staging/ and output/ under base_dir if missing."""
    base_dir = Path(base_dir)
    dirs = tuple(base_dir / name for name in (SOURCE_DIR_NAME, STAGING_DIR_NAME, OUTPUT_DIR_NAME))
    for d in dirs:
        if not d.is_dir():
            d.mkdir(parents=True)
            logger.info("Created directory: %s", d)
    return dirs


def _next_staged_name(staging_dir: Path, ext: str) -> Path:
    count = sum(1 for p in staging_dir.iterdir() if p.is_file()) + 1
    dest = staging_dir / f"Input{count}{ext}"
    while dest.exists():
        count += 1
        dest = staging_dir / f"Input{count}{ext}"
    return dest


def stage_source_files(source_dir, staging_dir) -> List[Path]:
    """
    Move supported audio files from source_dir into staging_dir.

    Files are renamed Input<N><ext>, keeping the original extension.
    Unsupported files stay where they are.
    """
    staged = []
    for file in sorted(Path(source_dir).iterdir()):
        if not file.is_file() or not is_supported_audio_file(file):
            continue
        dest = _next_staged_name(Path(staging_dir), file.suffix)
        try:
            shutil.move(str(file), str(dest))
        except OSError:
            logger.exception("Could not stage %s", file)
            continue
        logger.info("Staged %s as %s", file.name, dest.name)
        staged.append(dest)
    return staged


def _staged_order(path: Path) -> tuple:
    match = re.fullmatch(r"Input(\d+)", path.stem)
    if match:
        return (0, int(match.group(1)), path.name)
    return (1, 0, path.name)


def pending_staged_files(staging_dir) -> List[Path]:
    """Supported files in staging_dir, Input<N> files first in numeric order."""
    files = [p for p in Path(staging_dir).iterdir() if p.is_file() and is_supported_audio_file(p)]
    return sorted(files, key=_staged_order)


# ---------- Batch loop ----------

def process_directory(
    base_dir,
    config: Optional[ShuffleConfig] = None,
    volume_seed: Optional[int] = None,
    randbytes: Optional[RandomBytes] = None,
) -> BatchReport:
    """
    Stage everything in source/ and shuffle every staged file into output/.

    With volume_seed set, file i uses volume seed volume_seed + i so a run
    can be reproduced (chunk order is still secure-random).
    """
    if config is None:
        config = ShuffleConfig()

    source_dir, staging_dir, output_dir = ensure_layout(base_dir)
    stage_source_files(source_dir, staging_dir)

    report = BatchReport()
    name_rng = np.random.default_rng()
    pending = pending_staged_files(staging_dir)
    if not pending:
        logger.info("No supported audio files found in %s", staging_dir)
        return report

    for index, staged in enumerate(pending):
        out_path = output_dir / f"{staged.stem}{name_rng.integers(0, OUTPUT_SUFFIX_RANGE)}.wav"
        while out_path.exists():
            out_path = output_dir / f"{staged.stem}{name_rng.integers(0, OUTPUT_SUFFIX_RANGE)}.wav"
        seed = None if volume_seed is None else volume_seed + index
        logger.info("Processing %s", staged)
        try:
            shuffle_audio_file(staged, out_path, config, volume_seed=seed, randbytes=randbytes)
        except Exception:
            logger.exception("Failed to process %s", staged)
            report.failed.append(staged)
            continue

        logger.info("Saved %s", out_path)
        report.processed.append(out_path)
        try:
            staged.unlink()
        except OSError:
            logger.exception("Could not remove staged file %s", staged)

    return report
