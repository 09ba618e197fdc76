#!/usr/bin/env python3
"""
Chunk shuffler for audio files.

Splits the audio into short chunks, gives every chunk a random volume and
writes the chunks back out in a cryptographically random order as WAV.

Usage examples:

  One file:
    python shuffle_audio.py file --chunk-ms 200 input.mp3 shuffled.wav

  A whole directory (source/ -> .staging/ -> output/ under --base-dir):
    python shuffle_audio.py batch --base-dir ./work
"""

import argparse
import logging
import sys

from chunkshuffle.batch import process_directory, shuffle_audio_file
from chunkshuffle.chunking import TailPolicy
from chunkshuffle.config import ShuffleConfig
from chunkshuffle.errors import ChunkShuffleError


# ---------- CLI handling ----------

def build_parser(defaults: ShuffleConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Shuffle fixed-duration audio chunks with random per-chunk volume."
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--chunk-ms",
        type=int,
        default=defaults.chunk_ms,
        help=f"Chunk duration in milliseconds (default: {defaults.chunk_ms}).",
    )
    common.add_argument(
        "--min-volume",
        type=float,
        default=defaults.min_volume,
        help=f"Lowest per-chunk volume factor (default: {defaults.min_volume}).",
    )
    common.add_argument(
        "--max-volume",
        type=float,
        default=defaults.max_volume,
        help=f"Highest per-chunk volume factor (default: {defaults.max_volume}).",
    )
    common.add_argument(
        "--volume-seed",
        type=int,
        default=None,
        help="Seed for the volume factors. Chunk order is always secure-random.",
    )
    common.add_argument(
        "--tail",
        choices=[p.value for p in TailPolicy],
        default=defaults.tail_policy.value,
        help="Drop or zero-pad a final partial frame (default: %(default)s).",
    )
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")

    sub = parser.add_subparsers(dest="mode", required=True)

    file_cmd = sub.add_parser("file", parents=[common], help="Shuffle a single file.")
    file_cmd.add_argument("input", help="Input audio file (wav, mp3, aiff, flac, wma, m4a).")
    file_cmd.add_argument("output", help="Output WAV file path.")

    batch_cmd = sub.add_parser("batch", parents=[common], help="Shuffle every file in source/.")
    batch_cmd.add_argument(
        "--base-dir",
        default=".",
        help="Directory holding source/, .staging/ and output/ (default: current directory).",
    )
    return parser


def main(argv=None) -> int:
    defaults = ShuffleConfig.from_env()
    args = build_parser(defaults).parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = ShuffleConfig(
        chunk_ms=args.chunk_ms,
        min_volume=args.min_volume,
        max_volume=args.max_volume,
        tail_policy=TailPolicy(args.tail),
    )

    if args.mode == "file":
        print(f"Shuffling '{args.input}' -> '{args.output}' in {config.chunk_ms} ms chunks")
        try:
            report = shuffle_audio_file(args.input, args.output, config, volume_seed=args.volume_seed)
        except (ChunkShuffleError, ValueError, OSError) as e:
            print(f"Error processing {args.input}: {e}", file=sys.stderr)
            return 1
        print(f"Done. {report.chunk_count} chunks, {report.bytes_written} bytes.")
        return 0

    print(f"Processing directory '{args.base_dir}'")
    report = process_directory(args.base_dir, config, volume_seed=args.volume_seed)
    for path in report.processed:
        print(f"Saved to: {path}")
    for path in report.failed:
        print(f"Failed: {path}", file=sys.stderr)
    print(f"All done! {len(report.processed)} processed, {len(report.failed)} failed.")
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
