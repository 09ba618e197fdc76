"""
Runtime defaults for the shuffler, overridable from the environment.

    CHUNKSHUFFLE_CHUNK_MS      chunk duration in milliseconds (200)
    CHUNKSHUFFLE_MIN_VOLUME    lowest volume factor (0.5)
    CHUNKSHUFFLE_MAX_VOLUME    highest volume factor (2.3)
    CHUNKSHUFFLE_TAIL_POLICY   "discard" or "pad" (discard)
"""

import os
from dataclasses import dataclass

from chunkshuffle.chunking import TailPolicy
from chunkshuffle.engine import DEFAULT_CHUNK_MS
from chunkshuffle.volume import DEFAULT_MAX_VOLUME, DEFAULT_MIN_VOLUME, UniformVolume


def _env(environ, name, convert, default):
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return convert(raw)
    except ValueError as e:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from e


@dataclass(frozen=True)
class ShuffleConfig:
    chunk_ms: int = DEFAULT_CHUNK_MS
    min_volume: float = DEFAULT_MIN_VOLUME
    max_volume: float = DEFAULT_MAX_VOLUME
    tail_policy: TailPolicy = TailPolicy.DISCARD

    @classmethod
    def from_env(cls, environ=None) -> "ShuffleConfig":
        if environ is None:
            environ = os.environ
        return cls(
            chunk_ms=_env(environ, "CHUNKSHUFFLE_CHUNK_MS", int, DEFAULT_CHUNK_MS),
            min_volume=_env(environ, "CHUNKSHUFFLE_MIN_VOLUME", float, DEFAULT_MIN_VOLUME),
            max_volume=_env(environ, "CHUNKSHUFFLE_MAX_VOLUME", float, DEFAULT_MAX_VOLUME),
            tail_policy=_env(environ, "CHUNKSHUFFLE_TAIL_POLICY",
                             lambda v: TailPolicy(v.lower()), TailPolicy.DISCARD),
        )

    def volume_policy(self, seed=None) -> UniformVolume:
        return UniformVolume(self.min_volume, self.max_volume, seed=seed)
