"""
Unbiased in-place shuffle driven by a cryptographically secure byte source.

Indices are drawn by rejection sampling: a random word is discarded when it
falls in the incomplete final stretch of the word range, so every index in
[0, n) is exactly equiprobable. A plain ``word % n`` would favour the low
indices whenever n does not divide the word range.
"""

import secrets
from typing import Callable, MutableSequence, Optional

from chunkshuffle.errors import RandomSourceError

RandomBytes = Callable[[int], bytes]

_MIN_WORD_BYTES = 4


def _draw(randbytes: RandomBytes, nbytes: int) -> int:
    try:
        data = randbytes(nbytes)
    except (OSError, NotImplementedError) as e:
        raise RandomSourceError(f"Secure random source failed: {e}") from e
    if len(data) != nbytes:
        raise RandomSourceError(
            f"Secure random source returned {len(data)} bytes, expected {nbytes}"
        )
    return int.from_bytes(data, "little")


def secure_randbelow(n: int, randbytes: Optional[RandomBytes] = None) -> int:
    """
    Return a uniformly distributed integer in [0, n).

    randbytes(k) must return k random bytes; it defaults to
    secrets.token_bytes. Words of at least 32 bits are drawn and redrawn
    while they land at or above the largest multiple of n.
    """
    if n <= 0:
        raise ValueError(f"Upper bound must be positive, got {n}")
    if randbytes is None:
        randbytes = secrets.token_bytes

    nbytes = max(_MIN_WORD_BYTES, (n.bit_length() + 7) // 8)
    space = 1 << (8 * nbytes)
    limit = space - (space % n)

    while True:
        word = _draw(randbytes, nbytes)
        if word < limit:
            return word % n


def secure_shuffle(items: MutableSequence, randbytes: Optional[RandomBytes] = None) -> None:
    """
    Fisher-Yates shuffle of items, in place.

    Walks i from the last index down to 1 and swaps items[i] with a
    uniformly chosen items[k], k in [0, i]. Sequences of length 0 or 1 are
    left untouched and consume no randomness.
    """
    for i in range(len(items) - 1, 0, -1):
        k = secure_randbelow(i + 1, randbytes)
        items[i], items[k] = items[k], items[i]
