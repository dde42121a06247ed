"""
Seeded pseudo-random stream for board generation.

Board layout, port placement and the development deck must come out identical
every time they are generated from the same game id, so they are drawn from a
small mulberry32 generator seeded by an FNV-1a hash of a string.
Dice and discards do not use this module; they use `random`.
"""
from typing import Callable, List, Sequence, TypeVar

T = TypeVar("T")

MASK_32 = 0xFFFFFFFF
FNV_OFFSET = 2166136261
FNV_PRIME = 16777619


def hash_string_to_seed(value: str) -> int:
    """FNV-1a hash of a string, as an unsigned 32-bit integer."""
    h = FNV_OFFSET
    for ch in value:
        h ^= ord(ch)
        h = (h * FNV_PRIME) & MASK_32
    return h


def _imul(a: int, b: int) -> int:
    return (a * b) & MASK_32


def mulberry32(seed: int) -> Callable[[], float]:
    """Return a generator of floats in [0, 1) seeded with a 32-bit integer."""
    state = seed & MASK_32

    def next_float() -> float:
        nonlocal state
        state = (state + 0x6D2B79F5) & MASK_32
        t = state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & MASK_32
        return ((t ^ (t >> 14)) & MASK_32) / 4294967296

    return next_float


def rng_from_seed(seed: str) -> Callable[[], float]:
    return mulberry32(hash_string_to_seed(seed))


def shuffle(items: Sequence[T], rand: Callable[[], float]) -> List[T]:
    """Fisher-Yates shuffle of a copy of `items`."""
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = int(rand() * (i + 1))
        result[i], result[j] = result[j], result[i]
    return result
