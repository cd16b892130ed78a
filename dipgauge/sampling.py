"""PCG32 random numbers for fast sampling decisions."""

from __future__ import annotations

import threading
import time

_MASK64 = (1 << 64) - 1
_MASK32 = (1 << 32) - 1
_MULTIPLIER = 6364136223846793005
_INCREMENT = 1442695040888963407
_BASE_SEED = 5573589319906701683

U32_MAX = _MASK32


def _step(state: int) -> int:
    return (state * _MULTIPLIER + _INCREMENT) & _MASK64


def _seed() -> int:
    seed = (_step(_BASE_SEED) + time.monotonic_ns()) & _MASK64
    return _step(seed)


class Pcg32:
    """A minimal PCG32 generator producing unsigned 32-bit integers."""

    __slots__ = ("state",)

    def __init__(self, state: int | None = None) -> None:
        self.state = _seed() if state is None else state & _MASK64

    def next_u32(self) -> int:
        """Return the next random 32-bit value."""
        old = self.state
        self.state = _step(old)
        xorshifted = (((old >> 18) ^ old) >> 27) & _MASK32
        rot = old >> 59
        return ((xorshifted >> rot) | (xorshifted << ((32 - rot) & 31))) & _MASK32

    def __iter__(self) -> Pcg32:
        return self

    def __next__(self) -> int:
        return self.next_u32()


_local = threading.local()


def _thread_rng() -> Pcg32:
    rng = getattr(_local, "rng", None)
    if rng is None:
        rng = _local.rng = Pcg32()
    return rng


def to_int_rate(float_rate: float) -> int:
    """Convert a sampling rate in [0.0, 1.0] to an integer threshold.

    1.0 (keep every sample) maps to 0; 0.0 (keep none) maps to 0xFFFFFFFF.
    """
    if not 0.0 <= float_rate <= 1.0:
        raise ValueError(f"sampling rate must be between 0.0 and 1.0, got {float_rate}")
    return int((1.0 - float_rate) * float(U32_MAX))


def accept_sample(int_rate: int) -> bool:
    """Randomly decide whether to keep a sample, given an integer rate."""
    return _thread_rng().next_u32() > int_rate