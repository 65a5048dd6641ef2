"""A small linear congruential random number generator for tests."""

from __future__ import annotations

_MASK32 = 0xFFFFFFFF


class TestRandom:
    """The Numerical Recipes linear congruential generator (32-bit)."""

    __test__ = False

    def __init__(self, seed: int = 1) -> None:
        self.seed = seed & _MASK32

    def __call__(self) -> int:
        self.seed = (1664525 * self.seed + 1013904223) & _MASK32
        return self.seed