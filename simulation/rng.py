"""Seeded pseudo-random source shared by the engine and the scenario layer.

Every random decision in a run is drawn from one ``DeterministicRng`` in a
fixed order, so a run is fully reproducible from its scenario seed.
"""

from __future__ import annotations

from typing import Sequence, TypeVar

T = TypeVar("T")

_MASK32 = 0xFFFFFFFF
_INCREMENT = 0x6D2B79F5


def _imul(a: int, b: int) -> int:
    """32-bit wrapping multiply."""
    return (a * b) & _MASK32


class DeterministicRng:
    """Mulberry32 generator on a 32-bit state.

    Not cryptographically strong; only reproducibility and reasonable
    short-range independence are required.
    """

    def __init__(self, seed: int) -> None:
        self._state = seed & _MASK32
        self._draws = 0

    def next(self) -> float:
        """Return the next float in ``[0, 1)``."""
        self._state = (self._state + _INCREMENT) & _MASK32
        t = self._state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & _MASK32
        t = (t ^ (t >> 14)) & _MASK32
        self._draws += 1
        return t / 4294967296.0

    __call__ = next

    @property
    def draws(self) -> int:
        """Number of values drawn so far."""
        return self._draws

    def uniform(self, low: float, high: float) -> float:
        return low + (high - low) * self.next()

    def symmetric(self, half_width: float) -> float:
        """Uniform draw in ``[-half_width, half_width)``."""
        return (self.next() * 2.0 - 1.0) * half_width

    def chance(self, probability: float) -> bool:
        return self.next() < probability

    def choice(self, items: Sequence[T]) -> T:
        if not items:
            raise ValueError("choice() from an empty sequence")
        index = min(int(self.next() * len(items)), len(items) - 1)
        return items[index]
