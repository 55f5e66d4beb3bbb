"""Bounded FIFO buffers with the averages used to smooth heading and speed.

Heading cannot be averaged arithmetically: the mean of 350° and 10° is
0°, not 180°. Headings are averaged as unit vectors instead.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

import numpy as np


def circular_mean_deg(angles: Iterable[float]) -> float:
    """Mean direction of a set of angles in degrees, in [0, 360).

    Returns 0.0 for an empty input.
    """
    rad = np.radians(np.fromiter(angles, dtype=float))
    if rad.size == 0:
        return 0.0
    mean = np.degrees(np.arctan2(np.sin(rad).mean(), np.cos(rad).mean()))
    wrapped = float(mean % 360.0)
    return 0.0 if wrapped >= 360.0 else wrapped


class BoundedBuffer:
    """Fixed-capacity sequence; pushing past capacity evicts the oldest value.

    Usage:
        buf = BoundedBuffer(capacity=3)
        buf.push(4.0)
        buf.push(6.0)
        buf.mean()  # 5.0
    """

    def __init__(self, capacity: int, values: Iterable[float] = ()):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._values: deque[float] = deque(values, maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._values.maxlen

    def push(self, value: float) -> None:
        self._values.append(float(value))

    def clear(self) -> None:
        self._values.clear()

    def copy(self) -> BoundedBuffer:
        return BoundedBuffer(self.capacity, self._values)

    def values(self) -> list[float]:
        return list(self._values)

    def mean(self) -> float:
        """Arithmetic mean, 0.0 when empty."""
        if not self._values:
            return 0.0
        return float(np.mean(self._values))

    def max(self) -> float:
        """Largest value, 0.0 when empty."""
        if not self._values:
            return 0.0
        return float(np.max(self._values))

    def circular_mean(self) -> float:
        return circular_mean_deg(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self):
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BoundedBuffer):
            return NotImplemented
        return self.capacity == other.capacity and list(self._values) == list(other._values)

    def __repr__(self) -> str:
        return f"BoundedBuffer(capacity={self.capacity}, values={list(self._values)!r})"
