from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Iterator

import torch


class PartitionInvariantError(RuntimeError):
    """Raised when the partition reaches a state the splitting rule can never produce."""


@dataclass(frozen=True)
class Interval:
    begin: float
    end: float

    @property
    def length(self) -> float:
        return self.end - self.begin


class Partition:
    def __init__(self, a: float, b: float) -> None:
        """
        Adaptive partition of [a, b], starting from the single interval (a, b).

        Parameters:
        - a (float): Left end of the search domain.
        - b (float): Right end of the search domain, a < b.
        """
        if not (math.isfinite(a) and math.isfinite(b)):
            raise ValueError(f"bounds must be finite, got a={a}, b={b}")
        if not a < b:
            raise ValueError(f"expected a < b, got a={a}, b={b}")
        self.a = float(a)
        self.b = float(b)
        self._intervals = [Interval(self.a, self.b)]

    def __len__(self) -> int:
        return len(self._intervals)

    def __getitem__(self, index: int) -> Interval:
        return self._intervals[index]

    def __iter__(self) -> Iterator[Interval]:
        return iter(self._intervals)

    def as_tensor(self, start: int = 0, stop: int | None = None) -> torch.Tensor:
        """
        Contiguous slice [start, stop) of the partition as a float64 tensor of
        shape (k, 2), one (begin, end) row per interval.
        """
        intervals = self._intervals[start:stop]
        if not intervals:
            return torch.empty((0, 2), dtype=torch.float64)
        return torch.tensor([[iv.begin, iv.end] for iv in intervals], dtype=torch.float64)

    def split(self, index: int, point: float) -> None:
        """
        Split interval `index` at `point`: (y0, point) is appended at the end
        and the selected interval becomes (point, y1).
        """
        if index < 0 or index >= len(self._intervals):
            raise PartitionInvariantError(
                f"interval index {index} out of range for a partition of {len(self._intervals)}")
        interval = self._intervals[index]
        if not interval.begin < point < interval.end:
            raise PartitionInvariantError(
                f"split point {point!r} is not inside ({interval.begin!r}, {interval.end!r})")
        self._intervals.append(Interval(interval.begin, point))
        self._intervals[index] = Interval(point, interval.end)

    def __repr__(self) -> str:
        return f"Partition(a={self.a}, b={self.b}, intervals={len(self._intervals)})"
