from __future__ import annotations
import math
import struct
from dataclasses import dataclass
from typing import Callable

import numpy as np
import torch

from strongin.partition import PartitionInvariantError

DEFAULT_RELIABILITY = 2.0

# version, score, index
RECORD_VERSION = 1
RECORD_FORMAT = "<Bdq"
RECORD_SIZE = struct.calcsize(RECORD_FORMAT)


@dataclass(frozen=True)
class Characteristic:
    """Best characteristic value and the index of the interval holding it."""
    score: float = -math.inf
    index: int = -1

    @property
    def is_empty(self) -> bool:
        return self.index < 0

    def to_tensor(self) -> torch.Tensor:
        payload = struct.pack(RECORD_FORMAT, RECORD_VERSION, self.score, self.index)
        return torch.frombuffer(bytearray(payload), dtype=torch.uint8)

    @classmethod
    def from_tensor(cls, block: torch.Tensor) -> "Characteristic":
        if block.dtype != torch.uint8 or block.numel() != RECORD_SIZE:
            raise ValueError(
                f"expected {RECORD_SIZE} uint8 values, got {block.numel()} of {block.dtype}")
        version, score, index = struct.unpack(RECORD_FORMAT, block.numpy().tobytes())
        if version != RECORD_VERSION:
            raise ValueError(f"unsupported characteristic record version {version}")
        return cls(score, index)

    @staticmethod
    def buffer() -> torch.Tensor:
        return torch.zeros(RECORD_SIZE, dtype=torch.uint8)


def evaluate(f: Callable[[float], float], points: torch.Tensor) -> torch.Tensor:
    values = np.fromiter((f(y) for y in points.tolist()), dtype=np.float64, count=points.numel())
    return torch.from_numpy(values)


def _differences(f: Callable[[float], float], block: torch.Tensor):
    begins = block[:, 0]
    ends = block[:, 1]
    dy = ends - begins
    if bool((dy <= 0).any()):
        bad = int(torch.nonzero(dy <= 0)[0])
        raise PartitionInvariantError(
            f"interval {bad} ({begins[bad].item()!r}, {ends[bad].item()!r}) has non-positive length")
    z_begin = evaluate(f, begins)
    z_end = evaluate(f, ends)
    return dy, z_end - z_begin, z_end + z_begin


def lipschitz_estimate(f: Callable[[float], float], block: torch.Tensor) -> float:
    """
    Estimate of the Lipschitz constant over a block of intervals:
    M = max_i |f(end_i) - f(begin_i)| / (end_i - begin_i).

    Parameters:
    f (callable): Objective function.
    block (torch.Tensor): (k, 2) tensor of (begin, end) rows.

    Returns:
    float: M, 0.0 for an empty block.
    """
    if block.shape[0] == 0:
        return 0.0
    dy, dz, _ = _differences(f, block)
    return max(0.0, torch.max(torch.abs(dz / dy)).item())


def secondary_estimate(M: float, r: float = DEFAULT_RELIABILITY) -> float:
    """m = 1 if M == 0, r * M otherwise."""
    if M < 0:
        raise ValueError(f"M must be non-negative, got {M}")
    if r <= 1:
        raise ValueError(f"reliability r must be greater than 1, got {r}")
    return 1.0 if M == 0 else r * M


def best_characteristic(f: Callable[[float], float], block: torch.Tensor, m: float) -> Characteristic:
    """
    Compute the characteristic of every interval in the block,

        R_i = m*dy + dz^2/(m*dy) - 2*(f(end_i) + f(begin_i)),

    and return the largest one with its block-relative index. Ties go to the
    first interval in scan order. An empty block gives the "no interval" record.
    """
    if block.shape[0] == 0:
        return Characteristic()
    dy, dz, zs = _differences(f, block)
    R = m * dy + dz * dz / (m * dy) - 2 * zs
    index = int(torch.argmax(R))
    return Characteristic(R[index].item(), index)


def split_point(interval_begin: float, interval_end: float, z_begin: float, z_end: float, m: float) -> float:
    """New trial point inside (begin, end), shifted from the midpoint towards the lower value."""
    return interval_begin + (interval_end - interval_begin) / 2 + (z_end - z_begin) / (2 * m)
