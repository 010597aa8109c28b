"""
Process groups used by the distributed reduction.

A group is a fixed set of workers running the same program in lockstep. The
only operations are blocking point-to-point send/recv of fixed-size tensors, a
max-reduction to one rank and a broadcast from one rank. Two implementations:

- LocalGroup: workers are threads of one process, messages travel through
  per-(src, dst) FIFO queues. Launched with joblib's threading backend.
- TorchGroup: thin wrapper over an initialised torch.distributed default group.
"""
from __future__ import annotations
import logging
import queue
from abc import ABC, abstractmethod
from typing import Any, Callable

import torch
import torch.distributed as dist
from joblib import Parallel, delayed

COORDINATOR = 0

logger = logging.getLogger(__name__)


class ProcessGroup(ABC):

    @property
    @abstractmethod
    def size(self) -> int:
        pass

    @property
    @abstractmethod
    def rank(self) -> int:
        pass

    @property
    def is_coordinator(self) -> bool:
        return self.rank == COORDINATOR

    @abstractmethod
    def send(self, tensor: torch.Tensor, dst: int) -> None:
        pass

    @abstractmethod
    def recv(self, shape: tuple[int, ...], dtype: torch.dtype, src: int) -> torch.Tensor:
        pass

    @abstractmethod
    def reduce_max(self, value: float, dst: int = COORDINATOR) -> float | None:
        """Maximum of `value` over all ranks, returned on `dst` only (None elsewhere)."""

    @abstractmethod
    def broadcast(self, tensor: torch.Tensor, src: int = COORDINATOR) -> torch.Tensor:
        """Return `src`'s tensor on every rank; other ranks pass a buffer of the same shape."""


class _Mailboxes:
    def __init__(self, size: int, timeout: float | None) -> None:
        self.size = size
        self.timeout = timeout
        self._queues = {(src, dst): queue.Queue() for src in range(size) for dst in range(size) if src != dst}

    def put(self, src: int, dst: int, tensor: torch.Tensor) -> None:
        self._queues[(src, dst)].put(tensor.detach().clone())

    def get(self, src: int, dst: int) -> torch.Tensor:
        try:
            return self._queues[(src, dst)].get(timeout=self.timeout)
        except queue.Empty:
            raise TimeoutError(f"rank {dst} timed out waiting for a message from rank {src}") from None


class LocalGroup(ProcessGroup):
    def __init__(self, mailboxes: _Mailboxes, rank: int) -> None:
        self._mailboxes = mailboxes
        self._rank = rank

    @classmethod
    def create(cls, size: int, timeout: float | None = None) -> list["LocalGroup"]:
        """One handle per rank, all sharing the same mailboxes."""
        if size < 1:
            raise ValueError(f"group size must be at least 1, got {size}")
        mailboxes = _Mailboxes(size, timeout)
        return [cls(mailboxes, rank) for rank in range(size)]

    @classmethod
    def launch(cls, size: int, fn: Callable[..., Any], *args, timeout: float | None = None, **kwargs) -> list[Any]:
        """
        Run fn(group, *args, **kwargs) on `size` thread workers and return the
        per-rank results in rank order.
        """
        groups = cls.create(size, timeout=timeout)
        logger.debug("launching %d local workers", size)
        return Parallel(n_jobs=size, backend="threading", batch_size=1)(
            delayed(fn)(group, *args, **kwargs) for group in groups)

    @property
    def size(self) -> int:
        return self._mailboxes.size

    @property
    def rank(self) -> int:
        return self._rank

    def _check_peer(self, peer: int) -> None:
        if peer == self._rank or not 0 <= peer < self.size:
            raise ValueError(f"rank {self._rank} cannot exchange messages with rank {peer}")

    def send(self, tensor: torch.Tensor, dst: int) -> None:
        self._check_peer(dst)
        self._mailboxes.put(self._rank, dst, tensor)

    def recv(self, shape: tuple[int, ...], dtype: torch.dtype, src: int) -> torch.Tensor:
        self._check_peer(src)
        tensor = self._mailboxes.get(src, self._rank)
        if tuple(tensor.shape) != tuple(shape) or tensor.dtype != dtype:
            raise RuntimeError(
                f"rank {self._rank} expected {tuple(shape)} {dtype} from rank {src}, "
                f"got {tuple(tensor.shape)} {tensor.dtype}")
        return tensor

    def reduce_max(self, value: float, dst: int = COORDINATOR) -> float | None:
        if self._rank != dst:
            self.send(torch.tensor([value], dtype=torch.float64), dst)
            return None
        result = value
        for src in range(self.size):
            if src != dst:
                result = max(result, self.recv((1,), torch.float64, src).item())
        return result

    def broadcast(self, tensor: torch.Tensor, src: int = COORDINATOR) -> torch.Tensor:
        if self._rank == src:
            for dst in range(self.size):
                if dst != src:
                    self.send(tensor, dst)
            return tensor
        received = self.recv(tuple(tensor.shape), tensor.dtype, src)
        tensor.copy_(received)
        return tensor

    def __repr__(self) -> str:
        return f"LocalGroup(rank={self._rank}, size={self.size})"


class TorchGroup(ProcessGroup):
    def __init__(self) -> None:
        """
        Wrapper over the default torch.distributed process group, which must
        already be initialised (e.g. dist.init_process_group("gloo", ...)).
        """
        if not dist.is_available() or not dist.is_initialized():
            raise RuntimeError("torch.distributed default process group is not initialized")

    @property
    def size(self) -> int:
        return dist.get_world_size()

    @property
    def rank(self) -> int:
        return dist.get_rank()

    def send(self, tensor: torch.Tensor, dst: int) -> None:
        dist.send(tensor.contiguous(), dst)

    def recv(self, shape: tuple[int, ...], dtype: torch.dtype, src: int) -> torch.Tensor:
        tensor = torch.empty(shape, dtype=dtype)
        dist.recv(tensor, src)
        return tensor

    def reduce_max(self, value: float, dst: int = COORDINATOR) -> float | None:
        tensor = torch.tensor([value], dtype=torch.float64)
        dist.reduce(tensor, dst, op=dist.ReduceOp.MAX)
        return tensor.item() if self.rank == dst else None

    def broadcast(self, tensor: torch.Tensor, src: int = COORDINATOR) -> torch.Tensor:
        dist.broadcast(tensor, src)
        return tensor

    def __repr__(self) -> str:
        return f"TorchGroup(rank={self.rank}, size={self.size})"
