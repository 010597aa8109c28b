"""
Reduction strategies for the optimization loop.

The loop is the same for sequential and distributed runs; only the two
reductions it needs each iteration (Lipschitz estimate, best characteristic)
and the broadcasts of their results differ.
"""
from __future__ import annotations
from typing import Callable

import torch

from strongin.characteristics import Characteristic, best_characteristic, lipschitz_estimate
from strongin.comm import COORDINATOR, ProcessGroup
from strongin.partition import Partition
from strongin.splitter import WorkSplitter


class SequentialReduction:
    """Single worker: scans the whole partition, broadcasts are identities."""

    def estimate_M(self, f: Callable[[float], float], partition: Partition) -> float:
        return lipschitz_estimate(f, partition.as_tensor())

    def select(self, f: Callable[[float], float], partition: Partition, m: float) -> Characteristic:
        return best_characteristic(f, partition.as_tensor(), m)

    def share_M(self, M: float | None) -> float:
        return M

    def share_characteristic(self, record: Characteristic | None) -> Characteristic:
        return record


class DistributedReduction:
    def __init__(self, group: ProcessGroup, redistribute: bool = True) -> None:
        """
        Splits each reduction across the ranks of `group`.

        Parameters:
        group (ProcessGroup): Group all ranks run the loop in.
        redistribute (bool): If True the coordinator sends every worker its
            slice of the partition each iteration; if False each worker slices
            its own replica. Both give the same results since replicas are identical.
        """
        self.group = group
        self.redistribute = redistribute

    def local_block(self, partition: Partition, splitter: WorkSplitter) -> torch.Tensor:
        """This rank's contiguous slice of the partition as a (k, 2) block."""
        rank = self.group.rank
        start, stop = splitter.bounds(rank)
        if not self.redistribute:
            return partition.as_tensor(start, stop)

        if rank == COORDINATOR:
            for worker in range(self.group.size):
                if worker == COORDINATOR or splitter.get_part_work(worker) == 0:
                    continue
                self.group.send(partition.as_tensor(*splitter.bounds(worker)), worker)
            return partition.as_tensor(start, stop)

        work = splitter.get_part_work(rank)
        if work == 0:
            return torch.empty((0, 2), dtype=torch.float64)
        return self.group.recv((work, 2), torch.float64, COORDINATOR)

    def estimate_M(self, f: Callable[[float], float], partition: Partition) -> float | None:
        """Partial maxima over the slices, reduced to the coordinator (None on other ranks)."""
        splitter = WorkSplitter(len(partition), self.group.size)
        local_M = lipschitz_estimate(f, self.local_block(partition, splitter))
        return self.group.reduce_max(local_M, COORDINATOR)

    def select(self, f: Callable[[float], float], partition: Partition, m: float) -> Characteristic | None:
        """
        Best characteristic over the whole partition, on the coordinator only.

        Every worker with a nonzero slice sends its slice-relative record to
        the coordinator, which keeps the first maximal one in rank order and
        turns its index into a global one.
        """
        splitter = WorkSplitter(len(partition), self.group.size)
        local = best_characteristic(f, self.local_block(partition, splitter), m)

        if self.group.rank != COORDINATOR:
            if splitter.get_part_work(self.group.rank) != 0:
                self.group.send(local.to_tensor(), COORDINATOR)
            return None

        records = [local]
        for worker in range(1, self.group.size):
            if splitter.get_part_work(worker) != 0:
                block = self.group.recv(tuple(Characteristic.buffer().shape), torch.uint8, worker)
                records.append(Characteristic.from_tensor(block))
            else:
                records.append(Characteristic())

        winner = 0
        for worker, record in enumerate(records):
            if record.score > records[winner].score:
                winner = worker
        best = records[winner]
        if best.is_empty:
            return best
        return Characteristic(best.score, best.index + splitter.get_prev_part_work(winner))

    def share_M(self, M: float | None) -> float:
        buffer = torch.tensor([M if M is not None else 0.0], dtype=torch.float64)
        return self.group.broadcast(buffer, COORDINATOR).item()

    def share_characteristic(self, record: Characteristic | None) -> Characteristic:
        buffer = record.to_tensor() if record is not None else Characteristic.buffer()
        return Characteristic.from_tensor(self.group.broadcast(buffer, COORDINATOR))
