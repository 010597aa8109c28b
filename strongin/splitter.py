from __future__ import annotations


class WorkSplitter:
    def __init__(self, work: int, worker_count: int) -> None:
        """
        Splits `work` items across `worker_count` workers into contiguous blocks.

        Parameters:
        work (int): Number of items to distribute.
        worker_count (int): Number of workers, at least 1.

        When there are no more items than workers, each of the first `work`
        workers gets one item. Otherwise every worker in turn takes
        remaining_work // remaining_workers, so the rounding remainder
        accumulates towards the last workers.
        """
        if worker_count < 1:
            raise ValueError(f"worker_count must be at least 1, got {worker_count}")
        if work < 0:
            raise ValueError(f"work must be non-negative, got {work}")

        counts = [0] * worker_count
        if work <= worker_count:
            for worker in range(work):
                counts[worker] = 1
        else:
            remaining_work = work
            remaining_workers = worker_count
            worker = 0
            while remaining_work != 0:
                part = remaining_work // remaining_workers
                counts[worker] = part
                remaining_work -= part
                remaining_workers -= 1
                worker += 1

        self.work = work
        self._counts = tuple(counts)

    @property
    def counts(self) -> tuple[int, ...]:
        return self._counts

    def __len__(self) -> int:
        return len(self._counts)

    def get_part_work(self, worker: int) -> int:
        """Number of items assigned to `worker`."""
        return self._counts[worker]

    def get_prev_part_work(self, worker: int) -> int:
        """
        Number of items handled by workers 0 .. worker-1, i.e. the global
        index of the first item of `worker`'s block.
        """
        if worker < 0 or worker > len(self._counts):
            raise IndexError(f"worker {worker} out of range for {len(self._counts)} workers")
        return sum(self._counts[:worker])

    def bounds(self, worker: int) -> tuple[int, int]:
        start = self.get_prev_part_work(worker)
        return start, start + self._counts[worker]

    def __repr__(self) -> str:
        return f"WorkSplitter(work={self.work}, counts={list(self._counts)})"
