from __future__ import annotations
import logging
import math
import os
import tempfile
from typing import Callable

import torch.distributed as dist
import torch.multiprocessing as mp
from scipy.optimize import OptimizeResult

from strongin.characteristics import DEFAULT_RELIABILITY, secondary_estimate, split_point
from strongin.comm import ProcessGroup, LocalGroup, TorchGroup
from strongin.partition import Partition, PartitionInvariantError
from strongin.strategies import DistributedReduction, SequentialReduction

MAX_ITERATIONS = 100000

# smallest epsilon, in float spacings at the domain ends, that keeps split points strictly inside
MIN_EPSILON_ULPS = 16


class StronginMinimizer:
    def __init__(self, strategy: SequentialReduction | DistributedReduction | None = None,
                 r: float = DEFAULT_RELIABILITY, max_iterations: int = MAX_ITERATIONS,
                 logger: logging.Logger | None = None) -> None:
        """
        Strongin's global search for a Lipschitz function of one variable.

        Parameters:
        - strategy (SequentialReduction | DistributedReduction, optional): Decides
            how the per-iteration reductions are computed; sequential by default.
        - r (float): Reliability constant, > 1. Larger values explore long
            untested intervals more before refining around good values.
        - max_iterations (int): Iteration cap; hitting it means no convergence.
        - logger (logging.Logger, optional): Defaults to the module logger.
        """
        if r <= 1:
            raise ValueError(f"reliability r must be greater than 1, got {r}")
        if max_iterations < 0:
            raise ValueError(f"max_iterations must be non-negative, got {max_iterations}")
        self.strategy = strategy if strategy is not None else SequentialReduction()
        self.r = r
        self.max_iterations = max_iterations
        self.logger = logger or logging.getLogger(__name__)

    def run(self, f: Callable[[float], float], a: float, b: float, epsilon: float) -> OptimizeResult:
        """
        Minimize f on [a, b] until the selected interval is shorter than epsilon.

        Every rank of a distributed strategy must call this with the same
        arguments; all of them return the same result.

        Returns:
        OptimizeResult: fun is f(y1) of the final selected interval (y0, y1),
            or nan when the iteration cap is reached (success=False, status=1).
        """
        if not epsilon > 0:
            raise ValueError(f"epsilon must be positive, got {epsilon}")
        partition = Partition(a, b)
        resolution = MIN_EPSILON_ULPS * math.ulp(max(abs(partition.a), abs(partition.b)))
        if epsilon <= resolution:
            raise ValueError(
                f"epsilon {epsilon} is below the float resolution {resolution} of [{a}, {b}]")
        strategy = self.strategy
        M = m = math.nan

        for iteration in range(self.max_iterations):
            M = strategy.share_M(strategy.estimate_M(f, partition))
            m = secondary_estimate(M, self.r)
            record = strategy.share_characteristic(strategy.select(f, partition, m))
            if record.index < 0 or record.index >= len(partition):
                raise PartitionInvariantError(
                    f"selected interval {record.index} out of range for a partition of {len(partition)}")

            interval = partition[record.index]
            y0, y1 = interval.begin, interval.end
            if iteration % 100 == 0:
                self.logger.debug("iteration %d: M=%.6g, R=%.6g, index=%d, intervals=%d",
                                  iteration, M, record.score, record.index, len(partition))
            if y1 - y0 < epsilon:
                value = f(y1)
                self.logger.info("converged after %d iterations: f(%.10g)=%.10g", iteration + 1, y1, value)
                return OptimizeResult(x=y1, fun=value, success=True, status=0,
                                      message="Selected interval is shorter than epsilon.",
                                      nit=iteration + 1, nintervals=len(partition), M=M, m=m)

            partition.split(record.index, split_point(y0, y1, f(y0), f(y1), m))

        self.logger.warning("no convergence within %d iterations on [%g, %g]", self.max_iterations, a, b)
        return OptimizeResult(x=math.nan, fun=math.nan, success=False, status=1,
                              message="Maximum number of iterations reached.",
                              nit=self.max_iterations, nintervals=len(partition), M=M, m=m)

    def minimize(self, f: Callable[[float], float], a: float, b: float, epsilon: float) -> float:
        return self.run(f, a, b, epsilon).fun


def minimize_sequential(f: Callable[[float], float], a: float, b: float, epsilon: float, **kwargs) -> float:
    return StronginMinimizer(SequentialReduction(), **kwargs).minimize(f, a, b, epsilon)


def minimize_parallel(f: Callable[[float], float], a: float, b: float, epsilon: float, group: ProcessGroup,
                      redistribute: bool = True, **kwargs) -> float:
    return StronginMinimizer(DistributedReduction(group, redistribute), **kwargs).minimize(f, a, b, epsilon)


def run_local_minimize(f: Callable[[float], float], a: float, b: float, epsilon: float, world_size: int,
                       timeout: float | None = None, **kwargs) -> list[float]:
    """Run minimize_parallel on a LocalGroup of `world_size` threads; one result per rank."""
    return LocalGroup.launch(world_size, _local_worker, f, a, b, epsilon, kwargs, timeout=timeout)


def _local_worker(group: LocalGroup, f: Callable[[float], float], a: float, b: float, epsilon: float,
                  kwargs: dict) -> float:
    return minimize_parallel(f, a, b, epsilon, group, **kwargs)


def _spawned_worker(rank: int, world_size: int, init_method: str, backend: str, f: Callable[[float], float],
                    a: float, b: float, epsilon: float, kwargs: dict, results) -> None:
    dist.init_process_group(backend, init_method=init_method, rank=rank, world_size=world_size)
    try:
        value = minimize_parallel(f, a, b, epsilon, TorchGroup(), **kwargs)
        if rank == 0:
            results.put(value)
    finally:
        dist.destroy_process_group()


def spawn_minimize(f: Callable[[float], float], a: float, b: float, epsilon: float, world_size: int,
                   backend: str = "gloo", **kwargs) -> float:
    """
    Minimize f on `world_size` processes connected by torch.distributed.

    f and kwargs are pickled to the child processes; the coordinator's value is returned.
    """
    if world_size < 1:
        raise ValueError(f"world_size must be at least 1, got {world_size}")
    ctx = mp.get_context("spawn")
    results = ctx.SimpleQueue()
    with tempfile.TemporaryDirectory() as tmpdir:
        init_method = "file://" + os.path.join(tmpdir, "rendezvous")
        mp.spawn(_spawned_worker,
                 args=(world_size, init_method, backend, f, a, b, epsilon, kwargs, results),
                 nprocs=world_size, join=True)
    return results.get()
