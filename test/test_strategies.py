import unittest
import math
from strongin.characteristics import Characteristic
from strongin.comm import LocalGroup
from strongin.minimizer import minimize_sequential, run_local_minimize
from strongin.partition import Partition
from strongin.strategies import DistributedReduction, SequentialReduction


def objective(x):
    return math.sin(3 * x) + 0.1 * x * x


def build_partition(splits):
    partition = Partition(-4.0, 4.0)
    for i in range(splits):
        index = (i * 7) % len(partition)
        interval = partition[index]
        partition.split(index, interval.begin + 0.41 * interval.length)
    return partition


def reduce_on_rank(group, splits, m, redistribute):
    strategy = DistributedReduction(group, redistribute=redistribute)
    partition = build_partition(splits)
    M = strategy.estimate_M(objective, partition)
    record = strategy.select(objective, partition, m)
    return M, record, strategy.share_M(M), strategy.share_characteristic(record)


class TestReductionStrategies(unittest.TestCase):

    def setUp(self):
        self.sequential = SequentialReduction()
        self.m = 4.0

    def test_sequential_single_interval(self):
        record = self.sequential.select(objective, Partition(0.0, 1.0), self.m)
        self.assertEqual(record.index, 0)

    def test_distributed_matches_sequential(self):
        for splits in [0, 1, 3, 6, 40]:
            partition = build_partition(splits)
            expected_M = self.sequential.estimate_M(objective, partition)
            expected = self.sequential.select(objective, partition, self.m)
            for workers in [1, 2, 5, 7]:
                for redistribute in [True, False]:
                    results = LocalGroup.launch(workers, reduce_on_rank, splits, self.m, redistribute, timeout=60)
                    M, record, shared_M, shared_record = results[0]
                    self.assertAlmostEqual(M, expected_M, places=12)
                    self.assertEqual(record.index, expected.index)
                    self.assertAlmostEqual(record.score, expected.score, places=12)
                    for rank, (M, record, shared_M, shared_record) in enumerate(results):
                        if rank > 0:
                            self.assertIsNone(M)
                            self.assertIsNone(record)
                        self.assertAlmostEqual(shared_M, expected_M, places=12)
                        self.assertEqual(shared_record.index, expected.index)

    def test_global_index_correction(self):
        # the best interval sits in the last worker's slice
        partition = Partition(0.0, 1.0)
        for i in range(9):
            last = len(partition) - 1
            partition.split(last, partition[last].begin + 0.5 * partition[last].length)

        def f(x):
            return -100.0 if x <= 0.0 else 0.0

        expected = self.sequential.select(f, partition, 1.0)

        def run(group):
            return DistributedReduction(group).select(f, partition, 1.0)

        results = LocalGroup.launch(3, run, timeout=60)
        self.assertEqual(results[0], Characteristic(expected.score, expected.index))
        self.assertEqual(expected.index, 9)

    def test_ties_across_ranks_keep_first(self):
        # eight intervals of length 1, every characteristic equal for a constant f
        partition = Partition(0.0, 8.0)
        for level in range(3):
            for index in range(len(partition)):
                interval = partition[index]
                partition.split(index, interval.begin + 0.5 * interval.length)

        def f(x):
            return 2.0

        expected = self.sequential.select(f, partition, 1.0)
        self.assertEqual(expected.index, 0)

        def run(group):
            return DistributedReduction(group).select(f, partition, 1.0)

        for workers in [2, 5, 7]:
            results = LocalGroup.launch(workers, run, timeout=60)
            self.assertEqual(results[0], expected)

    def test_ties_end_to_end(self):
        def f(x):
            return 0.0

        expected = minimize_sequential(f, 0.0, 1.0, 1e-2)
        for workers in [2, 5, 7]:
            self.assertEqual(run_local_minimize(f, 0.0, 1.0, 1e-2, workers, timeout=60), [expected] * workers)


if __name__ == '__main__':
    unittest.main()
