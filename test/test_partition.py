import unittest
import dataclasses
import torch
from strongin.partition import Interval, Partition, PartitionInvariantError


class TestPartition(unittest.TestCase):

    def setUp(self):
        self.partition = Partition(-1.0, 2.0)

    def test_initial_state(self):
        self.assertEqual(len(self.partition), 1)
        self.assertEqual(self.partition[0], Interval(-1.0, 2.0))

    def test_split(self):
        self.partition.split(0, 0.5)
        self.assertEqual(len(self.partition), 2)
        self.assertEqual(self.partition[0], Interval(0.5, 2.0))
        self.assertEqual(self.partition[1], Interval(-1.0, 0.5))

    def test_split_keeps_cover(self):
        for index, point in [(0, 0.5), (1, 0.0), (0, 1.0), (2, -0.5), (0, 1.5)]:
            self.partition.split(index, point)
        points = sorted({iv.begin for iv in self.partition} | {iv.end for iv in self.partition})
        self.assertEqual(points, [-1.0, -0.5, 0.0, 0.5, 1.0, 1.5, 2.0])
        total = sum(interval.length for interval in self.partition)
        self.assertAlmostEqual(total, 3.0)

    def test_split_outside_interval(self):
        with self.assertRaises(PartitionInvariantError):
            self.partition.split(0, 2.0)
        with self.assertRaises(PartitionInvariantError):
            self.partition.split(0, float("nan"))
        with self.assertRaises(PartitionInvariantError):
            self.partition.split(1, 0.0)

    def test_as_tensor(self):
        self.partition.split(0, 0.5)
        self.partition.split(0, 1.0)
        block = self.partition.as_tensor()
        self.assertEqual(block.dtype, torch.float64)
        self.assertEqual(tuple(block.shape), (3, 2))
        self.assertEqual(block[1].tolist(), [-1.0, 0.5])
        self.assertEqual(self.partition.as_tensor(1, 3).tolist(), [[-1.0, 0.5], [0.5, 1.0]])
        self.assertEqual(tuple(self.partition.as_tensor(3, 3).shape), (0, 2))

    def test_intervals_are_read_only(self):
        with self.assertRaises(dataclasses.FrozenInstanceError):
            self.partition[0].begin = 0.0
        self.partition.split(0, 0.5)
        self.assertEqual(self.partition[0], Interval(0.5, 2.0))

    def test_invalid_bounds(self):
        with self.assertRaises(ValueError):
            Partition(1.0, 1.0)
        with self.assertRaises(ValueError):
            Partition(2.0, 1.0)
        with self.assertRaises(ValueError):
            Partition(0.0, float("inf"))


if __name__ == '__main__':
    unittest.main()
