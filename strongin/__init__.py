from strongin.splitter import WorkSplitter
from strongin.partition import Interval, Partition, PartitionInvariantError
from strongin.characteristics import (Characteristic, best_characteristic, lipschitz_estimate,
                                      secondary_estimate)
from strongin.comm import LocalGroup, ProcessGroup, TorchGroup
from strongin.strategies import DistributedReduction, SequentialReduction
from strongin.minimizer import (StronginMinimizer, minimize_parallel, minimize_sequential,
                                run_local_minimize, spawn_minimize)

__version__ = "0.1.0"
