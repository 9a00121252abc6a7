"""
Latent-class partition rules.

**Partition rules (partition.py):**
- Tagged DETERMINED / AMBIGUOUS / IMPOSSIBLE partitions
- One- and two-sided noncompliance (compliance types)
- Species availability from detection histories
- Topic assignment for labelled and unlabelled documents
- Load-time validation of whole datasets
"""

from latentmix.classes.partition import (
    DataValidityError,
    OccupancyRule,
    OneSidedNoncomplianceRule,
    Partition,
    PartitionKind,
    PartitionRule,
    TopicRule,
    TwoSidedNoncomplianceRule,
    partition_units,
)

__all__ = [
    "DataValidityError",
    "Partition",
    "PartitionKind",
    "PartitionRule",
    "OneSidedNoncomplianceRule",
    "TwoSidedNoncomplianceRule",
    "OccupancyRule",
    "TopicRule",
    "partition_units",
]
