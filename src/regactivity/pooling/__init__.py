"""
Replicate pooling and combination of test statistics.
"""

from regactivity.pooling.combine import (
    fisher_combine,
    stouffer_combine,
)
from regactivity.pooling.replicates import (
    ReplicatePooler,
    PooledStatistics,
    pool_group_statistics,
)

__all__ = [
    # Combination
    "fisher_combine",
    "stouffer_combine",
    # Pooling
    "ReplicatePooler",
    "PooledStatistics",
    "pool_group_statistics",
]
