"""
Work distribution engine for the harness.

Splits index ranges and ledger lists across a fixed pool of worker threads,
staggers their launch over a ramp-up window, and funnels every outcome to a
single reporting sink.
"""

from .partition import partition, partition_items
from .pool import WorkerPool
from .ramp import RampUpScheduler
from .types import ROLE, USER, LedgerRecord, Operation, Outcome, WorkRange

__all__ = [
    "ROLE",
    "USER",
    "LedgerRecord",
    "Operation",
    "Outcome",
    "RampUpScheduler",
    "WorkRange",
    "WorkerPool",
    "partition",
    "partition_items",
]
