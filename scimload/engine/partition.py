from __future__ import annotations

from typing import Sequence, TypeVar

from .types import WorkRange

T = TypeVar("T")


def partition(total: int, workers: int, range_start: int = 1) -> list[WorkRange]:
    """Split ``[range_start, range_start + total - 1]`` into ``workers`` ranges.

    The first ``total % workers`` owners receive one extra unit, so the same
    inputs always produce the same ranges. Owners left without work get an
    empty range (``end < start``) which callers skip.
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    if total < 0:
        raise ValueError(f"total must be >= 0, got {total}")

    share, remainder = divmod(total, workers)
    ranges: list[WorkRange] = []
    start = range_start
    for owner_id in range(workers):
        size = share + 1 if owner_id < remainder else share
        end = start + size - 1
        ranges.append(WorkRange(start=start, end=end, owner_id=owner_id))
        start = end + 1
    return ranges


def partition_items(items: Sequence[T], workers: int) -> list[tuple[WorkRange, Sequence[T]]]:
    """Partition list positions with the same rule and pair each range with its slice."""
    return [
        (work_range, items[work_range.start : work_range.end + 1])
        for work_range in partition(len(items), workers, range_start=0)
    ]


__all__ = ["partition", "partition_items"]
