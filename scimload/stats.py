from __future__ import annotations

import threading
from dataclasses import dataclass

from .engine.types import ROLE, USER, Outcome


@dataclass(frozen=True)
class CategoryStats:
    total: int = 0
    success: int = 0
    failed: int = 0

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.success / self.total * 100.0


@dataclass(frozen=True)
class StatsSnapshot:
    roles: CategoryStats
    users: CategoryStats

    @property
    def total_operations(self) -> int:
        return self.roles.total + self.users.total


class _Counter:
    __slots__ = ("total", "success", "failed")

    def __init__(self) -> None:
        self.total = 0
        self.success = 0
        self.failed = 0

    def freeze(self) -> CategoryStats:
        return CategoryStats(total=self.total, success=self.success, failed=self.failed)


class StatsAggregator:
    """Lock-guarded role and user counters fed by the outcome collector."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters = {ROLE: _Counter(), USER: _Counter()}

    def observe(self, outcome: Outcome) -> None:
        self.record(outcome.operation.kind, outcome.success)

    def record(self, kind: str, success: bool) -> None:
        try:
            counter = self._counters[kind]
        except KeyError:
            raise ValueError(f"unknown operation kind {kind!r}") from None
        with self._lock:
            counter.total += 1
            if success:
                counter.success += 1
            else:
                counter.failed += 1

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(
                roles=self._counters[ROLE].freeze(),
                users=self._counters[USER].freeze(),
            )


def format_stats(snapshot: StatsSnapshot) -> str:
    roles = snapshot.roles
    users = snapshot.users
    lines = [
        "=== Test Execution Statistics ===",
        f"Roles - Total: {roles.total}, Success: {roles.success}, Failed: {roles.failed}",
        f"Users - Total: {users.total}, Success: {users.success}, Failed: {users.failed}",
        f"Role Success Rate: {roles.success_rate:.2f}%",
        f"User Success Rate: {users.success_rate:.2f}%",
        "=================================",
    ]
    return "\n".join(lines)


__all__ = ["CategoryStats", "StatsSnapshot", "StatsAggregator", "format_stats"]
