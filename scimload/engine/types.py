from __future__ import annotations

from dataclasses import dataclass

ROLE = "role"
USER = "user"


@dataclass(frozen=True)
class WorkRange:
    """Inclusive slice of an index space owned by exactly one worker."""

    start: int
    end: int
    owner_id: int

    def __len__(self) -> int:
        return max(self.end - self.start + 1, 0)

    @property
    def is_empty(self) -> bool:
        return self.end < self.start

    def indices(self) -> range:
        return range(self.start, self.end + 1)


@dataclass(frozen=True)
class Operation:
    kind: str
    tenant_index: int
    user_index: int | None = None
    username: str | None = None


@dataclass(frozen=True)
class Outcome:
    operation: Operation
    success: bool
    worker_id: int
    timestamp: float
    remote_id: str | None = None
    failure_reason: str | None = None
    duration_s: float = 0.0


@dataclass(frozen=True)
class LedgerRecord:
    tenant_id: int
    username: str
    error_message: str
    timestamp: str

    def identity(self) -> tuple[int, str]:
        return (self.tenant_id, self.username)


__all__ = [
    "ROLE",
    "USER",
    "WorkRange",
    "Operation",
    "Outcome",
    "LedgerRecord",
]
