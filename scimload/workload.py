from __future__ import annotations

from typing import Callable, Iterator, Mapping, Sequence

from .config import HarnessConfig
from .engine.types import ROLE, USER, LedgerRecord, Operation, WorkRange

Expander = Callable[[WorkRange], Iterator[Operation]]


def role_operations(work_range: WorkRange) -> Iterator[Operation]:
    for tenant_index in work_range.indices():
        yield Operation(kind=ROLE, tenant_index=tenant_index)


def user_operations(config: HarnessConfig) -> Expander:
    """Cross every user index in a range with every configured tenant, user-major."""
    tenants = config.tenant_indices()

    def expand(work_range: WorkRange) -> Iterator[Operation]:
        for user_index in work_range.indices():
            username = config.test_username(user_index)
            for tenant_index in tenants:
                yield Operation(
                    kind=USER,
                    tenant_index=tenant_index,
                    user_index=user_index,
                    username=username,
                )

    return expand


def retry_operations(chunks: Mapping[int, Sequence[LedgerRecord]]) -> Expander:
    """Replay each worker's ledger chunk, keeping every stored username verbatim."""

    def expand(work_range: WorkRange) -> Iterator[Operation]:
        for record in chunks[work_range.owner_id]:
            yield Operation(
                kind=USER,
                tenant_index=record.tenant_id,
                user_index=infer_user_index(record.username),
                username=record.username,
            )

    return expand


def infer_user_index(username: str | None) -> int | None:
    if not username or "_" not in username:
        return None
    _, _, suffix = username.rpartition("_")
    try:
        return int(suffix)
    except ValueError:
        return None


def dedupe_records(records: Sequence[LedgerRecord]) -> list[LedgerRecord]:
    """Keep the first record per (tenant, username), preserving ledger order."""
    seen: set[tuple[int, str]] = set()
    unique: list[LedgerRecord] = []
    for record in records:
        key = record.identity()
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


__all__ = [
    "role_operations",
    "user_operations",
    "retry_operations",
    "infer_user_index",
    "dedupe_records",
]
