from __future__ import annotations

import collections
import logging
import queue
import threading
from typing import Any

import pandas as pd

from .engine.types import USER, Outcome
from .ledger import ScimIdWriter
from .stats import StatsAggregator

LOGGER = logging.getLogger("scimload.collector")

# Runs expecting more outcomes than this block producers on a full queue.
MAX_QUEUE_CAPACITY = 10_000

OUTCOME_COLUMNS = [
    "kind",
    "tenant_index",
    "user_index",
    "username",
    "worker_id",
    "success",
    "remote_id",
    "failure_reason",
    "timestamp",
    "duration_s",
]

_STOP = object()


def queue_capacity(expected_outcomes: int) -> int:
    return max(1, min(expected_outcomes, MAX_QUEUE_CAPACITY))


class OutcomeCollector:
    """Single consumer that drains worker outcomes into the stats aggregator.

    Workers call :meth:`submit`, which blocks while the bounded queue is full.
    The consumer thread owns every outcome it takes off the queue.
    """

    def __init__(
        self,
        aggregator: StatsAggregator,
        expected_outcomes: int,
        scim_writer: ScimIdWriter | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._scim_writer = scim_writer
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=queue_capacity(expected_outcomes))
        self._thread: threading.Thread | None = None
        self._rows_lock = threading.Lock()
        self._rows: list[dict[str, Any]] = []

    def start(self) -> None:
        thread = threading.Thread(target=self._drain, name="outcome-collector", daemon=True)
        thread.start()
        self._thread = thread

    def submit(self, outcome: Outcome) -> None:
        self._queue.put(outcome)

    def stop(self) -> None:
        """Wait until every submitted outcome has been consumed."""
        if self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join()
        self._thread = None

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            try:
                self._handle(item)
            except Exception:  # noqa: BLE001
                LOGGER.exception("failed to record outcome from worker %s", item.worker_id)

    def _handle(self, outcome: Outcome) -> None:
        self._aggregator.observe(outcome)
        if (
            self._scim_writer is not None
            and outcome.success
            and outcome.remote_id
            and outcome.operation.kind == USER
        ):
            try:
                self._scim_writer.write(outcome.remote_id)
            except Exception:  # noqa: BLE001
                LOGGER.exception("failed to write SCIM ID %s", outcome.remote_id)

        operation = outcome.operation
        row = {
            "kind": operation.kind,
            "tenant_index": operation.tenant_index,
            "user_index": operation.user_index,
            "username": operation.username,
            "worker_id": outcome.worker_id,
            "success": outcome.success,
            "remote_id": outcome.remote_id,
            "failure_reason": outcome.failure_reason,
            "timestamp": outcome.timestamp,
            "duration_s": outcome.duration_s,
        }
        with self._rows_lock:
            self._rows.append(row)

    def build_dataframe(self) -> pd.DataFrame:
        with self._rows_lock:
            rows = list(self._rows)
        if not rows:
            return pd.DataFrame(columns=OUTCOME_COLUMNS)
        return pd.DataFrame(rows, columns=OUTCOME_COLUMNS)

    def summaries(self) -> dict[str, int]:
        with self._rows_lock:
            counter = collections.Counter(
                f"{row['kind']}-{'ok' if row['success'] else 'failed'}" for row in self._rows
            )
        return dict(counter)


__all__ = ["MAX_QUEUE_CAPACITY", "OUTCOME_COLUMNS", "OutcomeCollector", "queue_capacity"]
