from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Iterable, Protocol, Sequence

from .ramp import RampUpScheduler
from .types import USER, LedgerRecord, Operation, Outcome, WorkRange

LOGGER = logging.getLogger("scimload.engine.pool")

LEDGER_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class Performer(Protocol):
    def perform(self, operation: Operation) -> str | None:
        ...

    def close(self) -> None:
        ...


class FailureSink(Protocol):
    def write(self, record: LedgerRecord) -> None:
        ...


Expander = Callable[[WorkRange], Iterable[Operation]]
OutcomeSink = Callable[[Outcome], None]


class WorkerPool:
    """Runs one thread per non-empty work range, each with its own performer.

    Workers execute their operations in order and hand every outcome to the
    sink before starting the next operation. Failed user operations are also
    appended to the failure ledger, when one is attached.
    """

    def __init__(
        self,
        client_factory: Callable[[], Performer],
        ramp: RampUpScheduler,
        ledger: FailureSink | None = None,
        name: str = "worker",
    ) -> None:
        self._client_factory = client_factory
        self._ramp = ramp
        self._ledger = ledger
        self._name = name

    def run(self, ranges: Sequence[WorkRange], expand: Expander, sink: OutcomeSink) -> int:
        """Launch the workers, block until all have finished, return how many ran."""
        threads: list[threading.Thread] = []

        def starter_for(work_range: WorkRange) -> Callable[[], None]:
            def start() -> None:
                client = self._client_factory()
                thread = threading.Thread(
                    target=self._work,
                    args=(work_range, client, expand, sink),
                    name=f"{self._name}-{work_range.owner_id}",
                    daemon=True,
                )
                thread.start()
                threads.append(thread)

            return start

        self._ramp.launch(starter_for(r) for r in ranges if not r.is_empty)

        for thread in threads:
            thread.join()
        return len(threads)

    def _work(
        self,
        work_range: WorkRange,
        client: Performer,
        expand: Expander,
        sink: OutcomeSink,
    ) -> None:
        worker_id = work_range.owner_id
        started = time.monotonic()
        LOGGER.info(
            "worker %d: starting range %d-%d", worker_id, work_range.start, work_range.end
        )
        count = 0
        try:
            for operation in expand(work_range):
                sink(self._attempt(worker_id, client, operation))
                count += 1
        finally:
            client.close()
        LOGGER.info(
            "worker %d: completed %d operation(s) for range %d-%d in %.2fs",
            worker_id,
            count,
            work_range.start,
            work_range.end,
            time.monotonic() - started,
        )

    def _attempt(self, worker_id: int, client: Performer, operation: Operation) -> Outcome:
        began = time.monotonic()
        try:
            remote_id = client.perform(operation)
        except Exception as exc:  # noqa: BLE001
            reason = str(exc) or exc.__class__.__name__
            LOGGER.warning(
                "worker %d: %s failed for tenant %d (%s): %s",
                worker_id,
                operation.kind,
                operation.tenant_index,
                operation.username or "-",
                reason,
            )
            if operation.kind == USER:
                self._record_failure(worker_id, operation, reason)
            return Outcome(
                operation=operation,
                success=False,
                worker_id=worker_id,
                timestamp=time.time(),
                failure_reason=reason,
                duration_s=time.monotonic() - began,
            )

        return Outcome(
            operation=operation,
            success=True,
            worker_id=worker_id,
            timestamp=time.time(),
            remote_id=remote_id,
            duration_s=time.monotonic() - began,
        )

    def _record_failure(self, worker_id: int, operation: Operation, reason: str) -> None:
        if self._ledger is None:
            return
        record = LedgerRecord(
            tenant_id=operation.tenant_index,
            username=operation.username or "",
            error_message=reason,
            timestamp=datetime.now().strftime(LEDGER_TIMESTAMP_FORMAT),
        )
        try:
            self._ledger.write(record)
        except Exception:  # noqa: BLE001
            LOGGER.exception(
                "worker %d: failed to write failed user (tenant %d, username %s) to ledger",
                worker_id,
                record.tenant_id,
                record.username,
            )


__all__ = ["Performer", "FailureSink", "WorkerPool", "LEDGER_TIMESTAMP_FORMAT"]
