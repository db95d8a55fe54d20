from __future__ import annotations

import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Callable

import pandas as pd

from .client import client_factory as default_client_factory
from .collector import OUTCOME_COLUMNS, OutcomeCollector
from .config import HarnessConfig
from .engine import RampUpScheduler, WorkerPool, partition, partition_items
from .engine.pool import Performer
from .ledger import FailedUserLedger, ScimIdWriter, read_ledger
from .stats import CategoryStats, StatsAggregator, StatsSnapshot
from .workload import dedupe_records, retry_operations, role_operations, user_operations

LOGGER = logging.getLogger("scimload.executor")

FRESH = "fresh"
RETRY = "retry"


@dataclass
class RunReport:
    mode: str
    stats: StatsSnapshot
    outcomes: pd.DataFrame
    started_at: float
    finished_at: float
    workers_spawned: int = 0

    @property
    def duration_s(self) -> float:
        return max(self.finished_at - self.started_at, 0.0)

    @property
    def spawned_workers(self) -> bool:
        return self.workers_spawned > 0


class HarnessExecutor:
    """Runs the role and user creation phases, or replays the failure ledger."""

    def __init__(
        self,
        config: HarnessConfig,
        client_factory: Callable[[], Performer] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config.validate()
        self._client_factory = client_factory or default_client_factory(config)
        self._sleep = sleep

    def execute(self) -> RunReport:
        """Fresh run: truncate the ledger, create roles, then users for every tenant."""
        execution = self._config.execution
        started_at = time.time()

        with contextlib.ExitStack() as stack:
            ledger = stack.enter_context(FailedUserLedger.fresh(execution.failed_users_csv_path))
            scim_writer = self._open_scim_writer(stack)

            aggregator = StatsAggregator()
            expected = execution.tenant_count + self._config.expected_user_operations()
            collector = OutcomeCollector(aggregator, expected, scim_writer=scim_writer)
            collector.start()
            try:
                spawned = self._run_role_phase(collector)
                spawned += self._run_user_phase(collector, ledger)
            finally:
                collector.stop()

        finished_at = time.time()
        LOGGER.info("test execution completed in %.2fs", finished_at - started_at)
        LOGGER.info("outcome summary: %s", collector.summaries())
        return RunReport(
            mode=FRESH,
            stats=aggregator.snapshot(),
            outcomes=collector.build_dataframe(),
            started_at=started_at,
            finished_at=finished_at,
            workers_spawned=spawned,
        )

    def execute_retry(self) -> RunReport:
        """Replay every failed user in the ledger, appending any new failures to it."""
        execution = self._config.execution
        started_at = time.time()

        records = read_ledger(execution.failed_users_csv_path)
        if execution.dedupe_retries:
            unique = dedupe_records(records)
            if len(unique) != len(records):
                LOGGER.info(
                    "collapsed %d ledger row(s) into %d distinct user(s)",
                    len(records),
                    len(unique),
                )
            records = unique

        if not records:
            LOGGER.info("no failed users found to retry")
            return RunReport(
                mode=RETRY,
                stats=StatsSnapshot(roles=CategoryStats(), users=CategoryStats()),
                outcomes=pd.DataFrame(columns=OUTCOME_COLUMNS),
                started_at=started_at,
                finished_at=time.time(),
            )

        LOGGER.info("found %d failed user(s) to retry", len(records))
        assignments = partition_items(records, execution.thread_count)
        chunks = {work_range.owner_id: chunk for work_range, chunk in assignments}
        ranges = [work_range for work_range, _ in assignments]

        with contextlib.ExitStack() as stack:
            ledger = stack.enter_context(FailedUserLedger.append(execution.failed_users_csv_path))
            scim_writer = self._open_scim_writer(stack)

            aggregator = StatsAggregator()
            collector = OutcomeCollector(aggregator, len(records), scim_writer=scim_writer)
            collector.start()
            try:
                pool = WorkerPool(
                    self._client_factory,
                    self._ramp(execution.ramp_up_period_s),
                    ledger=ledger,
                    name="retry-worker",
                )
                spawned = pool.run(ranges, retry_operations(chunks), collector.submit)
            finally:
                collector.stop()

        finished_at = time.time()
        LOGGER.info("retry execution completed in %.2fs", finished_at - started_at)
        LOGGER.info("outcome summary: %s", collector.summaries())
        return RunReport(
            mode=RETRY,
            stats=aggregator.snapshot(),
            outcomes=collector.build_dataframe(),
            started_at=started_at,
            finished_at=finished_at,
            workers_spawned=spawned,
        )

    def _run_role_phase(self, collector: OutcomeCollector) -> int:
        execution = self._config.execution
        LOGGER.info("starting role creation phase for %d tenant(s)", execution.tenant_count)
        ranges = partition(
            execution.tenant_count,
            execution.thread_count,
            range_start=execution.tenant_start_number,
        )
        pool = WorkerPool(self._client_factory, self._ramp(0), name="role-worker")
        spawned = pool.run(ranges, role_operations, collector.submit)
        LOGGER.info("role creation phase completed")
        return spawned

    def _run_user_phase(self, collector: OutcomeCollector, ledger: FailedUserLedger) -> int:
        execution = self._config.execution
        LOGGER.info(
            "starting user creation phase: %d user(s) x %d tenant(s) on %d thread(s)",
            execution.user_count,
            execution.tenant_count,
            execution.thread_count,
        )
        started = time.monotonic()
        ranges = partition(
            execution.user_count,
            execution.thread_count,
            range_start=execution.user_start_number,
        )
        pool = WorkerPool(
            self._client_factory,
            self._ramp(execution.ramp_up_period_s),
            ledger=ledger,
            name="user-worker",
        )
        spawned = pool.run(ranges, user_operations(self._config), collector.submit)
        LOGGER.info("user creation completed in %.2fs", time.monotonic() - started)
        return spawned

    def _ramp(self, window_s: float) -> RampUpScheduler:
        return RampUpScheduler(window_s, self._config.execution.thread_count, sleep=self._sleep)

    def _open_scim_writer(self, stack: contextlib.ExitStack) -> ScimIdWriter | None:
        execution = self._config.execution
        if not execution.record_scim_ids:
            return None
        return stack.enter_context(ScimIdWriter.fresh(execution.scim_id_csv_path))


__all__ = ["FRESH", "RETRY", "RunReport", "HarnessExecutor"]
