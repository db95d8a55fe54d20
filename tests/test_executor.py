# tests/test_executor.py
from __future__ import annotations

import logging

import pytest

from scimload.engine.types import ROLE, USER, LedgerRecord
from scimload.executor import FRESH, RETRY, HarnessExecutor
from scimload.ledger import FailedUserLedger, LedgerError, read_ledger

from .conftest import FakeClientFactory

LEDGER_HEADER = "TenantID,Username,Error,Timestamp\n"


@pytest.mark.parametrize("threads", [1, 2, 4])
def test_user_outcomes_equal_users_times_tenants(make_config, threads):
    factory = FakeClientFactory()
    config = make_config(thread_count=threads, user_count=4, tenant_count=3)

    report = HarnessExecutor(config, client_factory=factory).execute()

    assert report.mode == FRESH
    assert report.stats.users.total == 12
    assert report.stats.roles.total == 3
    assert len(report.outcomes) == 15
    user_calls = [c for c in factory.calls if c.kind == USER]
    assert sorted((c.user_index, c.tenant_index) for c in user_calls) == [
        (u, t) for u in range(1, 5) for t in range(1, 4)
    ]


def test_single_worker_iterates_user_major_tenant_minor(make_config):
    factory = FakeClientFactory()
    config = make_config(thread_count=1, user_count=2, tenant_count=2, user_start_number=7)

    HarnessExecutor(config, client_factory=factory).execute()

    user_clients = [c for c in factory.clients if c.calls and c.calls[0].kind == USER]
    assert len(user_clients) == 1
    assert [(c.username, c.tenant_index) for c in user_clients[0].calls] == [
        ("isTestUser_7", 1),
        ("isTestUser_7", 2),
        ("isTestUser_8", 1),
        ("isTestUser_8", 2),
    ]


def test_roles_created_once_per_tenant(make_config):
    factory = FakeClientFactory()
    config = make_config(thread_count=3, tenant_count=5, tenant_start_number=10)

    HarnessExecutor(config, client_factory=factory).execute()

    tenants = sorted(c.tenant_index for c in factory.calls if c.kind == ROLE)
    assert tenants == [10, 11, 12, 13, 14]


def test_fresh_run_records_failures_in_new_ledger(make_config, tmp_path):
    ledger_path = tmp_path / "failedUsers.csv"
    ledger_path.write_text(LEDGER_HEADER + "99,stale_1,old,t\n", encoding="utf-8")
    factory = FakeClientFactory(
        fail=lambda op: "status 500" if op.kind == USER and op.tenant_index == 2 else None
    )
    config = make_config(thread_count=2, user_count=3, tenant_count=2)

    report = HarnessExecutor(config, client_factory=factory).execute()

    assert report.stats.users.failed == 3
    assert report.stats.users.success == 3
    records = read_ledger(ledger_path)
    assert sorted(r.username for r in records) == ["isTestUser_1", "isTestUser_2", "isTestUser_3"]
    assert {r.tenant_id for r in records} == {2}
    assert all(r.error_message == "status 500" for r in records)


def test_run_logs_outcome_summary(make_config, caplog):
    caplog.set_level(logging.INFO, logger="scimload.executor")
    factory = FakeClientFactory(fail=lambda op: "down" if op.kind == USER and op.user_index == 1 else None)
    config = make_config(thread_count=1, user_count=2, tenant_count=1)

    HarnessExecutor(config, client_factory=factory).execute()

    summary = [r.getMessage() for r in caplog.records if r.getMessage().startswith("outcome summary")]
    assert summary == ["outcome summary: {'role-ok': 1, 'user-failed': 1, 'user-ok': 1}"]


def test_fresh_run_setup_failure_spawns_nothing(make_config, tmp_path):
    factory = FakeClientFactory()
    config = make_config(failed_users_csv_path=str(tmp_path))

    with pytest.raises(LedgerError):
        HarnessExecutor(config, client_factory=factory).execute()
    assert factory.clients == []


def test_scim_ids_recorded_when_enabled(make_config, tmp_path):
    config = make_config(thread_count=1, user_count=1, tenant_count=2, record_scim_ids=True)

    HarnessExecutor(config, client_factory=FakeClientFactory()).execute()

    lines = (tmp_path / "scimIDs.csv").read_text(encoding="utf-8").splitlines()
    assert lines == ["scim_id", "scim-1-isTestUser_1", "scim-2-isTestUser_1"]


def test_ramp_sleeps_only_in_user_phase(make_config):
    sleeps: list[float] = []
    config = make_config(thread_count=4, user_count=8, tenant_count=4, ramp_up_period_s=2.0)

    HarnessExecutor(config, client_factory=FakeClientFactory(), sleep=sleeps.append).execute()

    assert sleeps == [0.5, 0.5, 0.5]


def _seed_ledger(path, rows):
    with FailedUserLedger.fresh(path) as ledger:
        for record in rows:
            ledger.write(record)


def _failed(tenant, username, error="status 500"):
    return LedgerRecord(tenant_id=tenant, username=username, error_message=error, timestamp="t")


def test_retry_uses_stored_username_verbatim(make_config, tmp_path):
    _seed_ledger(tmp_path / "failedUsers.csv", [_failed(3, "isTestUser_5")])
    factory = FakeClientFactory()
    config = make_config(thread_count=2)

    report = HarnessExecutor(config, client_factory=factory).execute_retry()

    assert report.mode == RETRY
    assert [(c.tenant_index, c.username, c.user_index) for c in factory.calls] == [
        (3, "isTestUser_5", 5)
    ]
    assert report.stats.users.success == 1
    assert report.stats.roles.total == 0


def test_retry_keeps_custom_usernames(make_config, tmp_path):
    _seed_ledger(tmp_path / "failedUsers.csv", [_failed(1, "someone-else"), _failed(2, "x_y")])
    factory = FakeClientFactory()

    HarnessExecutor(make_config(thread_count=1), client_factory=factory).execute_retry()

    assert [(c.username, c.user_index) for c in factory.calls] == [
        ("someone-else", None),
        ("x_y", None),
    ]


def test_retry_appends_new_failures(make_config, tmp_path):
    path = tmp_path / "failedUsers.csv"
    _seed_ledger(path, [_failed(1, "isTestUser_1"), _failed(2, "isTestUser_2")])
    factory = FakeClientFactory(fail=lambda op: "still down" if op.tenant_index == 2 else None)

    report = HarnessExecutor(make_config(thread_count=2), client_factory=factory).execute_retry()

    assert report.stats.users.total == 2
    assert report.stats.users.failed == 1
    records = read_ledger(path)
    assert [(r.tenant_id, r.username, r.error_message) for r in records] == [
        (1, "isTestUser_1", "status 500"),
        (2, "isTestUser_2", "status 500"),
        (2, "isTestUser_2", "still down"),
    ]


def test_retry_partitions_records_across_workers(make_config, tmp_path):
    rows = [_failed(1, f"isTestUser_{i}") for i in range(1, 8)]
    _seed_ledger(tmp_path / "failedUsers.csv", rows)
    factory = FakeClientFactory()

    report = HarnessExecutor(make_config(thread_count=3), client_factory=factory).execute_retry()

    chunks = sorted([c.username for c in client.calls] for client in factory.clients)
    assert chunks == [
        ["isTestUser_1", "isTestUser_2", "isTestUser_3"],
        ["isTestUser_4", "isTestUser_5"],
        ["isTestUser_6", "isTestUser_7"],
    ]
    assert report.workers_spawned == 3


def test_retry_dedupes_repeated_identities_by_default(make_config, tmp_path):
    rows = [_failed(1, "isTestUser_1"), _failed(1, "isTestUser_1", "again"), _failed(2, "isTestUser_1")]
    _seed_ledger(tmp_path / "failedUsers.csv", rows)

    factory = FakeClientFactory()
    HarnessExecutor(make_config(thread_count=1), client_factory=factory).execute_retry()
    assert [(c.tenant_index, c.username) for c in factory.calls] == [
        (1, "isTestUser_1"),
        (2, "isTestUser_1"),
    ]

    verbatim = FakeClientFactory()
    config = make_config(thread_count=1, dedupe_retries=False)
    HarnessExecutor(config, client_factory=verbatim).execute_retry()
    assert len(verbatim.calls) == 3


def test_empty_ledger_retry_is_a_no_op(make_config, tmp_path):
    path = tmp_path / "failedUsers.csv"
    path.write_text(LEDGER_HEADER, encoding="utf-8")
    factory = FakeClientFactory()
    config = make_config(record_scim_ids=True)

    report = HarnessExecutor(config, client_factory=factory).execute_retry()

    assert report.stats.total_operations == 0
    assert not report.spawned_workers
    assert report.outcomes.empty
    assert factory.clients == []
    assert path.read_text(encoding="utf-8") == LEDGER_HEADER
    assert not (tmp_path / "scimIDs.csv").exists()


def test_retry_without_ledger_is_a_setup_failure(make_config):
    factory = FakeClientFactory()
    with pytest.raises(LedgerError):
        HarnessExecutor(make_config(), client_factory=factory).execute_retry()
    assert factory.clients == []
