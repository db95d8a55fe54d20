# tests/conftest.py
from __future__ import annotations

import dataclasses
import os
import threading

import pytest

os.environ.setdefault("MPLBACKEND", "Agg")

from scimload.client import OperationError
from scimload.config import ExecutionConfig, HarnessConfig
from scimload.engine.types import ROLE, Operation


class FakeClient:
    """Stands in for IdentityClient; fails whatever ``fail`` returns a reason for."""

    def __init__(self, fail=None):
        self._fail = fail or (lambda operation: None)
        self.calls: list[Operation] = []
        self.closed = False

    def perform(self, operation: Operation) -> str | None:
        self.calls.append(operation)
        reason = self._fail(operation)
        if reason:
            raise OperationError(reason)
        if operation.kind == ROLE:
            return None
        return f"scim-{operation.tenant_index}-{operation.username}"

    def close(self) -> None:
        self.closed = True


class FakeClientFactory:
    def __init__(self, fail=None):
        self._fail = fail
        self._lock = threading.Lock()
        self.clients: list[FakeClient] = []

    def __call__(self) -> FakeClient:
        client = FakeClient(self._fail)
        with self._lock:
            self.clients.append(client)
        return client

    @property
    def calls(self) -> list[Operation]:
        return [call for client in self.clients for call in client.calls]


@pytest.fixture
def make_config(tmp_path):
    def _make(**execution) -> HarnessConfig:
        defaults = dict(
            thread_count=2,
            user_count=4,
            tenant_count=3,
            ramp_up_period_s=0.0,
            role_creation_delay_s=0.0,
            failed_users_csv_path=str(tmp_path / "failedUsers.csv"),
            scim_id_csv_path=str(tmp_path / "scimIDs.csv"),
        )
        defaults.update(execution)
        return dataclasses.replace(HarnessConfig(), execution=ExecutionConfig(**defaults))

    return _make


@pytest.fixture
def client_factory():
    return FakeClientFactory()
