from __future__ import annotations

import csv
import logging
import os
import threading
from pathlib import Path
from typing import IO

from .engine.types import LedgerRecord

LOGGER = logging.getLogger("scimload.ledger")

LEDGER_HEADER: tuple[str, ...] = ("TenantID", "Username", "Error", "Timestamp")
LEDGER_HEADER_MARKERS = frozenset({"TenantID", "Tenant ID"})
SCIM_ID_HEADER: tuple[str, ...] = ("scim_id",)


class LedgerError(Exception):
    """Raised when a ledger or result file cannot be opened, created or read."""


class _LockedCsvFile:
    def __init__(self, path: Path, handle: IO[str]) -> None:
        self.path = path
        self._handle = handle
        self._writer = csv.writer(handle)
        self._lock = threading.Lock()

    def _write_row(self, row: list[str] | tuple[str, ...]) -> None:
        with self._lock:
            self._writer.writerow(row)
            self._handle.flush()

    def close(self) -> None:
        with self._lock:
            if not self._handle.closed:
                self._handle.flush()
                self._handle.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _open(path: Path, mode: str) -> IO[str]:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return open(path, mode, newline="", encoding="utf-8")
    except OSError as exc:
        raise LedgerError(f"failed to open {path} for writing: {exc}") from exc


class FailedUserLedger(_LockedCsvFile):
    """Append-only CSV log of failed user creations shared by all workers."""

    @classmethod
    def fresh(cls, path: str | os.PathLike[str]) -> "FailedUserLedger":
        """Truncate (or create) the ledger so no stale failures survive a new run."""
        path = Path(path)
        ledger = cls(path, _open(path, "w"))
        try:
            ledger._write_row(LEDGER_HEADER)
        except OSError as exc:
            ledger.close()
            raise LedgerError(f"failed to write ledger header to {path}: {exc}") from exc
        return ledger

    @classmethod
    def append(cls, path: str | os.PathLike[str]) -> "FailedUserLedger":
        """Open (or create) the ledger keeping prior rows; header only for an empty file."""
        path = Path(path)
        ledger = cls(path, _open(path, "a"))
        try:
            if ledger._handle.tell() == 0:
                ledger._write_row(LEDGER_HEADER)
        except OSError as exc:
            ledger.close()
            raise LedgerError(f"failed to prepare ledger {path} for append: {exc}") from exc
        return ledger

    def write(self, record: LedgerRecord) -> None:
        self._write_row(
            [str(record.tenant_id), record.username, record.error_message, record.timestamp]
        )


class ScimIdWriter(_LockedCsvFile):
    """Result CSV listing the remote id of every successfully created user."""

    @classmethod
    def fresh(cls, path: str | os.PathLike[str]) -> "ScimIdWriter":
        path = Path(path)
        writer = cls(path, _open(path, "w"))
        try:
            writer._write_row(SCIM_ID_HEADER)
        except OSError as exc:
            writer.close()
            raise LedgerError(f"failed to write header to {path}: {exc}") from exc
        return writer

    def write(self, scim_id: str) -> None:
        self._write_row([scim_id])


def read_ledger(path: str | os.PathLike[str]) -> list[LedgerRecord]:
    """Read every well-formed record from a ledger file.

    The header row is skipped, as are rows with fewer than four fields or a
    non-numeric tenant id; each skipped data row is logged as a warning.
    """
    path = Path(path)
    try:
        with open(path, newline="", encoding="utf-8") as handle:
            rows = list(csv.reader(handle))
    except (OSError, csv.Error) as exc:
        raise LedgerError(f"failed to read ledger {path}: {exc}") from exc

    records: list[LedgerRecord] = []
    for line_no, row in enumerate(rows, start=1):
        if not row:
            continue
        if line_no == 1 and row[0] in LEDGER_HEADER_MARKERS:
            continue
        if len(row) < len(LEDGER_HEADER):
            LOGGER.warning("skipping malformed ledger row %d in %s: %r", line_no, path, row)
            continue
        try:
            tenant_id = int(row[0])
        except ValueError:
            LOGGER.warning("invalid tenant id %r on ledger row %d in %s", row[0], line_no, path)
            continue
        records.append(
            LedgerRecord(
                tenant_id=tenant_id,
                username=row[1],
                error_message=row[2],
                timestamp=row[3],
            )
        )
    return records


__all__ = [
    "LEDGER_HEADER",
    "SCIM_ID_HEADER",
    "LedgerError",
    "FailedUserLedger",
    "ScimIdWriter",
    "read_ledger",
]
