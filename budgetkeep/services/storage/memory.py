"""
In-memory Storage Implementations

Used for tests, previews and sessions that must leave nothing behind.
Both backends support failure injection so the fallback and
write-surfacing paths of the stores can be exercised without a real
disk or network.
"""

import copy
from typing import Optional

from budgetkeep.services.storage.interface import (
    IOFailure,
    LocalBackend,
    RemoteBackend,
    RemoteFailure,
)


class InMemoryLocalBackend(LocalBackend):
    """Dict-backed local storage."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})
        self.fail_reads = False
        self.fail_writes = False
        # Keys that fail individually, for batch tests
        self.failing_keys: set[str] = set()
        self.write_count = 0

    def _check_read(self, key: Optional[str] = None) -> None:
        if self.fail_reads or (key is not None and key in self.failing_keys):
            raise IOFailure(f"Injected read failure for {key or 'listing'}")

    def _check_write(self, key: Optional[str] = None) -> None:
        if self.fail_writes or (key is not None and key in self.failing_keys):
            raise IOFailure(f"Injected write failure for {key or 'clear'}")

    async def get(self, key: str) -> Optional[str]:
        self._check_read(key)
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._check_write(key)
        self._data[key] = value
        self.write_count += 1

    async def remove(self, key: str) -> None:
        self._check_write(key)
        self._data.pop(key, None)

    async def clear(self) -> None:
        self._check_write()
        self._data.clear()

    async def list_keys(self) -> list[str]:
        self._check_read()
        return sorted(self._data)

    def snapshot(self) -> dict[str, str]:
        """Copy of the raw contents, bypassing failure injection."""
        return dict(self._data)


class InMemoryRemoteBackend(RemoteBackend):
    """Dict-backed remote table keyed by user_id."""

    def __init__(self, table: str = "records"):
        self.table = table
        self._rows: dict[str, dict] = {}
        self.fail_fetch = False
        self.fail_upsert = False
        self.fetch_calls = 0
        self.upsert_calls = 0

    async def fetch(self, user_id: str) -> Optional[dict]:
        self.fetch_calls += 1
        if self.fail_fetch:
            raise RemoteFailure(f"Injected fetch failure on {self.table}")
        row = self._rows.get(user_id)
        return copy.deepcopy(row) if row is not None else None

    async def upsert(self, record: dict) -> None:
        self.upsert_calls += 1
        if self.fail_upsert:
            raise RemoteFailure(f"Injected upsert failure on {self.table}")
        if not record.get("user_id"):
            raise RemoteFailure("Record has no user_id conflict key")
        self._rows[record["user_id"]] = copy.deepcopy(record)

    @property
    def touched(self) -> bool:
        return bool(self.fetch_calls or self.upsert_calls)

    def rows(self) -> dict[str, dict]:
        return copy.deepcopy(self._rows)


class OfflineRemoteBackend(RemoteBackend):
    """
    Stand-in used when no remote store is configured.

    Every call fails, so durable identities read from their local
    fallback and their writes are surfaced as failures.
    """

    def __init__(self, table: str = "records", reason: str = "remote storage not configured"):
        self.table = table
        self._reason = reason

    async def fetch(self, user_id: str) -> Optional[dict]:
        raise RemoteFailure(self._reason)

    async def upsert(self, record: dict) -> None:
        raise RemoteFailure(self._reason)
