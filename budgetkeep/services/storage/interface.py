"""
Abstract Storage Interfaces

DESIGN DECISION: We define abstract interfaces for the two storage
substrates the app has:

1. A device-local key/value surface that is always available
2. A remote, identity-scoped record store that is only reachable for
   durable identities (and only when the network and auth cooperate)

This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the routing/fallback logic (entity_store.py) decoupled from
   either backend

The interfaces are intentionally small - get/set/remove style access
for local state, fetch/upsert by user id for remote records.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from budgetkeep.services.storage.codec import DecodingError, JsonCodec


class LocalBackend(ABC):
    """
    Abstract interface for device-local key/value storage.

    Values are opaque text (see codec.py). Batched operations are atomic
    per key but not across keys: if one key in a batch fails, the others
    are still applied and IOFailure is raised afterwards naming the
    failed keys.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Read the text stored under a key.

        Returns:
            The stored text, or None if the key is absent

        Raises:
            IOFailure: If the storage substrate is unavailable
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """
        Store text under a key, replacing any previous value.

        Raises:
            IOFailure: If the write could not be made durable
        """
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove a key. Removing an absent key is not an error."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """
        Remove every key.

        Only ever called for an explicit, user-initiated
        "reset everything" - feature code never clears.
        """
        pass

    @abstractmethod
    async def list_keys(self) -> list[str]:
        """List all stored keys."""
        pass

    async def multi_get(self, keys: Sequence[str]) -> list[tuple[str, Optional[str]]]:
        """Read several keys; absent keys map to None."""
        return [(key, await self.get(key)) for key in keys]

    async def multi_set(self, pairs: Sequence[tuple[str, str]]) -> None:
        """Write several keys, each atomically."""
        failed = {}
        for key, value in pairs:
            try:
                await self.set(key, value)
            except IOFailure as e:
                failed[key] = str(e)
        if failed:
            raise IOFailure(f"Failed to write {len(failed)} of {len(pairs)} keys", failed_keys=list(failed))

    async def multi_remove(self, keys: Sequence[str]) -> None:
        """Remove several keys, each atomically."""
        failed = {}
        for key in keys:
            try:
                await self.remove(key)
            except IOFailure as e:
                failed[key] = str(e)
        if failed:
            raise IOFailure(f"Failed to remove {len(failed)} of {len(keys)} keys", failed_keys=list(failed))

    async def get_value(
        self,
        key: str,
        default: Any = None,
        model: Optional[type] = None,
        codec: Optional[JsonCodec] = None,
    ) -> Any:
        """
        Read and decode a key, degrading to `default` on any failure.

        Read failures are never surfaced - an unreadable or corrupt value
        is indistinguishable from an absent one.
        """
        codec = codec or JsonCodec()
        try:
            text = await self.get(key)
        except IOFailure:
            return default
        if text is None:
            return default
        try:
            return codec.decode(text, model)
        except DecodingError:
            return default

    async def storage_size(self) -> int:
        """Total characters across all keys and values (0 if unreadable)."""
        try:
            items = await self.multi_get(await self.list_keys())
        except IOFailure:
            return 0
        return sum(len(key) + len(value) for key, value in items if value)


class RemoteBackend(ABC):
    """
    Abstract interface for a remote, identity-scoped record table.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods. Records are plain dicts keyed by
    "user_id"; the backend performs no field-level merge.
    """

    table: str

    @abstractmethod
    async def fetch(self, user_id: str) -> Optional[dict]:
        """
        Retrieve the record for a user.

        Returns:
            The record if found, None otherwise

        Raises:
            RemoteFailure: Network, auth or server error
        """
        pass

    @abstractmethod
    async def upsert(self, record: dict) -> None:
        """
        Insert or replace the record whose user_id matches.

        A later upsert fully replaces earlier fields - callers that
        change a subset of fields must read before they write.

        Raises:
            RemoteFailure: Network, auth or server error
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class IOFailure(StorageError):
    """Device-local storage is unavailable (disk full, permissions...)."""

    def __init__(self, message: str, failed_keys: Optional[list[str]] = None):
        self.failed_keys = failed_keys or []
        super().__init__(message)


class RemoteFailure(StorageError):
    """Remote record store is unreachable or rejected the request."""
    pass


class WriteFailedError(StorageError):
    """
    A write could not be made durable.

    Raised by the stores to their callers; the original backend error is
    chained as __cause__.
    """

    def __init__(self, message: str, backend: str):
        self.backend = backend
        super().__init__(message)
