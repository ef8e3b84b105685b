"""
Staleness Detector

Notices that durable state was changed behind the in-memory view (for
example by a user-initiated "reset all data") without polling.

The detector holds the canonical encoding of the last value the owner
knows about. When the app becomes active it reloads the durable value
once, and if the encoding differs - both from the held snapshot and
from the last value the detector itself published - it publishes the
new value and adopts it as the snapshot.
"""

import inspect
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import structlog

from budgetkeep.audit import AuditLogger
from budgetkeep.lifecycle.app_state import AppStateMonitor
from budgetkeep.models.audit import AuditEventBuilder
from budgetkeep.services.storage import EncodingError, JsonCodec


T = TypeVar("T")

logger = structlog.get_logger(__name__)


class StalenessDetector(Generic[T]):
    """
    Lifecycle-triggered comparison of a cached snapshot against the
    durable value.

    Args:
        loader: Coroutine function returning the current durable value
        on_change: Called with the new value when an external change is
            found (may be a coroutine function)
        codec: Codec used to produce comparable snapshots
        name: Label used in logs and audit events
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[T]],
        on_change: Callable[[T], Any],
        codec: Optional[JsonCodec] = None,
        name: str = "state",
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._loader = loader
        self._on_change = on_change
        self._codec = codec or JsonCodec()
        self._name = name
        self._audit_logger = audit_logger
        self._snapshot: Optional[str] = None
        self._last_published: Optional[str] = None
        self._refreshing = False

    @property
    def snapshot(self) -> Optional[str]:
        return self._snapshot

    @property
    def refreshing(self) -> bool:
        return self._refreshing

    def _encode(self, value: T) -> Optional[str]:
        try:
            return self._codec.encode(value)
        except EncodingError as e:
            logger.error("staleness_snapshot_unencodable", name=self._name, error=str(e))
            return None

    def prime(self, value: T) -> None:
        """Adopt a value the owner already knows about as the snapshot."""
        self._snapshot = self._encode(value)
        self._last_published = None

    def note_local_write(self, value: T) -> None:
        """Record the owner's own write so it is not mistaken for an external change."""
        self.prime(value)

    async def on_became_active(self) -> bool:
        """
        Re-validate the snapshot against durable state.

        At most one refresh runs at a time; a trigger that arrives while
        one is in flight is dropped.

        Returns:
            True if a changed value was published
        """
        if self._refreshing:
            return False

        self._refreshing = True
        try:
            try:
                value = await self._loader()
            except Exception as e:
                # Read path: a failed check just means "no news"
                logger.warning("staleness_check_failed", name=self._name, error=str(e))
                return False

            encoded = self._encode(value)
            if encoded is None:
                return False
            if encoded == self._snapshot or encoded == self._last_published:
                return False

            self._snapshot = encoded
            self._last_published = encoded

            result = self._on_change(value)
            if inspect.isawaitable(result):
                await result

            logger.info("external_change_detected", name=self._name)
            if self._audit_logger:
                await self._audit_logger.log(AuditEventBuilder.external_change_detected(self._name))
            return True
        finally:
            self._refreshing = False

    def attach(self, monitor: AppStateMonitor) -> Callable[[], None]:
        """Run on every "became active" edge; returns the unsubscribe callable."""
        return monitor.on_became_active(self.on_became_active)
