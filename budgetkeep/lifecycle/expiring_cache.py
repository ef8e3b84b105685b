"""
Lifecycle-Expiring Cache

A single-key store whose entry is only valid for a bounded window after
it was written. Used for navigation resume: if the user reopens the app
quickly they land on the screen they left, otherwise on the home screen.

States are derived, never stored:
    EMPTY    - nothing saved (or the saved value is unreadable)
    FRESH    - saved, and now - timestamp <= ttl
    EXPIRED  - saved, but older than ttl

DESIGN DECISION: There is no timer. Expiry is evaluated lazily when the
entry is read, and eagerly when the app returns to the foreground after
spending at least ttl in the background - so a slow cold-start read can
never resurrect a stale screen.

Failures are never surfaced: this state is a convenience, losing it just
means starting on the home screen.
"""

import time
from abc import ABC, abstractmethod
from datetime import timedelta
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar, Union

import structlog
from pydantic import BaseModel

from budgetkeep.audit import AuditLogger
from budgetkeep.lifecycle.app_state import AppState, AppStateMonitor
from budgetkeep.models.audit import AuditEventBuilder
from budgetkeep.models.records import NavigationMarker
from budgetkeep.services.storage import (
    CommonKey,
    DecodingError,
    EncodingError,
    IOFailure,
    JsonCodec,
    LocalBackend,
)


DEFAULT_QUICK_REOPEN_WINDOW = timedelta(seconds=30)

MarkerT = TypeVar("MarkerT", bound=BaseModel)

logger = structlog.get_logger(__name__)


def epoch_ms() -> int:
    return int(time.time() * 1000)


def _to_ms(ttl: Union[timedelta, float, int]) -> int:
    if isinstance(ttl, timedelta):
        return int(ttl.total_seconds() * 1000)
    return int(ttl * 1000)


class CacheState(str, Enum):
    """Derived state of the cached entry."""
    EMPTY = "empty"
    FRESH = "fresh"
    EXPIRED = "expired"


class LifecycleExpiringCache(ABC, Generic[MarkerT]):
    """
    Base class for a TTL-bounded marker under one local key.

    Subclasses say how to build a marker from a value and back; the
    marker model must carry an integer epoch-ms `timestamp`.

    Args:
        local: Device-local backend
        key: Storage key of the marker
        ttl: Validity window (timedelta or seconds)
        clock: Returns "now" in epoch milliseconds
    """

    marker_model: type[MarkerT]

    def __init__(
        self,
        local: LocalBackend,
        key: str,
        ttl: Union[timedelta, float, int] = DEFAULT_QUICK_REOPEN_WINDOW,
        clock: Optional[Callable[[], int]] = None,
        codec: Optional[JsonCodec] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        ttl_ms = _to_ms(ttl)
        if ttl_ms <= 0:
            raise ValueError("ttl must be positive")
        self._local = local
        self._key = key
        self._ttl_ms = ttl_ms
        self._clock = clock or epoch_ms
        self._codec = codec or JsonCodec()
        self._audit_logger = audit_logger
        self._away_since: Optional[int] = None

    @property
    def key(self) -> str:
        return self._key

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    @abstractmethod
    def _build_marker(self, value: str, now_ms: int) -> MarkerT:
        pass

    @abstractmethod
    def _marker_value(self, marker: MarkerT) -> str:
        pass

    async def save(self, value: str) -> bool:
        """
        Overwrite the entry with (value, now), whatever state it was in.

        Returns:
            False if the marker could not be written (it is dropped)
        """
        marker = self._build_marker(value, self._clock())
        try:
            await self._local.set(self._key, self._codec.encode(marker))
        except (IOFailure, EncodingError) as e:
            logger.warning("expiring_cache_save_failed", key=self._key, error=str(e))
            return False
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.marker_saved(self._key, value))
        return True

    async def _load(self) -> Optional[MarkerT]:
        try:
            text = await self._local.get(self._key)
        except IOFailure as e:
            logger.warning("expiring_cache_read_failed", key=self._key, error=str(e))
            return None
        if text is None:
            return None
        try:
            return self._codec.decode(text, self.marker_model)
        except DecodingError as e:
            logger.warning("expiring_cache_corrupt", key=self._key, error=str(e))
            await self._remove()
            return None

    async def _remove(self) -> bool:
        try:
            await self._local.remove(self._key)
        except IOFailure as e:
            logger.warning("expiring_cache_remove_failed", key=self._key, error=str(e))
            return False
        return True

    def _age_ms(self, marker: MarkerT, now_ms: int) -> int:
        return now_ms - marker.timestamp

    async def state(self) -> CacheState:
        """Derive the current state without side effects."""
        try:
            text = await self._local.get(self._key)
        except IOFailure:
            return CacheState.EMPTY
        if text is None:
            return CacheState.EMPTY
        try:
            marker = self._codec.decode(text, self.marker_model)
        except DecodingError:
            return CacheState.EMPTY
        if self._age_ms(marker, self._clock()) <= self._ttl_ms:
            return CacheState.FRESH
        return CacheState.EXPIRED

    async def read_if_fresh(self) -> Optional[str]:
        """
        Return the cached value if it is still within the window.

        An expired marker is deleted as a side effect.
        """
        marker = await self._load()
        if marker is None:
            return None

        age_ms = self._age_ms(marker, self._clock())
        if age_ms <= self._ttl_ms:
            return self._marker_value(marker)

        await self._remove()
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.marker_expired(self._key, age_ms, self._ttl_ms)
            )
        return None

    async def clear(self) -> bool:
        """Drop the entry."""
        return await self._remove()

    async def handle_app_state(self, previous: AppState, current: AppState) -> None:
        """
        Lifecycle listener.

        Remembers when the app left the foreground; on return, clears the
        entry if the app was away for at least ttl.
        """
        if current.is_away:
            # every away edge restarts the timer
            self._away_since = self._clock()
            return

        if self._away_since is None:
            return

        away_ms = self._clock() - self._away_since
        self._away_since = None
        if away_ms >= self._ttl_ms:
            if await self._remove():
                logger.info("expiring_cache_cleared_on_resume", key=self._key, away_ms=away_ms)
                if self._audit_logger:
                    await self._audit_logger.log(
                        AuditEventBuilder.marker_cleared(self._key, away_ms)
                    )

    def attach(self, monitor: AppStateMonitor) -> Callable[[], None]:
        """Listen to lifecycle edges; returns the unsubscribe callable."""
        if monitor.state.is_away:
            self._away_since = self._clock()
        return monitor.subscribe(self.handle_app_state)


class NavigationResumeCache(LifecycleExpiringCache[NavigationMarker]):
    """Last screen the user was on, for quick-reopen resume."""

    marker_model = NavigationMarker

    def __init__(
        self,
        local: LocalBackend,
        ttl: Union[timedelta, float, int] = DEFAULT_QUICK_REOPEN_WINDOW,
        clock: Optional[Callable[[], int]] = None,
        codec: Optional[JsonCodec] = None,
        audit_logger: Optional[AuditLogger] = None,
        key: str = CommonKey.NAVIGATION_STATE.value,
    ):
        super().__init__(local, key, ttl=ttl, clock=clock, codec=codec, audit_logger=audit_logger)

    def _build_marker(self, value: str, now_ms: int) -> NavigationMarker:
        return NavigationMarker(last_screen=value, timestamp=now_ms)

    def _marker_value(self, marker: NavigationMarker) -> str:
        return marker.last_screen

    async def save_last_screen(self, screen: str) -> bool:
        return await self.save(screen)

    async def last_screen_for_quick_reopen(self) -> Optional[str]:
        return await self.read_if_fresh()
