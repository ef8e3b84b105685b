"""
Notification Settings Store

Per-user notification preferences kept on the device.

DESIGN DECISION: One store instance per identity, injected where it is
needed, instead of a process-wide settings cache. The in-memory view is
re-validated against storage whenever the app returns to the
foreground, so a "reset all data" done elsewhere shows up without
polling.

Rapid toggling can go through schedule_update(), which applies the
change in memory at once and coalesces the writes.
"""

import inspect
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

from budgetkeep.audit import AuditLogger
from budgetkeep.lifecycle.app_state import AppStateMonitor
from budgetkeep.lifecycle.staleness import StalenessDetector
from budgetkeep.models.audit import AuditEventBuilder
from budgetkeep.models.identity import Identity
from budgetkeep.models.records import NotificationSettings
from budgetkeep.services.storage import (
    DecodingError,
    EncodingError,
    IOFailure,
    JsonCodec,
    LocalBackend,
    StorageDomain,
    WriteFailedError,
    build_key,
)
from budgetkeep.utils import Debounced, debounce


SettingsListener = Callable[[NotificationSettings], Any]

logger = structlog.get_logger(__name__)


class NotificationSettingsStore:
    """
    Notification preferences for one identity.

    Args:
        identity: Owner of the settings
        local: Device-local backend
        codec: Codec for the stored document
        audit_logger: Optional audit trail
        save_debounce_seconds: Quiet period for schedule_update()
    """

    def __init__(
        self,
        identity: Identity,
        local: LocalBackend,
        codec: Optional[JsonCodec] = None,
        audit_logger: Optional[AuditLogger] = None,
        save_debounce_seconds: float = 0.5,
    ):
        self.identity = identity
        self._local = local
        self._codec = codec or JsonCodec()
        self._audit_logger = audit_logger
        self._key = build_key(StorageDomain.NOTIFICATION_SETTINGS, identity.user_id)
        self._settings = NotificationSettings()
        self._listeners: list[SettingsListener] = []
        self._detector: StalenessDetector[NotificationSettings] = StalenessDetector(
            self._read,
            self._apply_external,
            codec=self._codec,
            name=self._key,
            audit_logger=audit_logger,
        )
        self._debounced_save: Debounced = debounce(self._persist_current, save_debounce_seconds)

    @property
    def key(self) -> str:
        return self._key

    @property
    def settings(self) -> NotificationSettings:
        """Cached settings (defaults until load() ran)."""
        return self._settings

    @property
    def detector(self) -> StalenessDetector[NotificationSettings]:
        return self._detector

    @property
    def save_pending(self) -> bool:
        return self._debounced_save.pending

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def _read(self) -> NotificationSettings:
        """Stored values merged over defaults; any read failure yields defaults."""
        try:
            text = await self._local.get(self._key)
        except IOFailure as e:
            logger.warning("notification_settings_read_failed", key=self._key, error=str(e))
            return NotificationSettings()
        if text is None:
            return NotificationSettings()

        try:
            stored = self._codec.decode(text)
            if not isinstance(stored, dict):
                raise DecodingError(f"Expected an object, got {type(stored).__name__}")
            merged = {**NotificationSettings().model_dump(), **stored}
            return NotificationSettings.model_validate(merged)
        except (DecodingError, ValidationError) as e:
            logger.warning("notification_settings_invalid", key=self._key, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_decode_failed(self._key, str(e), self.identity.user_id)
            return NotificationSettings()

    async def load(self) -> NotificationSettings:
        """Load from storage, cache, and adopt as the known snapshot."""
        self._settings = await self._read()
        self._detector.prime(self._settings)
        return self._settings

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _merge(self, changes: dict) -> NotificationSettings:
        unknown = set(changes) - set(NotificationSettings.model_fields)
        if unknown:
            raise ValueError(f"Unknown notification settings: {sorted(unknown)}")
        return NotificationSettings.model_validate({**self._settings.model_dump(), **changes})

    async def _write(self, settings: NotificationSettings) -> None:
        try:
            await self._local.set(self._key, self._codec.encode(settings))
        except (IOFailure, EncodingError) as e:
            logger.error("notification_settings_write_failed", key=self._key, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_write_failed(
                    self.identity.user_id, self._key, "local", str(e)
                )
            raise WriteFailedError(f"Failed to save notification settings: {e}", backend="local") from e

        self._detector.note_local_write(settings)
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.record_written(self.identity.user_id, self._key, "local")
            )

    async def update(self, **changes) -> NotificationSettings:
        """
        Apply partial changes and persist the merged settings.

        Raises:
            ValueError: For unknown fields or invalid values
            WriteFailedError: If the settings could not be written
        """
        new_settings = self._merge(changes)
        await self._write(new_settings)
        self._settings = new_settings
        await self._notify(new_settings)
        return new_settings

    def schedule_update(self, **changes) -> NotificationSettings:
        """
        Apply changes in memory now and persist after the quiet period.

        Must be called from inside a running event loop. Failures of the
        delayed write are logged.
        """
        self._settings = self._merge(changes)
        self._debounced_save()
        return self._settings

    async def _persist_current(self) -> None:
        await self._write(self._settings)

    async def flush(self) -> None:
        """Write a scheduled update now and wait for it to finish."""
        self._debounced_save.flush()
        await self._debounced_save.drain()

    async def reset(self) -> NotificationSettings:
        """
        Remove the stored settings and fall back to defaults.

        Raises:
            WriteFailedError: If the stored document could not be removed
        """
        self._debounced_save.cancel()
        try:
            await self._local.remove(self._key)
        except IOFailure as e:
            logger.error("notification_settings_reset_failed", key=self._key, error=str(e))
            raise WriteFailedError(f"Failed to reset notification settings: {e}", backend="local") from e

        self._settings = NotificationSettings()
        self._detector.note_local_write(self._settings)
        await self._notify(self._settings)
        return self._settings

    # -------------------------------------------------------------------------
    # Change propagation
    # -------------------------------------------------------------------------

    def subscribe(self, listener: SettingsListener) -> Callable[[], None]:
        """
        Register for settings changes (own updates and external resets).

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, settings: NotificationSettings) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(settings)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("notification_settings_listener_failed", key=self._key)

    async def _apply_external(self, settings: NotificationSettings) -> None:
        self._debounced_save.cancel()
        self._settings = settings
        await self._notify(settings)

    async def refresh(self) -> bool:
        """Re-check storage for external changes now."""
        return await self._detector.on_became_active()

    def attach(self, monitor: AppStateMonitor) -> Callable[[], None]:
        """Re-validate on every return to the foreground."""
        return self._detector.attach(monitor)
