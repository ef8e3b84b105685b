"""
Application Session Wiring

This module ties the stores together for one running app:
1. Tutorial status (dual-backend, per identity)
2. Notification preferences (device-local, per identity)
3. Navigation resume (device-wide, lifecycle-expiring)

DESIGN DECISION: The session owns the lifecycle monitor. The host
reports foreground/background changes once, here, and every store that
cares about them is subscribed when it is created.

Resetting is explicit and scoped:
- reset_user_data() removes one user's keys across all domains
- reset_everything() is the only caller of LocalBackend.clear()
"""

from pathlib import Path
from typing import Callable, Optional

import structlog

from budgetkeep.audit import AuditLogger
from budgetkeep.config import Settings, get_settings, remote_configured
from budgetkeep.lifecycle import AppState, AppStateMonitor, NavigationResumeCache
from budgetkeep.models.identity import Identity
from budgetkeep.models.records import TutorialStatus
from budgetkeep.services.entity_store import EntityStore
from budgetkeep.services.notification_settings import NotificationSettingsStore
from budgetkeep.services.storage import (
    FileLocalBackend,
    GoogleSheetsClient,
    GoogleSheetsRemoteBackend,
    IOFailure,
    JsonCodec,
    LocalBackend,
    OfflineRemoteBackend,
    RemoteBackend,
    WriteFailedError,
    keys_for_user,
)
from budgetkeep.services.tutorial import (
    TUTORIAL_COLUMNS,
    TutorialProgress,
    TutorialService,
    create_tutorial_store,
)


logger = structlog.get_logger(__name__)


class AppSession:
    """
    Per-process container of stores sharing one local backend, one
    remote table and one lifecycle monitor.
    """

    def __init__(
        self,
        local: LocalBackend,
        remote: RemoteBackend,
        codec: Optional[JsonCodec] = None,
        audit_logger: Optional[AuditLogger] = None,
        monitor: Optional[AppStateMonitor] = None,
        navigation: Optional[NavigationResumeCache] = None,
        settings_save_debounce_seconds: float = 0.5,
    ):
        self.local = local
        self.remote = remote
        self.codec = codec or JsonCodec()
        self.audit_logger = audit_logger
        self.monitor = monitor or AppStateMonitor()
        self.navigation = navigation or NavigationResumeCache(
            local, codec=self.codec, audit_logger=audit_logger
        )
        self._settings_debounce = settings_save_debounce_seconds
        self.tutorial_store: EntityStore[TutorialStatus] = create_tutorial_store(
            local, remote, codec=self.codec, audit_logger=audit_logger
        )
        self._notification_stores: dict[str, NotificationSettingsStore] = {}
        self._unsubscribers: list[Callable[[], None]] = []
        self._started = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> "AppSession":
        """Subscribe the navigation cache to lifecycle edges."""
        if not self._started:
            self._unsubscribers.append(self.navigation.attach(self.monitor))
            self._started = True
        return self

    async def handle_app_state(self, state: AppState) -> bool:
        """Forward a host lifecycle report to every subscribed store."""
        return await self.monitor.transition(state)

    async def close(self) -> None:
        """Flush pending settings writes and detach from the lifecycle."""
        for store in self._notification_stores.values():
            if store.save_pending:
                try:
                    await store.flush()
                except WriteFailedError as e:
                    logger.error("settings_flush_failed", key=store.key, error=str(e))
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._started = False

    # -------------------------------------------------------------------------
    # Per-user stores
    # -------------------------------------------------------------------------

    def tutorial_for(self, user_id: str) -> TutorialService:
        return TutorialService(Identity.of(user_id), self.tutorial_store)

    def tutorial_progress_for(self, user_id: str) -> TutorialProgress:
        return TutorialProgress(self.tutorial_for(user_id))

    def notification_settings_for(self, user_id: str) -> NotificationSettingsStore:
        """
        Notification store for a user (one instance per user per session).

        The store is re-validated on every return to the foreground.
        Call load() on it before reading settings.
        """
        store = self._notification_stores.get(user_id)
        if store is None:
            store = NotificationSettingsStore(
                Identity.of(user_id),
                self.local,
                codec=self.codec,
                audit_logger=self.audit_logger,
                save_debounce_seconds=self._settings_debounce,
            )
            self._unsubscribers.append(store.attach(self.monitor))
            self._notification_stores[user_id] = store
        return store

    # -------------------------------------------------------------------------
    # Reset
    # -------------------------------------------------------------------------

    async def _refresh_settings(self, user_id: Optional[str] = None) -> None:
        for owner, store in self._notification_stores.items():
            if user_id is None or owner == user_id:
                await store.refresh()

    async def reset_user_data(self, user_id: str) -> int:
        """
        Remove every device-local key owned by a user.

        Device-wide keys and other users' keys are left alone. Records
        held in the remote table are not touched.

        Returns:
            Number of keys removed

        Raises:
            WriteFailedError: If some keys could not be removed
        """
        try:
            keys = keys_for_user(await self.local.list_keys(), user_id)
            await self.local.multi_remove(keys)
        except IOFailure as e:
            logger.error("user_data_reset_failed", user_id=user_id, failed_keys=e.failed_keys)
            raise WriteFailedError(f"Failed to reset data for {user_id}: {e}", backend="local") from e

        logger.info("user_data_reset", user_id=user_id, keys_removed=len(keys))
        if self.audit_logger:
            await self.audit_logger.log_data_reset(len(keys), user_id)
        await self._refresh_settings(user_id)
        return len(keys)

    async def reset_everything(self) -> int:
        """
        Wipe all device-local state, for every user.

        Returns:
            Number of keys removed

        Raises:
            WriteFailedError: If the local store could not be cleared
        """
        try:
            count = len(await self.local.list_keys())
            await self.local.clear()
        except IOFailure as e:
            logger.error("local_data_reset_failed", error=str(e))
            raise WriteFailedError(f"Failed to reset local data: {e}", backend="local") from e

        if self.audit_logger:
            await self.audit_logger.log_data_reset(count)
        await self._refresh_settings()
        return count


def create_remote_backend(settings: Optional[Settings] = None) -> RemoteBackend:
    """
    Remote tutorial table from configuration.

    Falls back to an always-failing stand-in when Google Sheets is not
    configured, so durable users read their device copy.
    """
    settings = settings or get_settings()
    if not remote_configured(settings):
        logger.warning("remote_storage_not_configured")
        return OfflineRemoteBackend(table="tutorial_status")

    sheets = settings.google_sheets
    return GoogleSheetsRemoteBackend(
        sheets.tutorial_table,
        TUTORIAL_COLUMNS,
        client=GoogleSheetsClient(sheets),
    )


def create_app_components(
    use_remote: bool = True,
    settings: Optional[Settings] = None,
    storage_dir: Optional[Path] = None,
) -> AppSession:
    """
    Factory function to create all application components.

    Args:
        use_remote: Whether to initialize Google Sheets storage.
                    Set to False for testing without a remote table.
        settings: Settings to use instead of the cached environment settings
        storage_dir: Override of the local storage directory

    Returns:
        A started AppSession
    """
    settings = settings or get_settings()
    app_settings = settings.app

    audit_logger = AuditLogger(history_size=app_settings.audit_history_size)
    codec = JsonCodec()
    local = FileLocalBackend(storage_dir or settings.local_storage.storage_dir)

    if use_remote:
        try:
            remote = create_remote_backend(settings)
        except Exception as e:
            # Remote not usable - continue with device storage only
            logger.warning("remote_storage_unavailable", error=str(e))
            remote = OfflineRemoteBackend(table="tutorial_status", reason=str(e))
    else:
        remote = OfflineRemoteBackend(table="tutorial_status")

    navigation = NavigationResumeCache(
        local,
        ttl=app_settings.quick_reopen_window_seconds,
        codec=codec,
        audit_logger=audit_logger,
    )

    session = AppSession(
        local,
        remote,
        codec=codec,
        audit_logger=audit_logger,
        navigation=navigation,
        settings_save_debounce_seconds=app_settings.settings_save_debounce_seconds,
    )
    return session.start()
