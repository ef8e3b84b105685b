"""
Audit Logger

DESIGN DECISION: Every persistence decision that a user could later ask
about ("why did my settings come back?", "why is the tutorial showing
again?") is logged as an audit event.

The audit logger:
- Is async so stores can await it inline between backend calls
- Gracefully handles failures (never breaks a read or write path)
- Keeps a bounded in-memory history for diagnostics screens and tests
"""

from collections import deque
from typing import Optional

import structlog

from budgetkeep.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An in-memory ring buffer (for inspection)
    """

    def __init__(self, history_size: int = 500):
        """
        Initialize audit logger.

        Args:
            history_size: How many recent events to keep in memory.
                    0 disables the history.
        """
        self._history: deque[AuditEvent] = deque(maxlen=history_size)
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the event was recorded.
        """
        log_dict = event.to_log_dict()

        try:
            if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Logging must not break the persistence path
            self._logger.error(
                "audit_log_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

        if self._history.maxlen:
            self._history.append(event)
        return True

    def recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        return list(reversed(self._history))[:limit]

    async def log_remote_fallback(self, user_id: str, storage_key: str, error_message: str) -> None:
        await self.log(AuditEventBuilder.remote_fallback(user_id, storage_key, error_message))

    async def log_write_failed(
        self,
        user_id: str,
        storage_key: str,
        backend: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.write_failed(user_id, storage_key, backend, error_message))

    async def log_decode_failed(
        self,
        storage_key: str,
        error_message: str,
        user_id: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.decode_failed(storage_key, error_message, user_id))

    async def log_data_reset(self, keys_removed: int, user_id: Optional[str] = None) -> None:
        """Log a user-initiated reset of local data."""
        await self.log(AuditEventBuilder.data_reset(keys_removed, user_id))
