"""
Audit Models for budgetkeep

Every significant persistence action is recorded as an audit event.
This provides:
1. Traceability of which backend actually served a read or took a write
2. Debugging information when a remote backend degrades to local
3. A record of destructive, user-initiated resets

DESIGN DECISION: Audit events describe what happened; they never carry
record payloads. Keys and user ids are enough to reconstruct history.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Entity store
    RECORD_LOADED = "record_loaded"
    RECORD_CREATED = "record_created"
    RECORD_WRITTEN = "record_written"
    RECORD_REHOMED = "record_rehomed"
    WRITE_FAILED = "write_failed"
    REMOTE_FALLBACK = "remote_fallback"
    DECODE_FAILED = "decode_failed"

    # Navigation resume
    MARKER_SAVED = "marker_saved"
    MARKER_EXPIRED = "marker_expired"
    MARKER_CLEARED = "marker_cleared"

    # Reconciliation
    EXTERNAL_CHANGE_DETECTED = "external_change_detected"

    # Destructive operations
    DATA_RESET = "data_reset"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - which stored state is this about?
    storage_key: Optional[str] = Field(
        default=None,
        description="Local key or remote table the event touched"
    )
    user_id: Optional[str] = Field(
        default=None,
        description="Owner of the state, if user-scoped"
    )
    backend: Optional[str] = Field(
        default=None,
        description="'local' or 'remote'"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "storage_key": self.storage_key,
            "user_id": self.user_id,
            "backend": self.backend,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.remote_fallback(user_id, key, error)
        event = AuditEventBuilder.data_reset(keys_removed=12)
    """

    @staticmethod
    def record_loaded(user_id: str, storage_key: str, backend: str, found: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_LOADED,
            severity=AuditSeverity.DEBUG,
            storage_key=storage_key,
            user_id=user_id,
            backend=backend,
            description=f"Record {'found' if found else 'absent'} in {backend} storage",
            details={"found": found},
        )

    @staticmethod
    def record_created(user_id: str, storage_key: str, backend: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            storage_key=storage_key,
            user_id=user_id,
            backend=backend,
            description=f"Default record persisted to {backend} storage",
        )

    @staticmethod
    def record_written(user_id: str, storage_key: str, backend: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_WRITTEN,
            storage_key=storage_key,
            user_id=user_id,
            backend=backend,
            description=f"Record written to {backend} storage",
        )

    @staticmethod
    def record_rehomed(source_user_id: str, target_user_id: str, backend: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_REHOMED,
            user_id=target_user_id,
            backend=backend,
            description="Record moved to a new identity",
            details={"source_user_id": source_user_id},
            is_user_action=True,
        )

    @staticmethod
    def write_failed(
        user_id: str,
        storage_key: str,
        backend: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            storage_key=storage_key,
            user_id=user_id,
            backend=backend,
            description=f"Write to {backend} storage failed",
            error_message=error_message,
        )

    @staticmethod
    def remote_fallback(user_id: str, storage_key: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_FALLBACK,
            severity=AuditSeverity.WARNING,
            storage_key=storage_key,
            user_id=user_id,
            backend="local",
            description="Remote read failed, served from local storage",
            error_message=error_message,
        )

    @staticmethod
    def decode_failed(storage_key: str, error_message: str, user_id: Optional[str] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DECODE_FAILED,
            severity=AuditSeverity.WARNING,
            storage_key=storage_key,
            user_id=user_id,
            backend="local",
            description="Stored value could not be decoded, treated as absent",
            error_message=error_message,
        )

    @staticmethod
    def marker_saved(storage_key: str, screen: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MARKER_SAVED,
            severity=AuditSeverity.DEBUG,
            storage_key=storage_key,
            backend="local",
            description=f"Navigation marker saved: {screen}",
            details={"screen": screen},
        )

    @staticmethod
    def marker_expired(storage_key: str, age_ms: int, ttl_ms: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MARKER_EXPIRED,
            storage_key=storage_key,
            backend="local",
            description="Navigation marker expired and was removed",
            details={"age_ms": age_ms, "ttl_ms": ttl_ms},
        )

    @staticmethod
    def marker_cleared(storage_key: str, background_ms: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MARKER_CLEARED,
            storage_key=storage_key,
            backend="local",
            description="Navigation marker cleared after a long background period",
            details={"background_ms": background_ms},
        )

    @staticmethod
    def external_change_detected(source: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_CHANGE_DETECTED,
            description=f"External change detected: {source}",
            details={"source": source},
        )

    @staticmethod
    def data_reset(keys_removed: int, user_id: Optional[str] = None) -> AuditEvent:
        scope = f"user {user_id}" if user_id else "device"
        return AuditEvent(
            event_type=AuditEventType.DATA_RESET,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            backend="local",
            description=f"Local data reset for {scope}",
            details={"keys_removed": keys_removed},
            is_user_action=True,
        )
