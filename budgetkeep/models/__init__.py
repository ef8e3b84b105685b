"""
Data Models Package

This package contains all Pydantic models used by budgetkeep.
Everything the stores persist or emit conforms to these schemas.
"""

from budgetkeep.models.identity import (
    Identity,
    IdentityKind,
    classify_identity,
    is_valid_uuid,
)
from budgetkeep.models.records import (
    EntityRecord,
    NavigationMarker,
    NotificationSettings,
    TutorialStatus,
)
from budgetkeep.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Identity
    "Identity",
    "IdentityKind",
    "classify_identity",
    "is_valid_uuid",
    # Records
    "EntityRecord",
    "NavigationMarker",
    "NotificationSettings",
    "TutorialStatus",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
