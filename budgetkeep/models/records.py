"""
Record Models for budgetkeep

These models define the schemas of everything the stores persist.
They are designed to:
1. Enforce type safety at runtime
2. Serialize to the exact wire shapes other clients already read
3. Survive a round trip through both local JSON and remote rows

DESIGN DECISION: Records are versionless. A write replaces the whole
record (last-writer-wins); there is no field-level merge anywhere.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# ENTITY RECORDS - per-user documents routed by identity kind
# =============================================================================

class EntityRecord(BaseModel):
    """
    Base class for per-user documents.

    `updated_at` is bookkeeping owned by the store: it is stamped on
    every write and any caller-supplied value is overwritten.
    """

    user_id: str = Field(
        ...,
        min_length=1,
        description="Owner of the record; also the remote conflict key"
    )
    completed_at: Optional[datetime] = Field(
        default=None,
        description="Domain-meaningful completion time"
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        description="Set by the store on every write"
    )


class TutorialStatus(EntityRecord):
    """Whether a user still has to go through the first-run tutorial."""

    needs_tutorial: bool = True
    tutorial_completed: bool = False

    @property
    def should_start(self) -> bool:
        return self.needs_tutorial and not self.tutorial_completed


# =============================================================================
# DEVICE STATE - not user-scoped
# =============================================================================

class NavigationMarker(BaseModel):
    """
    The last screen the user was on.

    Wire shape is {"lastScreen": str, "timestamp": epoch-ms}.
    """
    model_config = ConfigDict(populate_by_name=True)

    last_screen: str = Field(
        ...,
        min_length=1,
        alias="lastScreen",
    )
    timestamp: int = Field(
        ...,
        ge=0,
        description="When the screen was shown (epoch milliseconds)"
    )


# =============================================================================
# SETTINGS
# =============================================================================

WEEKDAYS = (
    "monday", "tuesday", "wednesday", "thursday",
    "friday", "saturday", "sunday",
)


class NotificationSettings(BaseModel):
    """
    Per-user notification preferences.

    Stored documents may be partial (older app versions wrote fewer
    fields); loading merges them over these defaults.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    expense_reminders: bool = True
    insight_alerts: bool = True
    reminder_time: str = Field(default="09:00", description="HH:MM")
    reminder_days_before: int = Field(default=1, ge=0, le=30)
    weekly_insight_day: str = "sunday"
    weekly_insight_time: str = Field(default="18:00", description="HH:MM")
    weekly_planner_reminder: bool = True
    payday_reminder: bool = True
    weekly_digest_summary: bool = True
    milestone_notifications: bool = True

    @field_validator('reminder_time', 'weekly_insight_time')
    @classmethod
    def validate_clock_time(cls, v: str) -> str:
        """Accept only HH:MM on a 24h clock."""
        try:
            hour, minute = (int(part) for part in v.split(":"))
        except ValueError:
            raise ValueError(f"Expected HH:MM, got {v!r}")
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"Time out of range: {v!r}")
        return f"{hour:02d}:{minute:02d}"

    @field_validator('weekly_insight_day')
    @classmethod
    def validate_weekday(cls, v: str) -> str:
        day = v.lower()
        if day not in WEEKDAYS:
            raise ValueError(f"Unknown weekday: {v!r}")
        return day
