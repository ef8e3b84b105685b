"""Services package."""

from budgetkeep.services.entity_store import (
    EntityStore,
    RemoteRead,
    RemoteReadStatus,
)
from budgetkeep.services.notification_settings import NotificationSettingsStore
from budgetkeep.services.tutorial import (
    TUTORIAL_COLUMNS,
    TUTORIAL_STEPS,
    TutorialProgress,
    TutorialService,
    TutorialStep,
    create_tutorial_store,
)

__all__ = [
    # Entity store
    "EntityStore",
    "RemoteRead",
    "RemoteReadStatus",
    # Notification settings
    "NotificationSettingsStore",
    # Tutorial
    "TUTORIAL_COLUMNS",
    "TUTORIAL_STEPS",
    "TutorialProgress",
    "TutorialService",
    "TutorialStep",
    "create_tutorial_store",
]
