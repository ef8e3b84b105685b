"""
Tutorial Status Service

Tracks whether a user still has to see the first-run tutorial, and
drives the step-by-step tutorial flow shown over the main tabs.

Built on EntityStore, so test accounts keep their status on the device
while registered users have it in the remote table (with the device
copy as a read fallback).
"""

from typing import Optional

import structlog
from pydantic import BaseModel

from budgetkeep.audit import AuditLogger
from budgetkeep.models.identity import Identity
from budgetkeep.models.records import TutorialStatus
from budgetkeep.services.entity_store import EntityStore
from budgetkeep.services.storage import (
    JsonCodec,
    LocalBackend,
    RemoteBackend,
    StorageDomain,
    WriteFailedError,
)


TUTORIAL_COLUMNS = [
    "user_id",
    "needs_tutorial",
    "tutorial_completed",
    "completed_at",
    "updated_at",
]

logger = structlog.get_logger(__name__)


def create_tutorial_store(
    local: LocalBackend,
    remote: RemoteBackend,
    codec: Optional[JsonCodec] = None,
    audit_logger: Optional[AuditLogger] = None,
    clock=None,
) -> EntityStore[TutorialStatus]:
    """Entity store for tutorial status records."""
    return EntityStore(
        TutorialStatus,
        StorageDomain.TUTORIAL_STATUS,
        local,
        remote,
        codec=codec,
        audit_logger=audit_logger,
        clock=clock,
    )


class TutorialService:
    """Tutorial status for one identity."""

    def __init__(self, identity: Identity, store: EntityStore[TutorialStatus]):
        self.identity = identity
        self._store = store

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    def default_status(self) -> TutorialStatus:
        return TutorialStatus(
            user_id=self.user_id,
            needs_tutorial=True,
            tutorial_completed=False,
        )

    async def get_status(self) -> Optional[TutorialStatus]:
        return await self._store.get_status(self.identity)

    async def ensure_status(self, default: Optional[TutorialStatus] = None) -> TutorialStatus:
        return await self._store.ensure_status(self.identity, default or self.default_status())

    async def mark_needs_tutorial(self) -> TutorialStatus:
        """Ask for the tutorial to be shown again."""
        return await self._store.save(
            self.identity,
            TutorialStatus(
                user_id=self.user_id,
                needs_tutorial=True,
                tutorial_completed=False,
                completed_at=None,
            ),
        )

    async def mark_completed(self) -> TutorialStatus:
        """Record that the user finished (or skipped) the tutorial."""
        return await self._store.save(
            self.identity,
            TutorialStatus(
                user_id=self.user_id,
                needs_tutorial=False,
                tutorial_completed=True,
                completed_at=self._store.now(),
            ),
        )


# =============================================================================
# TUTORIAL FLOW
# =============================================================================

class TutorialStep(BaseModel):
    """One tooltip of the tutorial walkthrough."""

    id: str
    tab: str
    title: str
    description: str
    position: str = "bottom"


TUTORIAL_STEPS = [
    TutorialStep(
        id="overview",
        tab="index",
        title="Overview Dashboard",
        description="This is your main dashboard where you can see your financial overview, "
                    "weekly breakdown, and recent transactions.",
    ),
    TutorialStep(
        id="budget",
        tab="budget",
        title="Budget Tracking",
        description="Track your spending by category and see how much you have left in each budget category.",
    ),
    TutorialStep(
        id="banking",
        tab="banking",
        title="Bank Accounts",
        description="Connect your bank accounts to automatically sync transactions and balances.",
    ),
    TutorialStep(
        id="insights",
        tab="insights",
        title="Insights & Challenges",
        description="View your financial insights, complete challenges, and earn points "
                    "to level up your financial health.",
    ),
    TutorialStep(
        id="profile",
        tab="profile",
        title="Profile & Settings",
        description="Manage your profile, view badges and achievements, and adjust app settings.",
    ),
]


class TutorialProgress:
    """
    In-memory state of the tutorial walkthrough, hydrated from and
    persisted through a TutorialService.

    Write failures from complete()/restart() propagate - the UI must
    tell the user the tutorial state was not saved.
    """

    def __init__(self, service: TutorialService, steps: Optional[list[TutorialStep]] = None):
        self._service = service
        self.steps = list(steps or TUTORIAL_STEPS)
        self.is_active = False
        self.has_completed = False
        self.current_step = 0
        self.is_loading = False

    def _hydrate(self, status: TutorialStatus) -> None:
        self.is_active = status.should_start
        self.has_completed = status.tutorial_completed
        self.current_step = 0

    async def load(self) -> None:
        """Load (or create) the user's status and decide whether to start."""
        self.is_loading = True
        try:
            status = await self._service.ensure_status()
        except WriteFailedError as e:
            logger.error("tutorial_status_load_failed", user_id=self._service.user_id, error=str(e))
            self.is_active = False
            self.has_completed = False
            self.current_step = 0
        else:
            self._hydrate(status)
        finally:
            self.is_loading = False

    @property
    def step(self) -> Optional[TutorialStep]:
        if not self.is_active:
            return None
        return self.steps[self.current_step]

    async def start(self) -> None:
        """Persist "needs tutorial" and show the first step."""
        self._hydrate(await self._service.mark_needs_tutorial())

    async def restart(self) -> None:
        await self.start()

    async def next_step(self) -> None:
        if self.current_step < len(self.steps) - 1:
            self.current_step += 1
        else:
            await self.complete()

    def previous_step(self) -> None:
        if self.current_step > 0:
            self.current_step -= 1

    async def complete(self) -> None:
        await self._service.mark_completed()
        self.is_active = False
        self.current_step = 0
        self.has_completed = True

    async def skip(self) -> None:
        await self.complete()
