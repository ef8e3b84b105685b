"""Lifecycle-driven reconciliation and expiry."""

from budgetkeep.lifecycle.app_state import AppState, AppStateMonitor
from budgetkeep.lifecycle.expiring_cache import (
    DEFAULT_QUICK_REOPEN_WINDOW,
    CacheState,
    LifecycleExpiringCache,
    NavigationResumeCache,
)
from budgetkeep.lifecycle.staleness import StalenessDetector

__all__ = [
    "AppState",
    "AppStateMonitor",
    "CacheState",
    "DEFAULT_QUICK_REOPEN_WINDOW",
    "LifecycleExpiringCache",
    "NavigationResumeCache",
    "StalenessDetector",
]
