"""
Storage Key Namespace

Centralizes storage key generation so every feature writes under its own
namespaced key and no two features (or users) can ever share one.

Key format for user-scoped state:  "<domain-prefix>_<user_id>"
Key format for device-wide flags:  "@budgetkeep:<name>"

DESIGN DECISION: No domain prefix followed by "_" is a prefix of another
domain's prefix. That makes build_key injective over domain x user_id
and lets parse_key recover both halves from any user-scoped key.
"""

from enum import Enum
from typing import Optional


COMMON_PREFIX = "@budgetkeep:"
SEPARATOR = "_"


class StorageDomain(str, Enum):
    """
    User-scoped storage domains.

    The value is the key prefix. Versioned prefixes (v2) are the current
    layout; older unversioned layouts are not read.
    """
    TUTORIAL_STATUS = "@budgetkeep:tutorial_status"
    NOTIFICATION_SETTINGS = "notification_settings"

    # Finance
    FINANCE_TRANSACTIONS = "finance_transactions_v2"
    FINANCE_BUDGET_GOALS = "finance_budget_goals_v2"
    FINANCE_LAST_BACKUP = "finance_last_backup_v2"
    FINANCE_MILESTONES = "finance_milestones_v2"
    FINANCE_PLANNING_STREAK = "finance_planning_streak_v2"

    # Bank connections
    PLAID_ACCOUNTS = "plaid_accounts"
    PLAID_TRANSACTIONS = "plaid_transactions"
    PLAID_LAST_SYNC = "plaid_last_sync"

    # Preferences
    USER_PREFERENCES = "settings_user_preferences_v2"
    SAVINGS_GOALS = "savings_goals"

    @property
    def prefix(self) -> str:
        return self.value + SEPARATOR


class CommonKey(str, Enum):
    """Device-wide keys that are not scoped to a user."""
    SESSION = COMMON_PREFIX + "supabase_session"
    ONBOARDING_COMPLETED = COMMON_PREFIX + "onboarding_completed"
    NAVIGATION_STATE = COMMON_PREFIX + "navigation_state"


SETUP_COMPLETED_PREFIX = COMMON_PREFIX + "setup_completed_"


def build_key(domain: StorageDomain, user_id: str) -> str:
    """
    Derive the storage key for a user's state in one domain.

    Pure and total: same inputs, same key, no I/O, never raises
    for a valid domain.
    """
    return f"{domain.prefix}{user_id}"


def parse_key(key: str) -> Optional[tuple[StorageDomain, str]]:
    """
    Recover (domain, user_id) from a user-scoped key.

    Returns None for common keys and foreign keys.
    """
    for domain in StorageDomain:
        if key.startswith(domain.prefix):
            return domain, key[len(domain.prefix):]
    return None


def setup_completed_key(user_id: str) -> str:
    """Per-user "finished setup" flag kept alongside the device-wide keys."""
    return f"{SETUP_COMPLETED_PREFIX}{user_id}"


def keys_for_user(keys: list[str], user_id: str) -> list[str]:
    """Filter a key listing down to the user-scoped keys owned by user_id."""
    owned = []
    for key in keys:
        parsed = parse_key(key)
        if parsed is not None and parsed[1] == user_id:
            owned.append(key)
        elif key == setup_completed_key(user_id):
            owned.append(key)
    return owned


def keys_for_domain(keys: list[str], domain: StorageDomain) -> list[str]:
    """Filter a key listing down to one domain."""
    return [key for key in keys if key.startswith(domain.prefix)]


def _check_prefix_free() -> None:
    prefixes = [domain.prefix for domain in StorageDomain]
    for a in prefixes:
        for b in prefixes:
            if a != b and b.startswith(a):
                raise RuntimeError(f"Storage prefix {a!r} shadows {b!r}")


_check_prefix_free()
