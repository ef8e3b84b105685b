"""
budgetkeep - Persistence Core

Per-user state for a personal budgeting app: tutorial progress,
notification preferences and navigation resume, kept on the device or
in a remote table depending on who the user is.

DESIGN PRINCIPLES:
1. One authoritative backend per identity
2. Reads degrade, writes fail loudly
3. Lifecycle edges instead of polling
4. Every persistence decision is auditable
"""

__version__ = "1.0.0"
__author__ = "budgetkeep Team"
