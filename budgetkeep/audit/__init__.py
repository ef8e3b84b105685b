"""Audit logging package."""

from budgetkeep.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
