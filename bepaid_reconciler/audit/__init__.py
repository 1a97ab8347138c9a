"""Audit logging package."""

from bepaid_reconciler.audit.logger import AuditLogger, create_correlation_id

__all__ = ["AuditLogger", "create_correlation_id"]
