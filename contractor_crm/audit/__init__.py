"""Audit logging package."""

from contractor_crm.audit.logger import AuditLogger, configure_logging

__all__ = ["AuditLogger", "configure_logging"]
