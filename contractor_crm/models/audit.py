"""
Audit Models for Contractor CRM

Every mutation of the ledger is logged for audit purposes.
This provides:
1. Traceability of who-changed-what in a project
2. A record of saves that did NOT reach storage
3. The ability to reconstruct a session after a failed reload

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Projects
    PROJECT_CREATED = "project_created"
    PROJECT_DELETED = "project_deleted"

    # Categories
    CATEGORY_CREATED = "category_created"
    CATEGORY_DELETED = "category_deleted"

    # Client payments
    PAYMENT_RECORDED = "payment_recorded"
    PAYMENT_DELETED = "payment_deleted"

    # Subcontractor expenses
    EXPENSE_RECORDED = "expense_recorded"
    EXPENSE_DELETED = "expense_deleted"

    # Persistence
    DOCUMENT_LOADED = "document_loaded"
    SAVE_FAILED = "save_failed"
    DELETE_FAILED = "delete_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'project', 'payment')"
    )
    entity_id: Optional[str] = None
    project_id: Optional[str] = Field(
        default=None,
        description="Project the entity belongs to"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "project_id": self.project_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         project_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.project_id or "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.project_created(project_id, name, client_name)
        event = AuditEventBuilder.save_failed("payment", payment_id, project_id, error)
    """

    @staticmethod
    def project_created(project_id: str, name: str, client_name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROJECT_CREATED,
            entity_type="project",
            entity_id=project_id,
            project_id=project_id,
            description=f"Project created: {name}",
            details={"name": name, "client_name": client_name},
            is_user_action=True,
        )

    @staticmethod
    def project_deleted(project_id: str, category_count: int, payment_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROJECT_DELETED,
            entity_type="project",
            entity_id=project_id,
            project_id=project_id,
            description="Project deleted with all categories and payments",
            details={
                "category_count": category_count,
                "payment_count": payment_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def category_created(
        category_id: str,
        project_id: str,
        name: str,
        mode: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_CREATED,
            entity_type="category",
            entity_id=category_id,
            project_id=project_id,
            description=f"Category created: {name} ({mode})",
            details={"name": name, "mode": mode},
            is_user_action=True,
        )

    @staticmethod
    def category_deleted(
        category_id: str,
        project_id: str,
        allocation_count: int,
        expense_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_DELETED,
            entity_type="category",
            entity_id=category_id,
            project_id=project_id,
            description="Category deleted with its allocations and expenses",
            details={
                "allocation_count": allocation_count,
                "expense_count": expense_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def payment_recorded(
        payment_id: str,
        project_id: str,
        total_amount: str,
        allocation_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_RECORDED,
            entity_type="payment",
            entity_id=payment_id,
            project_id=project_id,
            description=f"Client payment recorded: ${total_amount}",
            details={
                "total_amount": total_amount,
                "allocation_count": allocation_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def payment_deleted(
        payment_id: str,
        project_id: str,
        removed_allocations: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_DELETED,
            entity_type="payment",
            entity_id=payment_id,
            project_id=project_id,
            description="Client payment deleted",
            details={"removed_allocations": removed_allocations},
            is_user_action=True,
        )

    @staticmethod
    def expense_recorded(
        expense_id: str,
        project_id: str,
        category_id: str,
        amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_RECORDED,
            entity_type="expense",
            entity_id=expense_id,
            project_id=project_id,
            description=f"Expense recorded: ${amount}",
            details={"category_id": category_id, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(expense_id: str, project_id: str, category_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            project_id=project_id,
            description="Expense deleted",
            details={"category_id": category_id},
            is_user_action=True,
        )

    @staticmethod
    def document_loaded(project_count: int, orphaned_allocations: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_LOADED,
            severity=(
                AuditSeverity.WARNING if orphaned_allocations else AuditSeverity.INFO
            ),
            entity_type="document",
            description=f"Loaded {project_count} projects",
            details={
                "project_count": project_count,
                "orphaned_allocations": orphaned_allocations,
            },
        )

    @staticmethod
    def save_failed(
        entity_type: str,
        entity_id: str,
        project_id: Optional[str],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            project_id=project_id,
            description=f"{entity_type.capitalize()} kept in memory but not saved",
            error_message=error_message,
        )

    @staticmethod
    def delete_failed(
        entity_type: str,
        entity_id: str,
        project_id: Optional[str],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DELETE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            project_id=project_id,
            description=f"{entity_type.capitalize()} removed in memory but not in storage",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
