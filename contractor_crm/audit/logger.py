"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Traceability of every change to a project
2. A visible record of saves that never reached storage
3. Debugging capability

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
"""

import logging
from typing import Optional

import structlog

from contractor_crm.models.audit import AuditEvent, AuditEventBuilder
from contractor_crm.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structured logs to stderr at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Audit storage must not break a ledger mutation
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_project_created(self, project_id: str, name: str, client_name: str) -> None:
        await self.log(AuditEventBuilder.project_created(project_id, name, client_name))

    async def log_project_deleted(
        self,
        project_id: str,
        category_count: int,
        payment_count: int,
    ) -> None:
        await self.log(
            AuditEventBuilder.project_deleted(project_id, category_count, payment_count)
        )

    async def log_category_created(
        self,
        category_id: str,
        project_id: str,
        name: str,
        mode: str,
    ) -> None:
        await self.log(
            AuditEventBuilder.category_created(category_id, project_id, name, mode)
        )

    async def log_category_deleted(
        self,
        category_id: str,
        project_id: str,
        allocation_count: int,
        expense_count: int,
    ) -> None:
        await self.log(AuditEventBuilder.category_deleted(
            category_id, project_id, allocation_count, expense_count
        ))

    async def log_payment_recorded(
        self,
        payment_id: str,
        project_id: str,
        total_amount: str,
        allocation_count: int,
    ) -> None:
        await self.log(AuditEventBuilder.payment_recorded(
            payment_id, project_id, total_amount, allocation_count
        ))

    async def log_payment_deleted(
        self,
        payment_id: str,
        project_id: str,
        removed_allocations: int,
    ) -> None:
        await self.log(
            AuditEventBuilder.payment_deleted(payment_id, project_id, removed_allocations)
        )

    async def log_expense_recorded(
        self,
        expense_id: str,
        project_id: str,
        category_id: str,
        amount: str,
    ) -> None:
        await self.log(
            AuditEventBuilder.expense_recorded(expense_id, project_id, category_id, amount)
        )

    async def log_expense_deleted(
        self,
        expense_id: str,
        project_id: str,
        category_id: str,
    ) -> None:
        await self.log(AuditEventBuilder.expense_deleted(expense_id, project_id, category_id))

    async def log_document_loaded(self, project_count: int, orphaned_allocations: int) -> None:
        await self.log(
            AuditEventBuilder.document_loaded(project_count, orphaned_allocations)
        )

    async def log_save_failed(
        self,
        entity_type: str,
        entity_id: str,
        project_id: Optional[str],
        error_message: str,
    ) -> None:
        await self.log(
            AuditEventBuilder.save_failed(entity_type, entity_id, project_id, error_message)
        )

    async def log_delete_failed(
        self,
        entity_type: str,
        entity_id: str,
        project_id: Optional[str],
        error_message: str,
    ) -> None:
        await self.log(
            AuditEventBuilder.delete_failed(entity_type, entity_id, project_id, error_message)
        )

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(error_type, error_message, details))
