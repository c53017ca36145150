"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep a local JSON document as the fallback store
2. Use a remote spreadsheet when one is configured
3. Use throwaway storage in tests
4. Keep the ledger logic decoupled from storage implementation

The interface mirrors the four entity kinds (project, category,
payment with its allocations, expense). Every operation is fallible:
a missing parent raises NotFoundError, an unreachable backend raises
ConnectionError, and deletes of unknown ids return False.
"""

from abc import ABC, abstractmethod
from typing import Optional

from contractor_crm.models.audit import AuditEvent
from contractor_crm.models.ledger import (
    Allocation,
    Category,
    Expense,
    Payment,
    Project,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (JSON document, Google Sheets, ...)
    must implement these methods.
    """

    @abstractmethod
    async def get_projects(self) -> list[Project]:
        """
        Load every project, newest first.

        Categories (with allocations and expenses) and payments are
        attached eagerly.
        """
        pass

    @abstractmethod
    async def save_project(self, project: Project) -> Optional[Project]:
        """
        Insert or update a project, keyed by its id.

        Returns:
            The saved project

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def delete_project(self, project_id: str) -> bool:
        """
        Delete a project and everything it owns.

        Returns:
            True if deleted, False if no such project
        """
        pass

    @abstractmethod
    async def save_category(self, project_id: str, category: Category) -> Optional[Category]:
        """
        Insert or update a category of a project.

        Raises:
            NotFoundError: If the project doesn't exist
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def delete_category(self, category_id: str) -> bool:
        """Delete a category with its allocations and expenses."""
        pass

    @abstractmethod
    async def save_payment(
        self,
        project_id: str,
        payment: Payment,
        allocations: list[Allocation],
    ) -> Optional[Payment]:
        """
        Insert or update a payment and store its allocation rows.

        Only allocations with a positive amount in any of their amount
        fields are stored.

        Raises:
            NotFoundError: If the project doesn't exist
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def delete_payment(self, payment_id: str) -> bool:
        """Delete a payment; its allocations go with it."""
        pass

    @abstractmethod
    async def save_expense(self, category_id: str, expense: Expense) -> Optional[Expense]:
        """
        Insert or update an expense of a category.

        Raises:
            NotFoundError: If the category doesn't exist
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: str) -> bool:
        """Delete an expense by ID."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_project(self, project_id: str) -> list[AuditEvent]:
        """All events of one project in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """The most recent audit events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
