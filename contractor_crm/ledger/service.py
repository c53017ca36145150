"""
Ledger Mutation Operations

This module owns the in-memory project graph and every operation that
changes it:
1. Projects: add / delete (cascades to everything the project owns)
2. Categories: add / delete (cascades to allocations and expenses)
3. Payments: record / delete (keeps both allocation copies in sync)
4. Expenses: add / delete

DESIGN DECISION: Mutations are optimistic. Each one awaits its storage
call, then updates the in-memory graph whatever the outcome. A failed
save is logged and audited and reported back as `persisted=False`; the
session stays correct in memory but will not survive a reload.

Destructive operations (delete project / category / payment) refuse to
run without explicit confirmation.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Iterable, Optional, Union

import structlog

from contractor_crm.audit import AuditLogger, configure_logging
from contractor_crm.config import StorageBackend, get_settings
from contractor_crm.finance import find_orphaned_allocations
from contractor_crm.models.ledger import (
    Allocation,
    AllocationRequest,
    Category,
    CategoryMode,
    Expense,
    ExpenseType,
    Payment,
    PaymentMethod,
    Project,
    new_id,
)
from contractor_crm.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    JsonFileLedgerStorage,
    LedgerStorageInterface,
    StorageError,
)


ZERO = Decimal("0")


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class ProjectNotFoundError(LedgerError):
    """No project with the given id in the current session."""
    pass


class CategoryNotFoundError(LedgerError):
    """No category with the given id in the project."""
    pass


class InvalidCategoryModeError(LedgerError, ValueError):
    """Category mode is neither all-inclusive nor separate."""
    pass


class InvalidExpenseTypeError(LedgerError, ValueError):
    """Expense type is neither labor nor materials."""
    pass


class ConfirmationRequiredError(LedgerError):
    """A destructive operation was invoked without confirmation."""
    pass


def parse_amount(value: Any) -> Decimal:
    """
    Parse a textual or numeric amount.

    Accepts "1200", "1,200.50", "$950" and numbers. Empty or unparsable
    input is 0.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    else:
        text = str(value).strip().replace(",", "").replace("$", "")
        if not text:
            return ZERO
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return ZERO
    return amount if amount.is_finite() else ZERO


class LedgerService:
    """
    The single writer of the project graph.

    One mutation runs to completion before the next; nothing here is
    safe to share between concurrent editors.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._projects: list[Project] = []
        self._logger = structlog.get_logger(__name__)

    @property
    def projects(self) -> list[Project]:
        return self._projects

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_project(self, project_id: str) -> Project:
        for project in self._projects:
            if project.id == project_id:
                return project
        raise ProjectNotFoundError(f"Project not found: {project_id}")

    def _get_category(self, project: Project, category_id: str) -> Category:
        category = project.find_category(category_id)
        if category is None:
            raise CategoryNotFoundError(
                f"Category {category_id} not found in project {project.id}"
            )
        return category

    @staticmethod
    def _require_confirmation(confirmed: bool, what: str) -> None:
        if not confirmed:
            raise ConfirmationRequiredError(
                f"Deleting a {what} cannot be undone and must be confirmed"
            )

    # -------------------------------------------------------------------------
    # Persistence policy
    # -------------------------------------------------------------------------

    async def _persist(
        self,
        call: Awaitable[Any],
        entity_type: str,
        entity_id: str,
        project_id: Optional[str],
        deleting: bool = False,
    ) -> bool:
        """
        Await a storage call and report whether it durably succeeded.

        Storage errors never propagate: they are logged, audited and
        turned into False.
        """
        try:
            result = await call
        except StorageError as e:
            error_message = str(e)
        else:
            if result is not None and result is not False:
                return True
            error_message = "storage did not confirm the operation"

        self._logger.error(
            "persistence_failed",
            operation="delete" if deleting else "save",
            entity_type=entity_type,
            entity_id=entity_id,
            project_id=project_id,
            error=error_message,
        )
        if deleting:
            await self._audit_logger.log_delete_failed(
                entity_type, entity_id, project_id, error_message
            )
        else:
            await self._audit_logger.log_save_failed(
                entity_type, entity_id, project_id, error_message
            )
        return False

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load(self) -> list[Project]:
        """
        Load all projects from storage into the session.

        A storage failure leaves the session empty rather than raising.
        """
        try:
            projects = await self._storage.get_projects()
        except StorageError as e:
            self._logger.error("load_failed", error=str(e))
            await self._audit_logger.log_error("load_failed", str(e))
            projects = []

        self._projects = list(projects)
        orphaned = sum(len(find_orphaned_allocations(p)) for p in self._projects)
        await self._audit_logger.log_document_loaded(len(self._projects), orphaned)
        return self._projects

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    async def add_project(self, name: str, client_name: str) -> tuple[Project, bool]:
        """
        Create an empty project.

        Returns:
            (project, persisted)
        """
        project = Project(name=name, client_name=client_name)
        persisted = await self._persist(
            self._storage.save_project(project), "project", project.id, project.id
        )
        self._projects.insert(0, project)
        await self._audit_logger.log_project_created(project.id, name, client_name)
        return project, persisted

    async def delete_project(self, project_id: str, confirmed: bool = False) -> bool:
        """
        Delete a project with all its categories, payments, allocations
        and expenses.

        Returns:
            Whether storage confirmed the delete
        """
        self._require_confirmation(confirmed, "project")
        project = self.get_project(project_id)

        persisted = await self._persist(
            self._storage.delete_project(project_id),
            "project", project_id, project_id, deleting=True,
        )
        self._projects = [p for p in self._projects if p.id != project_id]
        await self._audit_logger.log_project_deleted(
            project_id, len(project.categories), len(project.payments)
        )
        return persisted

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def add_category(
        self,
        project_id: str,
        name: str,
        mode: Union[CategoryMode, str] = CategoryMode.ALL_INCLUSIVE,
        total_budget: Any = None,
        total_cost: Any = None,
        labor_budget: Any = None,
        labor_cost: Any = None,
        materials_budget: Any = None,
    ) -> tuple[Category, bool]:
        """
        Add a cost category.

        Only the amounts of the chosen mode are used; the other group is
        stored as null. Amounts may be text, unparsable text counts as 0.

        Returns:
            (category, persisted)
        """
        try:
            mode = CategoryMode(mode)
        except ValueError:
            raise InvalidCategoryModeError(
                f"Unknown category mode: {mode!r} "
                f"(expected one of {[m.value for m in CategoryMode]})"
            )
        project = self.get_project(project_id)

        if mode == CategoryMode.ALL_INCLUSIVE:
            category = Category(
                name=name,
                mode=mode,
                total_budget=parse_amount(total_budget),
                total_cost=parse_amount(total_cost),
            )
        else:
            category = Category(
                name=name,
                mode=mode,
                labor_budget=parse_amount(labor_budget),
                labor_cost=parse_amount(labor_cost),
                materials_budget=parse_amount(materials_budget),
            )

        persisted = await self._persist(
            self._storage.save_category(project_id, category),
            "category", category.id, project_id,
        )
        project.categories.append(category)
        await self._audit_logger.log_category_created(
            category.id, project_id, name, mode.value
        )
        return category, persisted

    async def delete_category(
        self,
        project_id: str,
        category_id: str,
        confirmed: bool = False,
    ) -> bool:
        """
        Delete a category with its allocations and expenses.

        Payments keep their embedded allocation records for this
        category; reports show them under "Unknown".
        """
        self._require_confirmation(confirmed, "category")
        project = self.get_project(project_id)
        category = self._get_category(project, category_id)

        persisted = await self._persist(
            self._storage.delete_category(category_id),
            "category", category_id, project_id, deleting=True,
        )
        project.categories = [c for c in project.categories if c.id != category_id]
        await self._audit_logger.log_category_deleted(
            category_id, project_id, len(category.allocations), len(category.expenses)
        )
        return persisted

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    @staticmethod
    def _build_allocation(
        request: AllocationRequest,
        category: Optional[Category],
        payment_id: str,
        payment_date: date,
    ) -> Allocation:
        """
        Shape an allocation to the mode of its target category.

        Money entered in a field the mode does not use is moved, never
        dropped: a plain `amount` on a SEPARATE category counts as labor,
        labor and materials on an ALL_INCLUSIVE category add to `amount`.
        """
        amount = request.amount or ZERO
        labor = request.labor_amount or ZERO
        materials = request.materials_amount or ZERO

        if category is not None and category.mode == CategoryMode.SEPARATE:
            amounts = {
                "amount": None,
                "labor_amount": labor + amount,
                "materials_amount": materials,
            }
        elif category is not None:
            amounts = {
                "amount": amount + labor + materials,
                "labor_amount": None,
                "materials_amount": None,
            }
        else:
            amounts = {
                "amount": request.amount,
                "labor_amount": request.labor_amount,
                "materials_amount": request.materials_amount,
            }
        return Allocation(
            payment_id=payment_id,
            category_id=request.category_id,
            date=payment_date,
            **amounts,
        )

    async def add_payment(
        self,
        project_id: str,
        total_amount: Any,
        allocations: Iterable[Union[AllocationRequest, dict]],
        payment_date: date,
        payment_method: Union[PaymentMethod, str] = PaymentMethod.CHECK,
        reference: str = "",
        notes: Optional[str] = None,
    ) -> tuple[Payment, bool]:
        """
        Record a client payment and distribute it across categories.

        Requests whose amounts are all zero or absent are dropped, as is
        any allocation left without a positive amount once shaped to its
        category. The remaining allocations are embedded in the payment AND
        appended to each target category, as identical copies.

        Returns:
            (payment, persisted)
        """
        project = self.get_project(project_id)
        requests = [
            r if isinstance(r, AllocationRequest) else AllocationRequest.model_validate(r)
            for r in allocations
        ]

        payment_id = new_id()
        built = (
            self._build_allocation(
                request,
                project.find_category(request.category_id),
                payment_id,
                payment_date,
            )
            for request in requests
            if not request.is_empty
        )
        records = [record for record in built if record.has_positive_amount]

        payment = Payment(
            id=payment_id,
            payment_method=PaymentMethod(payment_method),
            reference=reference or "",
            total_amount=parse_amount(total_amount),
            date=payment_date,
            notes=notes or None,
            allocations=records,
        )

        persisted = await self._persist(
            self._storage.save_payment(project_id, payment, records),
            "payment", payment.id, project_id,
        )

        project.payments.append(payment)
        for record in records:
            category = project.find_category(record.category_id)
            if category is not None:
                category.allocations.append(record.model_copy())

        await self._audit_logger.log_payment_recorded(
            payment.id, project_id, str(payment.total_amount), len(records)
        )
        return payment, persisted

    async def delete_payment(
        self,
        project_id: str,
        payment_id: str,
        confirmed: bool = False,
    ) -> bool:
        """
        Delete a payment and every allocation that references it.

        Afterwards no category allocation points at this payment.
        """
        self._require_confirmation(confirmed, "payment")
        project = self.get_project(project_id)

        persisted = await self._persist(
            self._storage.delete_payment(payment_id),
            "payment", payment_id, project_id, deleting=True,
        )

        project.payments = [p for p in project.payments if p.id != payment_id]
        removed = 0
        for category in project.categories:
            kept = [a for a in category.allocations if a.payment_id != payment_id]
            removed += len(category.allocations) - len(kept)
            category.allocations = kept

        await self._audit_logger.log_payment_deleted(payment_id, project_id, removed)
        return persisted

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def add_expense(
        self,
        project_id: str,
        category_id: str,
        amount: Any,
        expense_date: date,
        description: str = "",
        expense_type: Union[ExpenseType, str, None] = None,
        payment_method: Union[PaymentMethod, str, None] = None,
        reference: Optional[str] = None,
    ) -> tuple[Expense, bool]:
        """
        Record money paid to a subcontractor or supplier.

        `expense_type` is kept only for SEPARATE categories.

        Returns:
            (expense, persisted)
        """
        project = self.get_project(project_id)
        category = self._get_category(project, category_id)

        if expense_type:
            try:
                expense_type = ExpenseType(expense_type)
            except ValueError:
                raise InvalidExpenseTypeError(
                    f"Unknown expense type: {expense_type!r} "
                    f"(expected one of {[t.value for t in ExpenseType]})"
                )
        if category.mode != CategoryMode.SEPARATE:
            expense_type = None

        expense = Expense(
            amount=parse_amount(amount),
            date=expense_date,
            description=description,
            type=expense_type,
            payment_method=PaymentMethod(payment_method) if payment_method else None,
            reference=reference or None,
        )

        persisted = await self._persist(
            self._storage.save_expense(category_id, expense),
            "expense", expense.id, project_id,
        )
        category.expenses.append(expense)
        await self._audit_logger.log_expense_recorded(
            expense.id, project_id, category_id, str(expense.amount)
        )
        return expense, persisted

    async def delete_expense(
        self,
        project_id: str,
        category_id: str,
        expense_id: str,
    ) -> bool:
        """Remove an expense from its category."""
        project = self.get_project(project_id)
        category = self._get_category(project, category_id)

        persisted = await self._persist(
            self._storage.delete_expense(expense_id),
            "expense", expense_id, project_id, deleting=True,
        )
        category.expenses = [e for e in category.expenses if e.id != expense_id]
        await self._audit_logger.log_expense_deleted(expense_id, project_id, category_id)
        return persisted


def create_app_components() -> tuple[LedgerService, LedgerStorageInterface]:
    """
    Factory function to create all application components from settings.

    Returns:
        (ledger_service, ledger_storage)
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    storage_settings = settings.storage
    if storage_settings.backend == StorageBackend.GOOGLE_SHEETS:
        sheets_client = GoogleSheetsClient(settings.google_sheets)
        storage: LedgerStorageInterface = GoogleSheetsLedgerStorage(sheets_client)
        audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
    else:
        storage = JsonFileLedgerStorage(storage_settings.data_file)
        audit_logger = AuditLogger()  # Local-only logging

    return LedgerService(storage, audit_logger), storage
