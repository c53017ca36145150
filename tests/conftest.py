"""Shared fixtures: throwaway storage backends and sample projects."""

from datetime import date
from decimal import Decimal

import pytest

from contractor_crm.audit import AuditLogger
from contractor_crm.models.ledger import (
    Allocation,
    Category,
    CategoryMode,
    Expense,
    ExpenseType,
    Payment,
    Project,
)
from contractor_crm.services.storage import (
    AuditStorageInterface,
    JsonFileLedgerStorage,
    LedgerStorageInterface,
    StorageError,
)


class RecordingAuditStorage(AuditStorageInterface):
    """Keeps audit events in a list."""

    def __init__(self):
        self.events = []

    async def append_event(self, event):
        self.events.append(event)
        return True

    async def get_events_by_project(self, project_id):
        return [e for e in self.events if e.project_id == project_id]

    async def get_recent_events(self, limit=100):
        return list(reversed(self.events))[:limit]

    def of_type(self, event_type):
        return [e for e in self.events if e.event_type == event_type]


class FailingLedgerStorage(LedgerStorageInterface):
    """Every call fails as if the backend were unreachable."""

    def _fail(self):
        raise StorageError("backend unreachable")

    async def get_projects(self):
        self._fail()

    async def save_project(self, project):
        self._fail()

    async def delete_project(self, project_id):
        self._fail()

    async def save_category(self, project_id, category):
        self._fail()

    async def delete_category(self, category_id):
        self._fail()

    async def save_payment(self, project_id, payment, allocations):
        self._fail()

    async def delete_payment(self, payment_id):
        self._fail()

    async def save_expense(self, category_id, expense):
        self._fail()

    async def delete_expense(self, expense_id):
        self._fail()


class SilentLedgerStorage(LedgerStorageInterface):
    """Never raises but never confirms a write either."""

    async def get_projects(self):
        return []

    async def save_project(self, project):
        return None

    async def delete_project(self, project_id):
        return False

    async def save_category(self, project_id, category):
        return None

    async def delete_category(self, category_id):
        return False

    async def save_payment(self, project_id, payment, allocations):
        return None

    async def delete_payment(self, payment_id):
        return False

    async def save_expense(self, category_id, expense):
        return None

    async def delete_expense(self, expense_id):
        return False


@pytest.fixture
def audit_storage():
    return RecordingAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def json_storage(tmp_path):
    return JsonFileLedgerStorage(tmp_path / "ledger.json")


@pytest.fixture
def kitchen_project():
    """
    One project with an all-inclusive and a separate category,
    one payment split across both, and expenses in each.
    """
    plumbing = Category(
        id="cat-plumbing",
        name="Plumbing",
        mode=CategoryMode.ALL_INCLUSIVE,
        total_budget=Decimal("30000"),
        total_cost=Decimal("22000"),
    )
    framing = Category(
        id="cat-framing",
        name="Framing",
        mode=CategoryMode.SEPARATE,
        labor_budget=Decimal("10000"),
        labor_cost=Decimal("6000"),
        materials_budget=Decimal("4000"),
    )
    payment = Payment(
        id="pay-1",
        total_amount=Decimal("14000"),
        date=date(2024, 3, 1),
        reference="1042",
        allocations=[
            Allocation(
                payment_id="pay-1",
                category_id="cat-plumbing",
                amount=Decimal("10000"),
                date=date(2024, 3, 1),
            ),
            Allocation(
                payment_id="pay-1",
                category_id="cat-framing",
                labor_amount=Decimal("3000"),
                materials_amount=Decimal("1000"),
                date=date(2024, 3, 1),
            ),
        ],
    )
    plumbing.allocations.append(payment.allocations[0].model_copy())
    framing.allocations.append(payment.allocations[1].model_copy())
    plumbing.expenses.append(
        Expense(id="exp-1", amount=Decimal("5000"), date=date(2024, 3, 5),
                description="Rough-in")
    )
    framing.expenses.append(
        Expense(id="exp-2", amount=Decimal("2000"), date=date(2024, 3, 6),
                description="Crew", type=ExpenseType.LABOR)
    )
    return Project(
        id="proj-1",
        name="Kitchen remodel",
        client_name="Alvarez",
        categories=[plumbing, framing],
        payments=[payment],
    )
