"""
Tests for the ledger mutation operations.

Storage is a JSON file under tmp_path unless a test needs a backend
that fails.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from contractor_crm.finance import UNKNOWN_CATEGORY, find_orphaned_allocations, payment_history
from contractor_crm.ledger import (
    CategoryNotFoundError,
    ConfirmationRequiredError,
    InvalidCategoryModeError,
    InvalidExpenseTypeError,
    LedgerService,
    ProjectNotFoundError,
    parse_amount,
)
from contractor_crm.models import (
    AllocationRequest,
    AuditEventType,
    CategoryMode,
    ExpenseType,
)

from tests.conftest import FailingLedgerStorage, SilentLedgerStorage


@pytest.fixture
def service(json_storage, audit_logger):
    return LedgerService(json_storage, audit_logger)


def _project_with_categories(service):
    """Project with an all-inclusive "Plumbing" and a separate "Framing"."""
    project, _ = asyncio.run(service.add_project("Kitchen", "Alvarez"))
    plumbing, _ = asyncio.run(service.add_category(
        project.id, "Plumbing", "all-inclusive", total_budget="30000", total_cost="22000"
    ))
    framing, _ = asyncio.run(service.add_category(
        project.id, "Framing", "separate",
        labor_budget="10000", labor_cost="6000", materials_budget="4000",
    ))
    return project, plumbing, framing


class TestParseAmount:
    """Tests for lenient amount parsing."""

    def test_parses_text_and_numbers(self):
        """Test parsing of text and numeric amounts."""
        assert parse_amount("1200") == Decimal("1200")
        assert parse_amount("1,200.50") == Decimal("1200.50")
        assert parse_amount("$950") == Decimal("950")
        assert parse_amount(12.5) == Decimal("12.5")
        assert parse_amount(Decimal("3")) == Decimal("3")

    def test_unparsable_is_zero(self):
        """Test that unparsable amounts become zero."""
        assert parse_amount("") == 0
        assert parse_amount(None) == 0
        assert parse_amount("abc") == 0
        assert parse_amount("NaN") == 0


class TestProjects:
    """Tests for project creation and deletion."""

    def test_add_project_persists(self, service, json_storage):
        """Test that a new project is saved to storage."""
        project, persisted = asyncio.run(service.add_project("Deck", "Kim"))
        assert persisted
        assert service.projects == [project]
        stored = asyncio.run(json_storage.get_projects())
        assert [p.id for p in stored] == [project.id]

    def test_newest_project_first(self, service):
        """Test that the newest project comes first."""
        first, _ = asyncio.run(service.add_project("Deck", "Kim"))
        second, _ = asyncio.run(service.add_project("Porch", "Lee"))
        assert [p.id for p in service.projects] == [second.id, first.id]

    def test_delete_requires_confirmation(self, service):
        """Test that deleting a project must be confirmed."""
        project, _ = asyncio.run(service.add_project("Deck", "Kim"))
        with pytest.raises(ConfirmationRequiredError):
            asyncio.run(service.delete_project(project.id))
        assert service.projects == [project]

    def test_delete_cascades(self, service, json_storage):
        """Test that deleting a project removes it from storage."""
        project, plumbing, _ = _project_with_categories(service)
        asyncio.run(service.add_payment(
            project.id, "1000", [{"category_id": plumbing.id, "amount": "1000"}],
            date(2024, 3, 1),
        ))
        assert asyncio.run(service.delete_project(project.id, confirmed=True))
        assert service.projects == []
        assert asyncio.run(json_storage.get_projects()) == []

    def test_unknown_project(self, service):
        """Test that an unknown project id raises."""
        with pytest.raises(ProjectNotFoundError):
            service.get_project("missing")
        with pytest.raises(ProjectNotFoundError):
            asyncio.run(service.add_category("missing", "X", total_budget=1, total_cost=1))


class TestCategories:
    """Tests for category creation and deletion."""

    def test_all_inclusive_only_sets_its_fields(self, service):
        """Test that an all-inclusive category ignores labor fields."""
        project, _ = asyncio.run(service.add_project("Deck", "Kim"))
        category, persisted = asyncio.run(service.add_category(
            project.id, "Boards", "all-inclusive",
            total_budget="5,000", total_cost="3000", labor_budget="999",
        ))
        assert persisted
        assert category.total_budget == Decimal("5000")
        assert category.labor_budget is None

    def test_separate_only_sets_its_fields(self, service):
        """Test that a separate category ignores total fields."""
        project, _ = asyncio.run(service.add_project("Deck", "Kim"))
        category, _ = asyncio.run(service.add_category(
            project.id, "Framing", CategoryMode.SEPARATE,
            labor_budget="1000", labor_cost="abc", total_budget="5",
        ))
        assert category.labor_cost == 0
        assert category.materials_budget == 0
        assert category.total_budget is None

    def test_invalid_mode(self, service):
        """Test that an unknown mode is rejected."""
        project, _ = asyncio.run(service.add_project("Deck", "Kim"))
        with pytest.raises(InvalidCategoryModeError):
            asyncio.run(service.add_category(project.id, "X", "hybrid"))
        assert project.categories == []

    def test_delete_requires_confirmation(self, service):
        """Test that deleting a category must be confirmed."""
        project, plumbing, _ = _project_with_categories(service)
        with pytest.raises(ConfirmationRequiredError):
            asyncio.run(service.delete_category(project.id, plumbing.id))
        assert len(project.categories) == 2

    def test_delete_keeps_payment_history_readable(self, service, json_storage):
        """Payments keep allocations to a deleted category; they show as Unknown."""
        project, plumbing, framing = _project_with_categories(service)
        asyncio.run(service.add_payment(
            project.id, "2000",
            [
                {"category_id": plumbing.id, "amount": "1000"},
                {"category_id": framing.id, "labor_amount": "600", "materials_amount": "400"},
            ],
            date(2024, 3, 1),
        ))

        assert asyncio.run(service.delete_category(project.id, framing.id, confirmed=True))

        assert [c.id for c in project.categories] == [plumbing.id]
        assert len(project.payments[0].allocations) == 2
        names = [line.category_name for line in payment_history(project)[0].lines]
        assert names == ["Plumbing", UNKNOWN_CATEGORY]

        stored = asyncio.run(json_storage.get_projects())[0]
        assert [c.id for c in stored.categories] == [plumbing.id]

    def test_delete_unknown_category(self, service):
        """Test that deleting an unknown category raises."""
        project, _ = asyncio.run(service.add_project("Deck", "Kim"))
        with pytest.raises(CategoryNotFoundError):
            asyncio.run(service.delete_category(project.id, "missing", confirmed=True))


class TestPayments:
    """Tests for recording and deleting client payments."""

    def test_allocations_copied_to_payment_and_categories(self, service):
        """Test that allocations land on the payment and its categories."""
        project, plumbing, framing = _project_with_categories(service)
        payment, persisted = asyncio.run(service.add_payment(
            project.id,
            "14000",
            [
                AllocationRequest(category_id=plumbing.id, amount=Decimal("10000")),
                AllocationRequest(
                    category_id=framing.id,
                    labor_amount=Decimal("3000"),
                    materials_amount=Decimal("1000"),
                ),
            ],
            date(2024, 3, 1),
            payment_method="zelle",
            reference="TX-9",
        ))

        assert persisted
        assert payment.reference == "TX-9"
        assert len(payment.allocations) == 2
        for embedded in payment.allocations:
            category = project.find_category(embedded.category_id)
            assert category.allocations == [embedded]
            assert embedded.payment_id == payment.id
            assert embedded.date == date(2024, 3, 1)

        separate = project.find_category(framing.id).allocations[0]
        assert separate.amount is None
        assert separate.labor_amount == Decimal("3000")
        inclusive = project.find_category(plumbing.id).allocations[0]
        assert inclusive.labor_amount is None

    def test_empty_allocations_dropped(self, service):
        """Test that empty allocation requests are dropped."""
        project, plumbing, framing = _project_with_categories(service)
        payment, _ = asyncio.run(service.add_payment(
            project.id,
            "500",
            [
                {"category_id": plumbing.id, "amount": "500"},
                {"category_id": framing.id, "labor_amount": "0"},
            ],
            date(2024, 3, 1),
        ))
        assert [a.category_id for a in payment.allocations] == [plumbing.id]
        assert project.find_category(framing.id).allocations == []

    def test_amount_on_separate_category_counts_as_labor(self, service, json_storage):
        """A plain amount sent to a labor/materials category is kept as labor."""
        project, _, framing = _project_with_categories(service)
        payment, _ = asyncio.run(service.add_payment(
            project.id, "500", [{"category_id": framing.id, "amount": "500"}],
            date(2024, 3, 1),
        ))

        embedded = payment.allocations[0]
        assert embedded.amount is None
        assert embedded.labor_amount == Decimal("500")
        assert embedded.materials_amount == Decimal("0")
        assert framing.allocations == [embedded]
        assert payment_history(project)[0].unallocated == 0

        stored = asyncio.run(json_storage.get_projects())[0]
        assert stored.find_category(framing.id).allocations == [embedded]

    def test_split_amounts_on_all_inclusive_category_are_summed(self, service):
        """Labor and materials sent to a single-budget category add up to its amount."""
        project, plumbing, _ = _project_with_categories(service)
        payment, _ = asyncio.run(service.add_payment(
            project.id,
            "700",
            [{"category_id": plumbing.id, "labor_amount": "400", "materials_amount": "300"}],
            date(2024, 3, 1),
        ))

        embedded = payment.allocations[0]
        assert embedded.amount == Decimal("700")
        assert embedded.labor_amount is None
        assert embedded.materials_amount is None
        assert plumbing.allocations == [embedded]

    def test_allocation_without_positive_amount_is_dropped(self, service, json_storage):
        """Session and storage agree when an allocation carries no money."""
        project, plumbing, framing = _project_with_categories(service)
        payment, _ = asyncio.run(service.add_payment(
            project.id,
            "300",
            [
                {"category_id": plumbing.id, "amount": "300"},
                {"category_id": framing.id, "amount": "-50"},
            ],
            date(2024, 3, 1),
        ))

        assert [a.category_id for a in payment.allocations] == [plumbing.id]
        assert framing.allocations == []
        stored = asyncio.run(json_storage.get_projects())[0]
        assert stored.payments[0].allocations == payment.allocations
        assert stored.find_category(framing.id).allocations == []

    def test_delete_removes_every_allocation(self, service, json_storage):
        """Test that deleting a payment removes all its allocations."""
        project, plumbing, framing = _project_with_categories(service)
        keep, _ = asyncio.run(service.add_payment(
            project.id, "100", [{"category_id": plumbing.id, "amount": "100"}],
            date(2024, 2, 1),
        ))
        drop, _ = asyncio.run(service.add_payment(
            project.id,
            "900",
            [
                {"category_id": plumbing.id, "amount": "500"},
                {"category_id": framing.id, "labor_amount": "400"},
            ],
            date(2024, 3, 1),
        ))

        assert asyncio.run(service.delete_payment(project.id, drop.id, confirmed=True))

        assert [p.id for p in project.payments] == [keep.id]
        for category in project.categories:
            assert all(a.payment_id != drop.id for a in category.allocations)
        assert find_orphaned_allocations(project) == []

        stored = asyncio.run(json_storage.get_projects())[0]
        assert [p.id for p in stored.payments] == [keep.id]
        assert find_orphaned_allocations(stored) == []
        assert len(stored.find_category(plumbing.id).allocations) == 1

    def test_delete_requires_confirmation(self, service):
        """Test that deleting a payment must be confirmed."""
        project, plumbing, _ = _project_with_categories(service)
        payment, _ = asyncio.run(service.add_payment(
            project.id, "100", [{"category_id": plumbing.id, "amount": "100"}],
            date(2024, 2, 1),
        ))
        with pytest.raises(ConfirmationRequiredError):
            asyncio.run(service.delete_payment(project.id, payment.id))
        assert project.payments == [payment]


class TestExpenses:
    """Tests for subcontractor expenses."""

    def test_type_kept_for_separate_category(self, service):
        """Test that a separate category keeps the expense type."""
        project, _, framing = _project_with_categories(service)
        expense, persisted = asyncio.run(service.add_expense(
            project.id, framing.id, "750", date(2024, 3, 2),
            description="Lumber", expense_type="materials",
        ))
        assert persisted
        assert expense.type == ExpenseType.MATERIALS
        assert framing.expenses == [expense]

    def test_type_dropped_for_all_inclusive_category(self, service):
        """Test that an all-inclusive category drops the expense type."""
        project, plumbing, _ = _project_with_categories(service)
        expense, _ = asyncio.run(service.add_expense(
            project.id, plumbing.id, "750", date(2024, 3, 2), expense_type="labor",
        ))
        assert expense.type is None

    def test_unknown_type_rejected(self, service):
        """A misspelled expense type raises a ledger error and records nothing."""
        project, _, framing = _project_with_categories(service)
        with pytest.raises(InvalidExpenseTypeError):
            asyncio.run(service.add_expense(
                project.id, framing.id, "750", date(2024, 3, 2), expense_type="labour",
            ))
        assert framing.expenses == []

    def test_delete_expense(self, service, json_storage):
        """Test that a deleted expense is removed from storage."""
        project, plumbing, _ = _project_with_categories(service)
        expense, _ = asyncio.run(service.add_expense(
            project.id, plumbing.id, "750", date(2024, 3, 2),
        ))
        assert asyncio.run(service.delete_expense(project.id, plumbing.id, expense.id))
        assert plumbing.expenses == []
        stored = asyncio.run(json_storage.get_projects())[0]
        assert stored.find_category(plumbing.id).expenses == []

    def test_unknown_category(self, service):
        """Test that an expense needs an existing category."""
        project, _ = asyncio.run(service.add_project("Deck", "Kim"))
        with pytest.raises(CategoryNotFoundError):
            asyncio.run(service.add_expense(project.id, "missing", "1", date(2024, 1, 1)))


class TestPersistenceFailures:
    """The session keeps working when storage does not."""

    def test_failed_save_is_reported_and_audited(self, audit_logger, audit_storage):
        """Test that a failed save is reported and audited."""
        service = LedgerService(FailingLedgerStorage(), audit_logger)
        project, persisted = asyncio.run(service.add_project("Deck", "Kim"))

        assert not persisted
        assert service.projects == [project]
        failures = audit_storage.of_type(AuditEventType.SAVE_FAILED)
        assert len(failures) == 1
        assert failures[0].entity_id == project.id
        assert failures[0].error_message == "backend unreachable"

    def test_unconfirmed_write_counts_as_failure(self, audit_logger, audit_storage):
        """Test that a write storage does not confirm counts as failed."""
        service = LedgerService(SilentLedgerStorage(), audit_logger)
        project, persisted = asyncio.run(service.add_project("Deck", "Kim"))
        category, persisted_category = asyncio.run(service.add_category(
            project.id, "Boards", total_budget="10", total_cost="5"
        ))
        assert not persisted
        assert not persisted_category
        assert project.categories == [category]

    def test_failed_delete_still_updates_session(self, audit_logger, audit_storage):
        """Test that a failed delete still updates the session."""
        service = LedgerService(FailingLedgerStorage(), audit_logger)
        project, _ = asyncio.run(service.add_project("Deck", "Kim"))
        assert not asyncio.run(service.delete_project(project.id, confirmed=True))
        assert service.projects == []
        assert audit_storage.of_type(AuditEventType.DELETE_FAILED)

    def test_failed_load_leaves_empty_session(self, audit_logger, audit_storage):
        """Test that a failed load leaves an empty session."""
        service = LedgerService(FailingLedgerStorage(), audit_logger)
        assert asyncio.run(service.load()) == []
        assert audit_storage.of_type(AuditEventType.SYSTEM_ERROR)
        assert audit_storage.of_type(AuditEventType.DOCUMENT_LOADED)


class TestLoad:
    """Tests for loading a session from storage."""

    def test_reload_restores_graph(self, service, json_storage, audit_logger):
        """Test that a fresh service reloads the saved graph."""
        project, plumbing, framing = _project_with_categories(service)
        asyncio.run(service.add_payment(
            project.id, "1000",
            [
                {"category_id": plumbing.id, "amount": "600"},
                {"category_id": framing.id, "labor_amount": "300", "materials_amount": "100"},
            ],
            date(2024, 3, 1),
        ))
        asyncio.run(service.add_expense(
            project.id, framing.id, "200", date(2024, 3, 2), expense_type="labor"
        ))

        fresh = LedgerService(json_storage, audit_logger)
        projects = asyncio.run(fresh.load())

        assert len(projects) == 1
        loaded = projects[0]
        assert loaded.find_category(framing.id).mode == CategoryMode.SEPARATE
        assert loaded.find_category(framing.id).expenses[0].type == ExpenseType.LABOR
        assert loaded.payments[0].allocated_total == Decimal("1000")
        assert find_orphaned_allocations(loaded) == []
