"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the remote storage backend because:
1. The contractor can open and read the ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- One worksheet per entity kind stands in for database tables
- No transactions and no foreign keys, so cascading deletes are done
  here, child rows first
- Limited query capabilities (we filter in Python)

A payment keeps its embedded allocation list as a JSON column; the
Allocations worksheet holds the per-category copies.
"""

import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from contractor_crm.config import GoogleSheetsSettings, get_settings
from contractor_crm.models.audit import AuditEvent, AuditEventType, AuditSeverity
from contractor_crm.models.ledger import (
    Allocation,
    Category,
    CategoryMode,
    Expense,
    ExpenseType,
    Payment,
    PaymentMethod,
    Project,
)
from contractor_crm.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column mappings, one worksheet per entity kind
PROJECT_COLUMNS = ["id", "name", "client_name", "created_at"]

CATEGORY_COLUMNS = [
    "id",
    "project_id",
    "name",
    "mode",
    "total_budget",
    "total_cost",
    "labor_budget",
    "labor_cost",
    "materials_budget",
]

ALLOCATION_COLUMNS = [
    "payment_id",
    "category_id",
    "amount",
    "labor_amount",
    "materials_amount",
    "date",
]

PAYMENT_COLUMNS = [
    "id",
    "project_id",
    "payment_method",
    "reference",
    "total_amount",
    "date",
    "notes",
    "allocations_json",
]

EXPENSE_COLUMNS = [
    "id",
    "category_id",
    "amount",
    "date",
    "description",
    "type",
    "payment_method",
    "reference",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "project_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

SHEET_COLUMNS = {
    "projects": PROJECT_COLUMNS,
    "categories": CATEGORY_COLUMNS,
    "allocations": ALLOCATION_COLUMNS,
    "payments": PAYMENT_COLUMNS,
    "expenses": EXPENSE_COLUMNS,
    "audit": AUDIT_COLUMNS,
}

sheets_retry = retry(
    retry=retry_if_not_exception_type(NotFoundError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _money(value: Optional[Decimal]) -> str:
    return "" if value is None else str(value)


def _parse_money(value: str) -> Optional[Decimal]:
    if not value:
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        raise ValueError(f"Not an amount: {value!r}")


def _parse_date(value: str) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _cell(row: list, index: int) -> str:
    """Cell value, tolerating short rows."""
    try:
        return row[index] or ""
    except IndexError:
        return ""


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and lazily creates missing worksheets.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @sheets_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _sheet_name(self, kind: str) -> str:
        return getattr(self._settings, f"{kind}_sheet_name")

    def get_sheet(self, kind: str) -> gspread.Worksheet:
        """Get or create the worksheet for an entity kind."""
        spreadsheet = self.get_spreadsheet()
        columns = SHEET_COLUMNS[kind]
        try:
            sheet = spreadsheet.worksheet(self._sheet_name(kind))
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=self._sheet_name(kind),
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


# =============================================================================
# ROW CONVERSION
# =============================================================================

def project_to_row(project: Project) -> list:
    return [
        project.id,
        project.name,
        project.client_name,
        project.created_at.isoformat(),
    ]


def row_to_project(row: list) -> Project:
    return Project(
        id=_cell(row, 0),
        name=_cell(row, 1),
        client_name=_cell(row, 2),
        created_at=datetime.fromisoformat(_cell(row, 3)),
    )


def category_to_row(project_id: str, category: Category) -> list:
    return [
        category.id,
        project_id,
        category.name,
        category.mode.value,
        _money(category.total_budget),
        _money(category.total_cost),
        _money(category.labor_budget),
        _money(category.labor_cost),
        _money(category.materials_budget),
    ]


def row_to_category(row: list) -> Category:
    return Category(
        id=_cell(row, 0),
        name=_cell(row, 2),
        mode=CategoryMode(_cell(row, 3) or CategoryMode.ALL_INCLUSIVE.value),
        total_budget=_parse_money(_cell(row, 4)),
        total_cost=_parse_money(_cell(row, 5)),
        labor_budget=_parse_money(_cell(row, 6)),
        labor_cost=_parse_money(_cell(row, 7)),
        materials_budget=_parse_money(_cell(row, 8)),
    )


def allocation_to_row(allocation: Allocation) -> list:
    return [
        allocation.payment_id or "",
        allocation.category_id or "",
        _money(allocation.amount),
        _money(allocation.labor_amount),
        _money(allocation.materials_amount),
        allocation.date.isoformat() if allocation.date else "",
    ]


def row_to_allocation(row: list) -> Allocation:
    return Allocation(
        payment_id=_cell(row, 0) or None,
        category_id=_cell(row, 1) or None,
        amount=_parse_money(_cell(row, 2)),
        labor_amount=_parse_money(_cell(row, 3)),
        materials_amount=_parse_money(_cell(row, 4)),
        date=_parse_date(_cell(row, 5)),
    )


def payment_to_row(project_id: str, payment: Payment) -> list:
    return [
        payment.id,
        project_id,
        payment.payment_method.value,
        payment.reference,
        _money(payment.total_amount),
        payment.date.isoformat(),
        payment.notes or "",
        json.dumps([a.to_document() for a in payment.allocations]),
    ]


def row_to_payment(row: list) -> Payment:
    allocations_json = _cell(row, 7)
    return Payment(
        id=_cell(row, 0),
        payment_method=PaymentMethod(_cell(row, 2) or PaymentMethod.CHECK.value),
        reference=_cell(row, 3),
        total_amount=_parse_money(_cell(row, 4)),
        date=_parse_date(_cell(row, 5)),
        notes=_cell(row, 6) or None,
        allocations=[
            Allocation.model_validate(item)
            for item in (json.loads(allocations_json) if allocations_json else [])
        ],
    )


def expense_to_row(category_id: str, expense: Expense) -> list:
    return [
        expense.id,
        category_id,
        _money(expense.amount),
        expense.date.isoformat(),
        expense.description,
        expense.type.value if expense.type else "",
        expense.payment_method.value if expense.payment_method else "",
        expense.reference or "",
    ]


def row_to_expense(row: list) -> Expense:
    return Expense(
        id=_cell(row, 0),
        amount=_parse_money(_cell(row, 2)),
        date=_parse_date(_cell(row, 3)),
        description=_cell(row, 4),
        type=ExpenseType(_cell(row, 5)) if _cell(row, 5) else None,
        payment_method=PaymentMethod(_cell(row, 6)) if _cell(row, 6) else None,
        reference=_cell(row, 7) or None,
    )


ROW_ERRORS = (ValueError, ValidationError, json.JSONDecodeError)


def parse_rows(rows: list[list], parser, kind: str) -> list[tuple[list, object]]:
    """Parse rows into (row, model) pairs, skipping malformed rows with a warning."""
    parsed = []
    for row in rows:
        try:
            parsed.append((row, parser(row)))
        except ROW_ERRORS as e:
            logger.warning("malformed_row_skipped", sheet=kind, row_id=row[0], error=str(e))
    return parsed


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    Rows reference their parent by id (project_id / category_id /
    payment_id), like foreign keys without enforcement.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # -------------------------------------------------------------------------
    # Row helpers
    # -------------------------------------------------------------------------

    def _rows(self, kind: str) -> list[list]:
        """All data rows of a worksheet (header excluded, blank rows dropped)."""
        values = self._client.get_sheet(kind).get_all_values()[1:]
        return [row for row in values if row and row[0]]

    def _find_row(self, kind: str, key: str, column: int = 0) -> Optional[int]:
        """1-based sheet row number of the first row matching `key`."""
        values = self._client.get_sheet(kind).get_all_values()
        for idx, row in enumerate(values[1:], start=2):  # Row 1 is the header
            if _cell(row, column) == key:
                return idx
        return None

    def _upsert_row(self, kind: str, key: str, row: list) -> None:
        sheet = self._client.get_sheet(kind)
        idx = self._find_row(kind, key)
        if idx is None:
            sheet.append_row(row, value_input_option="RAW")
        else:
            sheet.update(range_name=f"A{idx}", values=[row])

    def _delete_rows(self, kind: str, column: int, keys: set[str]) -> int:
        """Delete every row whose `column` is in `keys`; returns how many."""
        if not keys:
            return 0
        sheet = self._client.get_sheet(kind)
        values = sheet.get_all_values()
        matches = [
            idx
            for idx, row in enumerate(values[1:], start=2)
            if _cell(row, column) in keys
        ]
        # Bottom-up so earlier row numbers stay valid
        for idx in reversed(matches):
            sheet.delete_rows(idx)
        return len(matches)

    def _project_exists(self, project_id: str) -> bool:
        return self._find_row("projects", project_id) is not None

    def _category_exists(self, category_id: str) -> bool:
        return self._find_row("categories", category_id) is not None

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    async def get_projects(self) -> list[Project]:
        try:
            projects = {
                project.id: project
                for _, project in parse_rows(
                    self._rows("projects"), row_to_project, "projects"
                )
            }
            categories: dict[str, Category] = {}
            for row, category in parse_rows(
                self._rows("categories"), row_to_category, "categories"
            ):
                project = projects.get(_cell(row, 1))
                if project is not None:
                    project.categories.append(category)
                    categories[category.id] = category

            for row, allocation in parse_rows(
                self._rows("allocations"), row_to_allocation, "allocations"
            ):
                category = categories.get(allocation.category_id)
                if category is not None:
                    category.allocations.append(allocation)

            for row, expense in parse_rows(
                self._rows("expenses"), row_to_expense, "expenses"
            ):
                category = categories.get(_cell(row, 1))
                if category is not None:
                    category.expenses.append(expense)

            for row, payment in parse_rows(
                self._rows("payments"), row_to_payment, "payments"
            ):
                project = projects.get(_cell(row, 1))
                if project is not None:
                    project.payments.append(payment)

            return sorted(projects.values(), key=lambda p: p.created_at, reverse=True)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to load projects: {e}")

    @sheets_retry
    async def save_project(self, project: Project) -> Optional[Project]:
        """Save the project row, then everything it already owns."""
        try:
            self._upsert_row("projects", project.id, project_to_row(project))
            for category in project.categories:
                self._upsert_row(
                    "categories", category.id, category_to_row(project.id, category)
                )
                for expense in category.expenses:
                    self._upsert_row(
                        "expenses", expense.id, expense_to_row(category.id, expense)
                    )
            for payment in project.payments:
                self._write_payment(project.id, payment)
            return project
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save project: {e}")

    async def delete_project(self, project_id: str) -> bool:
        try:
            if not self._project_exists(project_id):
                return False
            category_ids = {
                _cell(row, 0)
                for row in self._rows("categories")
                if _cell(row, 1) == project_id
            }
            payment_ids = {
                _cell(row, 0)
                for row in self._rows("payments")
                if _cell(row, 1) == project_id
            }
            self._delete_rows("allocations", 1, category_ids)
            self._delete_rows("allocations", 0, payment_ids)
            self._delete_rows("expenses", 1, category_ids)
            self._delete_rows("categories", 1, {project_id})
            self._delete_rows("payments", 1, {project_id})
            self._delete_rows("projects", 0, {project_id})
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete project: {e}")

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    @sheets_retry
    async def save_category(self, project_id: str, category: Category) -> Optional[Category]:
        try:
            if not self._project_exists(project_id):
                raise NotFoundError(f"Project not found: {project_id}")
            self._upsert_row("categories", category.id, category_to_row(project_id, category))
            return category
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save category: {e}")

    async def delete_category(self, category_id: str) -> bool:
        try:
            if not self._category_exists(category_id):
                return False
            self._delete_rows("allocations", 1, {category_id})
            self._delete_rows("expenses", 1, {category_id})
            self._delete_rows("categories", 0, {category_id})
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete category: {e}")

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    def _write_payment(self, project_id: str, payment: Payment) -> None:
        self._upsert_row("payments", payment.id, payment_to_row(project_id, payment))
        self._delete_rows("allocations", 0, {payment.id})
        sheet = self._client.get_sheet("allocations")
        for allocation in payment.allocations:
            if not allocation.has_positive_amount:
                continue
            row = allocation_to_row(allocation.model_copy(update={
                "payment_id": payment.id,
                "date": payment.date,
            }))
            sheet.append_row(row, value_input_option="RAW")

    @sheets_retry
    async def save_payment(
        self,
        project_id: str,
        payment: Payment,
        allocations: list[Allocation],
    ) -> Optional[Payment]:
        try:
            if not self._project_exists(project_id):
                raise NotFoundError(f"Project not found: {project_id}")
            stored = payment.model_copy(update={"allocations": list(allocations)})
            self._write_payment(project_id, stored)
            return payment
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save payment: {e}")

    async def delete_payment(self, payment_id: str) -> bool:
        try:
            if self._find_row("payments", payment_id) is None:
                return False
            self._delete_rows("allocations", 0, {payment_id})
            self._delete_rows("payments", 0, {payment_id})
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete payment: {e}")

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    @sheets_retry
    async def save_expense(self, category_id: str, expense: Expense) -> Optional[Expense]:
        try:
            if not self._category_exists(category_id):
                raise NotFoundError(f"Category not found: {category_id}")
            self._upsert_row("expenses", expense.id, expense_to_row(category_id, expense))
            return expense
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")

    async def delete_expense(self, expense_id: str) -> bool:
        try:
            return self._delete_rows("expenses", 0, {expense_id}) > 0
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        details_json = _cell(row, 8)
        return AuditEvent(
            event_id=_cell(row, 0),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=_cell(row, 5) or None,
            project_id=_cell(row, 6) or None,
            description=_cell(row, 7),
            details=json.loads(details_json) if details_json else {},
            error_message=_cell(row, 9) or None,
            is_user_action=_cell(row, 10).lower() == "true",
        )

    def _events(self) -> list[AuditEvent]:
        rows = self._client.get_sheet("audit").get_all_values()[1:]
        return [
            event for _, event in parse_rows(
                [row for row in rows if row and row[0]], self._row_to_event, "audit"
            )
        ]

    @sheets_retry
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_sheet("audit")
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_project(self, project_id: str) -> list[AuditEvent]:
        try:
            events = [e for e in self._events() if e.project_id == project_id]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            events = self._events()
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
