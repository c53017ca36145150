"""
JSON Document Storage Implementation

DESIGN DECISION: The local fallback store is a single JSON document,
`{schemaVersion, projects}`, because:
1. The contractor can work with no remote backend configured
2. The whole project graph is small enough to rewrite on every change
3. The file is human-readable and trivially backed up

Old documents are migrated in memory on every load; the upgraded shape
is written back with the next successful mutation.
"""

import json
import os
from pathlib import Path
from typing import Callable, Optional, TypeVar

import structlog
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from contractor_crm.config import get_settings
from contractor_crm.migration import migrate, schema_version
from contractor_crm.models.ledger import (
    CURRENT_SCHEMA_VERSION,
    Allocation,
    Category,
    Expense,
    LedgerDocument,
    Payment,
    Project,
)
from contractor_crm.services.storage.interface import (
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")

file_retry = retry(
    retry=retry_if_exception_type(OSError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _upsert(items: list[T], item: T, key: Callable[[T], str]) -> None:
    for index, existing in enumerate(items):
        if key(existing) == key(item):
            items[index] = item
            return
    items.append(item)


class JsonFileLedgerStorage(LedgerStorageInterface):
    """
    Ledger storage backed by one JSON file.

    Every mutation is read-modify-write of the whole document. The write
    goes to a temporary file first and is moved into place atomically.
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path else get_settings().storage.data_file

    @property
    def path(self) -> Path:
        return self._path

    # -------------------------------------------------------------------------
    # Document I/O
    # -------------------------------------------------------------------------

    @file_retry
    def _read_raw(self) -> dict:
        if not self._path.exists():
            return {"schemaVersion": CURRENT_SCHEMA_VERSION, "projects": []}
        with self._path.open(encoding="utf-8") as fh:
            return json.load(fh)

    @file_retry
    def _write_raw(self, raw: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(raw, fh, indent=2)
        os.replace(tmp_path, self._path)

    def _load(self) -> LedgerDocument:
        try:
            raw = self._read_raw()
        except OSError as e:
            raise ConnectionError(f"Cannot read data file {self._path}: {e}") from e
        except json.JSONDecodeError as e:
            raise StorageError(f"Data file {self._path} is not valid JSON: {e}") from e

        if not isinstance(raw, dict):
            raise StorageError(f"Data file {self._path} does not hold a document")

        version = schema_version(raw)
        document = migrate(raw)
        if version != CURRENT_SCHEMA_VERSION:
            logger.info(
                "document_migrated",
                path=str(self._path),
                from_version=version,
                to_version=CURRENT_SCHEMA_VERSION,
            )

        try:
            return LedgerDocument.model_validate(document)
        except ValidationError as e:
            raise StorageError(f"Data file {self._path} has invalid records: {e}") from e

    def _save(self, document: LedgerDocument) -> None:
        document.schema_version = CURRENT_SCHEMA_VERSION
        try:
            self._write_raw(document.to_document())
        except OSError as e:
            raise ConnectionError(f"Cannot write data file {self._path}: {e}") from e

    @staticmethod
    def _project(document: LedgerDocument, project_id: str) -> Project:
        for project in document.projects:
            if project.id == project_id:
                return project
        raise NotFoundError(f"Project not found: {project_id}")

    @staticmethod
    def _category(document: LedgerDocument, category_id: str) -> Category:
        for project in document.projects:
            category = project.find_category(category_id)
            if category is not None:
                return category
        raise NotFoundError(f"Category not found: {category_id}")

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    async def get_projects(self) -> list[Project]:
        document = self._load()
        return sorted(document.projects, key=lambda p: p.created_at, reverse=True)

    async def save_project(self, project: Project) -> Optional[Project]:
        document = self._load()
        _upsert(document.projects, project.model_copy(deep=True), key=lambda p: p.id)
        self._save(document)
        return project

    async def delete_project(self, project_id: str) -> bool:
        document = self._load()
        remaining = [p for p in document.projects if p.id != project_id]
        if len(remaining) == len(document.projects):
            return False
        document.projects = remaining
        self._save(document)
        return True

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def save_category(self, project_id: str, category: Category) -> Optional[Category]:
        document = self._load()
        project = self._project(document, project_id)
        _upsert(project.categories, category.model_copy(deep=True), key=lambda c: c.id)
        self._save(document)
        return category

    async def delete_category(self, category_id: str) -> bool:
        document = self._load()
        for project in document.projects:
            remaining = [c for c in project.categories if c.id != category_id]
            if len(remaining) != len(project.categories):
                project.categories = remaining
                self._save(document)
                return True
        return False

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    async def save_payment(
        self,
        project_id: str,
        payment: Payment,
        allocations: list[Allocation],
    ) -> Optional[Payment]:
        document = self._load()
        project = self._project(document, project_id)
        _upsert(project.payments, payment.model_copy(deep=True), key=lambda p: p.id)

        for category in project.categories:
            category.allocations = [
                a for a in category.allocations if a.payment_id != payment.id
            ]
        for allocation in allocations:
            if not allocation.has_positive_amount:
                continue
            category = project.find_category(allocation.category_id)
            if category is None:
                continue
            category.allocations.append(allocation.model_copy(update={
                "payment_id": payment.id,
                "date": payment.date,
            }))

        self._save(document)
        return payment

    async def delete_payment(self, payment_id: str) -> bool:
        document = self._load()
        for project in document.projects:
            if project.find_payment(payment_id) is None:
                continue
            project.payments = [p for p in project.payments if p.id != payment_id]
            for category in project.categories:
                category.allocations = [
                    a for a in category.allocations if a.payment_id != payment_id
                ]
            self._save(document)
            return True
        return False

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def save_expense(self, category_id: str, expense: Expense) -> Optional[Expense]:
        document = self._load()
        category = self._category(document, category_id)
        _upsert(category.expenses, expense.model_copy(deep=True), key=lambda e: e.id)
        self._save(document)
        return expense

    async def delete_expense(self, expense_id: str) -> bool:
        document = self._load()
        for project in document.projects:
            for category in project.categories:
                remaining = [e for e in category.expenses if e.id != expense_id]
                if len(remaining) != len(category.expenses):
                    category.expenses = remaining
                    self._save(document)
                    return True
        return False
