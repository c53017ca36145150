"""
Schema Migration

Upgrades persisted documents from schema v1 (one client budget and one
cost per category, flat allocations) to schema v2 (accounting modes,
labor/materials fields, payment methods and references).

DESIGN DECISION: Migration works on plain dicts, BEFORE the models see
the data. It never raises on old-shaped input and never drops a record:
anything it cannot derive gets a documented default, and entries it does
not understand are carried over untouched.
"""

import copy
from typing import Any

from contractor_crm.models.ledger import (
    CURRENT_SCHEMA_VERSION,
    CategoryMode,
    PaymentMethod,
)


LEGACY_SCHEMA_VERSION = 1


def schema_version(document: dict) -> int:
    """Schema version of a document; documents without one are v1."""
    version = document.get("schemaVersion")
    if version is None:
        return LEGACY_SCHEMA_VERSION
    try:
        return int(version)
    except (TypeError, ValueError):
        return LEGACY_SCHEMA_VERSION


def needs_migration(document: dict) -> bool:
    return schema_version(document) < CURRENT_SCHEMA_VERSION


def _coalesce(record: dict, *keys: str, default: Any = None) -> Any:
    """First value among `keys` that is present and not null."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return default


def _list(record: dict, key: str) -> list:
    value = record.get(key)
    if not isinstance(value, list):
        value = []
        record[key] = value
    return value


def _migrate_allocation(allocation: dict) -> None:
    if allocation.get("amount") is None:
        allocation["amount"] = 0
    allocation.setdefault("laborAmount", None)
    allocation.setdefault("materialsAmount", None)


def _migrate_expense(expense: dict) -> None:
    expense.setdefault("type", None)
    expense.setdefault("paymentMethod", None)
    expense.setdefault("reference", None)


def _migrate_category(category: dict) -> None:
    category["mode"] = CategoryMode.ALL_INCLUSIVE.value
    category["totalBudget"] = _coalesce(category, "clientBudget", "totalBudget", default=0)
    category["totalCost"] = _coalesce(category, "yourCost", "totalCost", default=0)
    category["laborBudget"] = None
    category["laborCost"] = None
    category["materialsBudget"] = None

    for expense in _list(category, "expenses"):
        if isinstance(expense, dict):
            _migrate_expense(expense)
    for allocation in _list(category, "allocations"):
        if isinstance(allocation, dict):
            _migrate_allocation(allocation)


def _migrate_payment(payment: dict) -> None:
    payment["paymentMethod"] = _coalesce(
        payment, "paymentMethod", default=PaymentMethod.CHECK.value
    )
    payment["reference"] = _coalesce(payment, "reference", "checkNumber", default="")

    for allocation in _list(payment, "allocations"):
        if isinstance(allocation, dict):
            _migrate_allocation(allocation)


def migrate(document: dict) -> dict:
    """
    Upgrade a persisted document to the current schema.

    Pure and idempotent: a document already at the current version is
    returned unchanged, and the input is never modified in place.

    Args:
        document: The raw document, `{schemaVersion?, projects: [...]}`

    Returns:
        The document at CURRENT_SCHEMA_VERSION
    """
    if not needs_migration(document):
        return document

    migrated = copy.deepcopy(document)

    for project in _list(migrated, "projects"):
        if not isinstance(project, dict):
            continue
        for category in _list(project, "categories"):
            if isinstance(category, dict):
                _migrate_category(category)
        for payment in _list(project, "payments"):
            if isinstance(payment, dict):
                _migrate_payment(payment)

    migrated["schemaVersion"] = CURRENT_SCHEMA_VERSION
    return migrated
