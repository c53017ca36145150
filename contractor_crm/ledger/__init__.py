"""Ledger mutation package."""

from contractor_crm.ledger.service import (
    CategoryNotFoundError,
    ConfirmationRequiredError,
    InvalidCategoryModeError,
    InvalidExpenseTypeError,
    LedgerError,
    LedgerService,
    ProjectNotFoundError,
    create_app_components,
    parse_amount,
)

__all__ = [
    "CategoryNotFoundError",
    "ConfirmationRequiredError",
    "InvalidCategoryModeError",
    "InvalidExpenseTypeError",
    "LedgerError",
    "LedgerService",
    "ProjectNotFoundError",
    "create_app_components",
    "parse_amount",
]
