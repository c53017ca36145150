"""Input validation package."""

from contractor_crm.validation.validator import (
    LedgerInputValidator,
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    "LedgerInputValidator",
    "ValidationIssue",
    "ValidationResult",
]
