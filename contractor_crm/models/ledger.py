"""
Core Data Models for Contractor CRM

These models define the schemas for the project graph:
Project -> Category -> (Allocation, Expense) and Project -> Payment.

They are designed to:
1. Enforce the category mode invariant at runtime
2. Serialize to the persisted document shape (camelCase keys, nulls kept)
3. Accept legacy identifiers (numeric timestamps) as strings

DESIGN DECISION: Allocations are deliberately stored twice, once embedded
in the Payment that produced them and once in each target Category.
Keeping both copies identical is the job of the ledger service, not of
these models.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


CURRENT_SCHEMA_VERSION = 2

# Money is exact in memory and a plain number once serialized.
Money = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]


def new_id() -> str:
    """Generate an identifier for a newly created entity."""
    return str(uuid4())


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class CategoryMode(str, Enum):
    """
    Accounting mode of a cost category.

    ALL_INCLUSIVE: one budget and one cost cover labor and materials.
    SEPARATE: labor carries the contractor's margin, materials are
    passed through at cost.
    """
    ALL_INCLUSIVE = "all-inclusive"
    SEPARATE = "separate"


class PaymentMethod(str, Enum):
    """How money changed hands."""
    CHECK = "check"
    ZELLE = "zelle"
    CASH = "cash"
    OTHER = "other"


class ExpenseType(str, Enum):
    """Expense split, only meaningful for SEPARATE categories."""
    LABOR = "labor"
    MATERIALS = "materials"


class WarningLevel(str, Enum):
    """Cash-buffer health of a category."""
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


# =============================================================================
# BASE MODEL
# =============================================================================

class LedgerModel(BaseModel):
    """
    Shared configuration for persisted entities.

    Attributes are snake_case in Python and camelCase on the wire;
    either spelling is accepted on input.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    def to_document(self) -> dict:
        """Serialize to the persisted (camelCase, JSON-safe) shape."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# LEDGER ENTITIES
# =============================================================================

class Allocation(LedgerModel):
    """
    Part of a client payment attributed to one category.

    Uses `amount` for ALL_INCLUSIVE categories and
    `labor_amount` / `materials_amount` for SEPARATE ones.
    """

    payment_id: Optional[str] = Field(
        default=None,
        description="Payment this allocation came from (lookup only)"
    )
    category_id: Optional[str] = Field(
        default=None,
        description="Category the money is attributed to"
    )
    amount: Optional[Money] = None
    labor_amount: Optional[Money] = None
    materials_amount: Optional[Money] = None
    date: Optional[dt.date] = Field(
        default=None,
        description="Payment date, copied for category-level display"
    )

    def amount_fields(self) -> list[Optional[Decimal]]:
        return [self.amount, self.labor_amount, self.materials_amount]

    @property
    def is_empty(self) -> bool:
        """True when every amount field is zero or absent."""
        return all(not value for value in self.amount_fields())

    @property
    def has_positive_amount(self) -> bool:
        return any(value is not None and value > 0 for value in self.amount_fields())

    @property
    def total(self) -> Decimal:
        """Sum of whichever amount fields are populated."""
        return sum(
            (value for value in self.amount_fields() if value is not None),
            Decimal("0"),
        )


class AllocationRequest(LedgerModel):
    """Per-category allocation requested while recording a payment."""

    category_id: str
    amount: Optional[Money] = None
    labor_amount: Optional[Money] = None
    materials_amount: Optional[Money] = None

    @property
    def is_empty(self) -> bool:
        return all(
            not value
            for value in (self.amount, self.labor_amount, self.materials_amount)
        )


class Expense(LedgerModel):
    """Money paid to a subcontractor or supplier for one category."""

    id: str = Field(default_factory=new_id)
    amount: Money
    date: dt.date
    description: str = Field(default="", max_length=500)
    type: Optional[ExpenseType] = Field(
        default=None,
        description="Labor or materials; only set in SEPARATE categories"
    )
    payment_method: Optional[PaymentMethod] = None
    reference: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Check number or transfer reference"
    )


class Category(LedgerModel):
    """
    A cost category of a project (e.g. Plumbing, Framing).

    Exactly one budget field group is populated, chosen by `mode`;
    the other group is null.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    mode: CategoryMode = CategoryMode.ALL_INCLUSIVE

    # ALL_INCLUSIVE fields
    total_budget: Optional[Money] = Field(
        default=None,
        description="What the client pays for this category"
    )
    total_cost: Optional[Money] = Field(
        default=None,
        description="What the contractor pays the subcontractor"
    )

    # SEPARATE fields
    labor_budget: Optional[Money] = None
    labor_cost: Optional[Money] = None
    materials_budget: Optional[Money] = Field(
        default=None,
        description="Materials price, equal to their cost (no markup)"
    )

    allocations: list[Allocation] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_mode_fields(self) -> 'Category':
        """Only the field group of the current mode may be populated."""
        inclusive = {"total_budget": self.total_budget, "total_cost": self.total_cost}
        separate = {
            "labor_budget": self.labor_budget,
            "labor_cost": self.labor_cost,
            "materials_budget": self.materials_budget,
        }
        if self.mode == CategoryMode.ALL_INCLUSIVE:
            own, other = inclusive, separate
        else:
            own, other = separate, inclusive

        missing = [name for name, value in own.items() if value is None]
        if missing:
            raise ValueError(
                f"{self.mode.value} category requires {', '.join(missing)}"
            )
        populated = [name for name, value in other.items() if value is not None]
        if populated:
            raise ValueError(
                f"{self.mode.value} category must not set {', '.join(populated)}"
            )
        return self


class Payment(LedgerModel):
    """A client payment, split across categories by its allocations."""

    id: str = Field(default_factory=new_id)
    payment_method: PaymentMethod = PaymentMethod.CHECK
    reference: str = Field(
        default="",
        max_length=100,
        description="Check number or transfer reference"
    )
    total_amount: Money
    date: dt.date
    notes: Optional[str] = Field(default=None, max_length=1000)
    allocations: list[Allocation] = Field(default_factory=list)

    @property
    def allocated_total(self) -> Decimal:
        return sum((a.total for a in self.allocations), Decimal("0"))


class Project(LedgerModel):
    """A job for one client; owns its categories and payments."""

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    client_name: str = Field(default="", max_length=200)
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))
    categories: list[Category] = Field(default_factory=list)
    payments: list[Payment] = Field(default_factory=list)

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, v: dt.datetime) -> dt.datetime:
        """Naive timestamps are UTC, so projects always sort together."""
        if v.tzinfo is None:
            return v.replace(tzinfo=dt.timezone.utc)
        return v

    def find_category(self, category_id: str) -> Optional[Category]:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None

    def find_payment(self, payment_id: str) -> Optional[Payment]:
        for payment in self.payments:
            if payment.id == payment_id:
                return payment
        return None


class LedgerDocument(LedgerModel):
    """The persisted document: `{schemaVersion, projects}`."""

    schema_version: int = CURRENT_SCHEMA_VERSION
    projects: list[Project] = Field(default_factory=list)
