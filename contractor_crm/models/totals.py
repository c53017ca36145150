"""
Derived Financial Figures

These models are OUTPUTS of the aggregator. They are recomputed from the
project graph on every read and are never persisted.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from contractor_crm.models.ledger import CategoryMode, WarningLevel


ZERO = Decimal("0")


class LineTotals(BaseModel):
    """Figures for one cost line (labor or materials) of a SEPARATE category."""

    budget: Decimal
    cost: Decimal
    collected: Decimal
    paid: Decimal
    remaining_to_collect: Decimal
    remaining_to_pay: Decimal
    buffer: Decimal
    profit: Decimal = ZERO
    warning_level: Optional[WarningLevel] = Field(
        default=None,
        description="Not set for materials, which carry no margin"
    )


class CategoryTotals(BaseModel):
    """
    Everything derived for a single category.

    For ALL_INCLUSIVE categories the totals ARE the category figures.
    For SEPARATE categories they combine `labor` and `materials`, and
    `warning_level` is the labor warning level.
    """

    category_id: str
    mode: CategoryMode

    total_budget: Decimal
    total_cost: Decimal
    total_collected: Decimal
    total_paid: Decimal
    remaining_to_collect: Decimal
    remaining_to_pay: Decimal
    buffer: Decimal
    warning_level: WarningLevel

    projected_profit: Decimal
    current_margin: Decimal

    labor: Optional[LineTotals] = None
    materials: Optional[LineTotals] = None

    # Display flags
    is_over_collected: bool = Field(
        default=False,
        description="Client paid more than the category budget"
    )
    is_underwater: bool = Field(
        default=False,
        description="More paid to subs than collected from the client"
    )
    collection_progress: Decimal = Field(
        default=ZERO,
        description="Percent of budget collected"
    )
    payment_progress: Decimal = Field(
        default=ZERO,
        description="Percent of cost paid out"
    )

    # Aliases matching the all-inclusive vocabulary
    @property
    def collected(self) -> Decimal:
        return self.total_collected

    @property
    def paid(self) -> Decimal:
        return self.total_paid


class HealthCounts(BaseModel):
    """How many categories sit at each warning level."""

    green: int = 0
    yellow: int = 0
    red: int = 0

    def add(self, level: WarningLevel) -> None:
        setattr(self, level.value, getattr(self, level.value) + 1)


class ProjectTotals(BaseModel):
    """Project-level rollup of all category totals."""

    project_id: str
    total_budget: Decimal = ZERO
    total_cost: Decimal = ZERO
    total_collected: Decimal = ZERO
    total_paid: Decimal = ZERO
    health: HealthCounts = Field(default_factory=HealthCounts)

    @property
    def projected_profit(self) -> Decimal:
        return self.total_budget - self.total_cost

    @property
    def current_profit(self) -> Decimal:
        return self.total_collected - self.total_paid

    @property
    def remaining_to_collect(self) -> Decimal:
        return self.total_budget - self.total_collected

    @property
    def left_to_pay(self) -> Decimal:
        return self.total_cost - self.total_paid
