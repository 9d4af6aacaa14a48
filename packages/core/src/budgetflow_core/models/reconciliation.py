"""Read-only views over intervals and their allocations.

These models are derived data; nothing in them feeds back into a
calculation or a lifecycle transition.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .allocation import AllocationStatus


class ReconciliationStatus(str, Enum):
    """How closely an interval's actual net matched its expected net."""

    PERFECT = "perfect"
    MINOR = "minor_variance"
    MAJOR = "major_variance"
    INCOMPLETE = "incomplete"


class AllocationVariance(BaseModel):
    """Expected vs. actual for one allocation."""

    allocation_id: str
    rule_id: str
    category: Optional[str] = None
    expected_amount: Decimal
    actual_amount: Optional[Decimal] = None
    variance: Decimal
    variance_percentage: Decimal
    status: AllocationStatus


class ReconciliationReport(BaseModel):
    """Reconciliation of one interval."""

    interval_id: str
    start_date: date
    end_date: date
    expected_net: Decimal
    actual_net: Optional[Decimal] = None
    net_variance: Decimal
    net_variance_percentage: Decimal
    allocations: list[AllocationVariance] = Field(default_factory=list)
    total_expected_allocations: Decimal = Decimal("0")
    total_actual_allocations: Decimal = Decimal("0")
    allocation_variance: Decimal = Decimal("0")
    allocation_variance_percentage: Decimal = Decimal("0")
    unallocated_amount: Decimal = Decimal("0")
    status: ReconciliationStatus


class ReconciliationSummary(BaseModel):
    """Reconciliation statistics across many intervals."""

    total_intervals: int = 0
    completed_intervals: int = 0
    perfect_count: int = 0
    minor_variance_count: int = 0
    major_variance_count: int = 0
    average_net_variance: Decimal = Decimal("0")
    average_allocation_variance: Decimal = Decimal("0")
    total_unallocated: Decimal = Decimal("0")


class CategoryBreakdown(BaseModel):
    """Totals for one category within an interval."""

    expected: Decimal = Decimal("0")
    actual: Decimal = Decimal("0")
    count: int = 0
    percentage_of_total: Decimal = Decimal("0")


class AllocationSummary(BaseModel):
    """Totals and status counts for one interval's allocations."""

    interval_id: str
    total_expected: Decimal = Decimal("0")
    total_actual: Decimal = Decimal("0")
    total_remaining: Decimal = Decimal("0")
    paid_count: int = 0
    unpaid_count: int = 0
    categories: dict[str, CategoryBreakdown] = Field(default_factory=dict)


class RemainingBudget(BaseModel):
    """What is left to allocate and to spend in an interval."""

    expected_net: Decimal
    total_allocated: Decimal
    total_paid: Decimal
    remaining_to_allocate: Decimal
    remaining_to_spend: Decimal


class AllocationIssue(BaseModel):
    """One problem found while validating allocations."""

    code: str
    message: str
    rule_id: Optional[str] = None
    suggested_fix: Optional[str] = None


class AllocationValidation(BaseModel):
    """Result of validating an interval's allocations."""

    errors: list[AllocationIssue] = Field(default_factory=list)
    warnings: list[AllocationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0


class HealthStatus(str, Enum):
    """Coarse rating of how much of an interval's net income is allocated."""

    EXCELLENT = "excellent"
    GOOD = "good"
    WARNING = "warning"
    DANGER = "danger"


class BudgetHealth(BaseModel):
    """Allocation level of one interval, scored 0-100."""

    interval_id: str
    net_income: Decimal
    total_allocated: Decimal
    remaining: Decimal
    surplus: Decimal = Field(description="Remaining net income, floored at zero")
    percent_allocated: Decimal
    health_score: Decimal = Field(ge=0, le=100)
    status: HealthStatus
