"""Interval, allocation and calculation result models.

This module provides the outputs of the engine and the records the
lifecycle layer works on:
- Intervals (one concrete pay period)
- Calculation traces (per-rule diagnostics)
- Allocation results and batch results (engine output)
- Allocations (persisted per-rule amounts with paid/unpaid status)
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, computed_field, field_validator

from .budget import coerce_decimal


def _utc_now() -> datetime:
    """Return current UTC datetime with timezone info."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class IntervalStatus(str, Enum):
    """Lifecycle states of an interval."""

    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class AllocationStatus(str, Enum):
    """Lifecycle states of an allocation."""

    UNPAID = "UNPAID"
    PAID = "PAID"


# =============================================================================
# INTERVAL MODELS
# =============================================================================

class Interval(BaseModel):
    """One concrete pay period for an income profile.

    Both endpoints are inclusive.
    """

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "income_profile_id": "salary",
                    "start_date": "2025-01-01",
                    "end_date": "2025-01-31",
                    "expected_net": "3000.00",
                    "status": "ACTIVE",
                }
            ]
        }
    }

    id: str = Field(default_factory=_new_id)
    income_profile_id: Optional[str] = None
    start_date: date
    end_date: date
    expected_net: Decimal = Field(description="Expected net income for the span")
    actual_net: Optional[Decimal] = Field(
        default=None,
        description="Net income actually received, once known",
    )
    status: IntervalStatus = IntervalStatus.ACTIVE

    @field_validator("expected_net", "actual_net", mode="before")
    @classmethod
    def coerce_amount_to_decimal(cls, v):
        """Coerce float amounts to Decimal."""
        return coerce_decimal(v)

    @computed_field
    @property
    def days_in_period(self) -> int:
        """Number of days covered, counting both endpoints."""
        return (self.end_date - self.start_date).days + 1

    def contains(self, day: date) -> bool:
        """Check if a date falls within the interval."""
        return self.start_date <= day <= self.end_date

    def is_current(self, today: Optional[date] = None) -> bool:
        """Check if ``today`` (default: the current date) falls within the interval."""
        return self.contains(today or date.today())

    @property
    def is_completed(self) -> bool:
        return self.status == IntervalStatus.COMPLETED


# =============================================================================
# CALCULATION RESULT MODELS
# =============================================================================

class CalculationTrace(BaseModel):
    """Diagnostics recorded for one rule evaluation.

    Attributes:
        base_amount: Amount the rule's value was applied to.
        calculation_type: Wire name of the rule's calculation type.
        percentage: Percentage applied (percent types only).
        pro_rated_factor: Cadence factor applied, when it differs from 1.
        dependency_total: Sum of dependency amounts (REMAINING_PERCENT only).
        notes: Warnings collected during evaluation.
        error: Why the rule could not be evaluated, if it could not.
    """

    base_amount: Decimal = Decimal("0")
    calculation_type: str
    percentage: Optional[Decimal] = None
    pro_rated_factor: Optional[Decimal] = None
    dependency_total: Optional[Decimal] = None
    notes: list[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @property
    def note_text(self) -> str:
        """All notes joined into a single line."""
        return " ".join(self.notes)


class AllocationResult(BaseModel):
    """Engine output for one budget rule."""

    rule_id: str
    expected_amount: Decimal
    calculation_details: CalculationTrace


class BatchSummary(BaseModel):
    """Totals over one batch of allocation results."""

    total_allocated: Decimal = Decimal("0")
    total_remaining: Decimal = Decimal("0")
    items_processed: int = 0
    calculation_errors: list[str] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Complete result of generating allocations for one interval.

    Attributes:
        success: True when no rule produced an error.
        interval_id: The interval the batch was computed for.
        allocations: One result per active rule, in calculation order.
        summary: Totals and collected error messages.
        calculation_order: Rule ids in the order they were evaluated.
        unresolved_rule_ids: Rules whose dependencies could not be ordered
            (cycles, missing or inactive dependencies). They were still
            evaluated, after everything else.
        warnings: Structural warnings that are not errors.
        timestamp: When the batch was computed (UTC).
    """

    success: bool
    interval_id: str
    allocations: list[AllocationResult] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)
    calculation_order: list[str] = Field(default_factory=list)
    unresolved_rule_ids: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utc_now)

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def amount_for(self, rule_id: str) -> Optional[Decimal]:
        """Expected amount computed for ``rule_id``, if it was in the batch."""
        for result in self.allocations:
            if result.rule_id == rule_id:
                return result.expected_amount
        return None

    def to_allocations(
        self,
        categories: Optional[dict[str, Optional[str]]] = None,
    ) -> list["Allocation"]:
        """Build fresh UNPAID allocation records for this batch.

        Args:
            categories: Optional mapping of rule id to category tag, copied
                onto each allocation for reporting.
        """
        categories = categories or {}
        return [
            Allocation(
                interval_id=self.interval_id,
                rule_id=result.rule_id,
                category=categories.get(result.rule_id),
                expected_amount=result.expected_amount,
                calculation_details=result.calculation_details,
            )
            for result in self.allocations
        ]


# =============================================================================
# ALLOCATION MODELS
# =============================================================================

class Allocation(BaseModel):
    """The expected and realized amount for one rule within one interval."""

    id: str = Field(default_factory=_new_id)
    interval_id: str
    rule_id: str
    category: Optional[str] = None
    expected_amount: Decimal
    actual_amount: Optional[Decimal] = None
    status: AllocationStatus = AllocationStatus.UNPAID
    calculation_details: Optional[CalculationTrace] = None
    created_at: datetime = Field(default_factory=_utc_now)

    @field_validator("expected_amount", "actual_amount", mode="before")
    @classmethod
    def coerce_amount_to_decimal(cls, v):
        """Coerce float amounts to Decimal."""
        return coerce_decimal(v)

    @property
    def is_paid(self) -> bool:
        return self.status == AllocationStatus.PAID

    @property
    def variance(self) -> Decimal:
        """Actual minus expected, counting a missing actual as zero."""
        return (self.actual_amount or Decimal("0")) - self.expected_amount
