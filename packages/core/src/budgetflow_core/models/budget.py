"""Income and budget rule models.

This module provides the inputs of an allocation calculation:
- Cadences (payment frequencies) and their canonical lengths
- Calculation types for budget rules
- Income profiles (one recurring income stream)
- Budget rules (one calculation instruction each)

Amounts are ``Decimal`` throughout. Strings and floats are coerced on input.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from ..exceptions import InvalidRuleValueError, UnsupportedCadenceError


def _new_id() -> str:
    """Return a fresh string identifier."""
    return str(uuid4())


def coerce_decimal(v: Any) -> Any:
    """Coerce floats to Decimal through their shortest repr.

    ``Decimal(0.1)`` would keep the binary expansion; ``Decimal("0.1")`` does
    not. Strings and ints are left for pydantic to parse.
    """
    if isinstance(v, float):
        return Decimal(str(v))
    if isinstance(v, str):
        return v.strip()
    return v


# =============================================================================
# ENUMERATIONS
# =============================================================================

class Cadence(str, Enum):
    """Supported recurrence frequencies."""

    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    SEMI_MONTHLY = "semi-monthly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"

    @classmethod
    def parse(cls, value: Union["Cadence", str]) -> "Cadence":
        """Resolve a cadence from a member or its wire value.

        Underscores are accepted in place of hyphens and case is ignored.

        Raises:
            UnsupportedCadenceError: If the value names no supported cadence.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", "-")
            try:
                return cls(normalized)
            except ValueError:
                pass
        raise UnsupportedCadenceError(value)

    @property
    def day_length(self) -> Decimal:
        """Canonical length in days, used for pro-rating."""
        return CADENCE_DAY_LENGTHS[self]

    @property
    def periods_per_year(self) -> int:
        """Number of intervals of this cadence in one year."""
        return CADENCE_PERIODS_PER_YEAR[self]

    @property
    def display_name(self) -> str:
        """Human-readable cadence name."""
        return self.value.replace("-", " ").capitalize()


# 365.25 divided by 24, 12 and 4 respectively for the calendar-based cadences
CADENCE_DAY_LENGTHS: dict[Cadence, Decimal] = {
    Cadence.WEEKLY: Decimal("7"),
    Cadence.BI_WEEKLY: Decimal("14"),
    Cadence.SEMI_MONTHLY: Decimal("15.22"),
    Cadence.MONTHLY: Decimal("30.44"),
    Cadence.QUARTERLY: Decimal("91.31"),
    Cadence.ANNUAL: Decimal("365.25"),
}

CADENCE_PERIODS_PER_YEAR: dict[Cadence, int] = {
    Cadence.WEEKLY: 52,
    Cadence.BI_WEEKLY: 26,
    Cadence.SEMI_MONTHLY: 24,
    Cadence.MONTHLY: 12,
    Cadence.QUARTERLY: 4,
    Cadence.ANNUAL: 1,
}


class CalculationType(str, Enum):
    """How a budget rule derives its amount.

    FIXED uses the rule value as a currency amount. The three percent types
    apply the rule value as a percentage of gross income, net income, or
    net income left after the rule's dependencies.
    """

    FIXED = "FIXED"
    GROSS_PERCENT = "GROSS_PERCENT"
    NET_PERCENT = "NET_PERCENT"
    REMAINING_PERCENT = "REMAINING_PERCENT"

    @property
    def is_percentage(self) -> bool:
        """Returns True for the three percentage-based types."""
        return self is not CalculationType.FIXED


# =============================================================================
# INCOME MODELS
# =============================================================================

class IncomeProfile(BaseModel):
    """One recurring income stream.

    An immutable snapshot used for a calculation; edits elsewhere produce a
    new snapshot rather than mutating this one.
    """

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "id": "salary",
                    "name": "Acme Corp salary",
                    "cadence": "monthly",
                    "gross_amount": "4200.00",
                    "net_amount": "3000.00",
                    "start_date": "2025-01-01",
                }
            ]
        }
    }

    id: str = Field(default_factory=_new_id)
    name: str = ""
    cadence: Cadence = Field(description="How often this income is received")
    gross_amount: Decimal = Field(ge=0, description="Gross amount per interval")
    net_amount: Decimal = Field(ge=0, description="Take-home amount per interval")
    start_date: date = Field(description="First day the income is active")
    end_date: Optional[date] = Field(
        default=None,
        description="Last day the income is active, if it has ended",
    )
    is_active: bool = True

    @field_validator("cadence", mode="before")
    @classmethod
    def parse_cadence(cls, v):
        """Resolve cadence strings, rejecting unsupported ones."""
        return Cadence.parse(v)

    @field_validator("gross_amount", "net_amount", mode="before")
    @classmethod
    def coerce_amount_to_decimal(cls, v):
        """Coerce float amounts to Decimal."""
        return coerce_decimal(v)

    @model_validator(mode="after")
    def check_activation_window(self) -> "IncomeProfile":
        """An income cannot end before it starts."""
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self

    @property
    def annual_gross(self) -> Decimal:
        """Gross income annualized by cadence."""
        return self.gross_amount * self.cadence.periods_per_year

    @property
    def annual_net(self) -> Decimal:
        """Net income annualized by cadence."""
        return self.net_amount * self.cadence.periods_per_year

    def is_active_on(self, day: date) -> bool:
        """Check whether ``day`` falls inside the activation window."""
        if not self.is_active or day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date


# =============================================================================
# BUDGET RULE MODELS
# =============================================================================

class BudgetRule(BaseModel):
    """A named instruction for deriving an allocation from income.

    ``depends_on`` only matters for REMAINING_PERCENT rules. A rule that
    lists itself, or lists inactive or unknown rules, is tolerated here;
    the dependency resolver and evaluator degrade gracefully instead.

    ``calc_type`` keeps unrecognized strings as-is so the evaluator can
    report them per rule rather than rejecting the whole rule set.
    """

    id: str = Field(default_factory=_new_id)
    name: str = ""
    category: Optional[str] = Field(
        default=None,
        description="Informational category tag, not used in calculation",
    )
    calc_type: Union[CalculationType, str] = Field(union_mode="left_to_right")
    value: Decimal = Field(
        allow_inf_nan=True,
        description="Currency amount for FIXED, percentage for percent types",
    )
    cadence: Cadence = Field(description="The rule's own payment frequency")
    priority: int = 0
    depends_on: list[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("cadence", mode="before")
    @classmethod
    def parse_cadence(cls, v):
        """Resolve cadence strings, rejecting unsupported ones."""
        return Cadence.parse(v)

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value_to_decimal(cls, v):
        """Coerce float values to Decimal."""
        return coerce_decimal(v)

    @field_validator("depends_on", mode="before")
    @classmethod
    def normalize_dependencies(cls, v):
        """Treat a missing dependency list as empty."""
        return [] if v is None else v

    @model_validator(mode="after")
    def check_value_is_finite(self) -> "BudgetRule":
        """NaN and infinite values are malformed rules."""
        if not self.value.is_finite():
            raise InvalidRuleValueError(self.id, self.value)
        return self

    @property
    def is_percentage(self) -> bool:
        """Returns True if the value is a percentage."""
        return isinstance(self.calc_type, CalculationType) and self.calc_type.is_percentage

    @property
    def calc_type_name(self) -> str:
        """Wire name of the calculation type, recognized or not."""
        if isinstance(self.calc_type, CalculationType):
            return self.calc_type.value
        return str(self.calc_type)

    @property
    def is_self_dependent(self) -> bool:
        """Returns True if the rule lists itself as a dependency."""
        return self.id in self.depends_on
