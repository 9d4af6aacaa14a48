"""Pay interval date arithmetic by cadence.

The first interval of an income and every following interval are computed
by separate functions: month and quarter boundaries are not additive, so
"the interval containing this anchor date" and "the interval after this end
date" need different rules.

All functions are pure. Unsupported cadences raise
:class:`~budgetflow_core.exceptions.UnsupportedCadenceError`.
"""

import calendar
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Union

import structlog
from pydantic import BaseModel, Field

from .models import Cadence, Interval

logger = structlog.get_logger()

CadenceLike = Union[Cadence, str]

EPOCH = date(1970, 1, 1)

# Nominal interval lengths used only for plausibility warnings
NOMINAL_DAYS: dict[Cadence, int] = {
    Cadence.WEEKLY: 7,
    Cadence.BI_WEEKLY: 14,
    Cadence.SEMI_MONTHLY: 15,
    Cadence.MONTHLY: 30,
    Cadence.QUARTERLY: 91,
    Cadence.ANNUAL: 365,
}


class IntervalValidation(BaseModel):
    """Result of checking a proposed interval."""

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0


# =============================================================================
# CALENDAR HELPERS
# =============================================================================

def last_day_of_month(year: int, month: int) -> date:
    """Return the last calendar day of a month."""
    return date(year, month, calendar.monthrange(year, month)[1])


def quarter_start(day: date) -> date:
    """Return the first day of the calendar quarter containing ``day``."""
    return date(day.year, ((day.month - 1) // 3) * 3 + 1, 1)


def quarter_end(day: date) -> date:
    """Return the last day of the calendar quarter containing ``day``."""
    return last_day_of_month(day.year, ((day.month - 1) // 3) * 3 + 3)


def days_in_period(start: date, end: date) -> int:
    """Inclusive day count between two dates."""
    return (end - start).days + 1


def _build(
    start: date,
    end: date,
    expected_net: Union[Decimal, int, str],
    income_profile_id: Optional[str],
) -> Interval:
    return Interval(
        income_profile_id=income_profile_id,
        start_date=start,
        end_date=end,
        expected_net=Decimal(str(expected_net)),
    )


# =============================================================================
# FIRST / NEXT INTERVAL
# =============================================================================

def first_interval(
    cadence: CadenceLike,
    anchor_date: date,
    expected_net: Union[Decimal, int, str],
    income_profile_id: Optional[str] = None,
) -> Interval:
    """Compute the first interval of an income from its start date.

    Calendar-based cadences snap the start back to the boundary of the
    period containing the anchor: semi-monthly to the 1st or 16th, monthly
    to the 1st, quarterly to the first day of the quarter, annual to
    January 1. Weekly and bi-weekly intervals start on the anchor itself.

    Args:
        cadence: Income cadence.
        anchor_date: The income's start date.
        expected_net: Expected net income for the interval.
        income_profile_id: Owning income profile, copied onto the interval.

    Returns:
        The first ACTIVE interval.

    Raises:
        UnsupportedCadenceError: If the cadence is not supported.
    """
    cadence = Cadence.parse(cadence)
    start = anchor_date

    if cadence == Cadence.WEEKLY:
        end = start + timedelta(days=6)
    elif cadence == Cadence.BI_WEEKLY:
        end = start + timedelta(days=13)
    elif cadence == Cadence.SEMI_MONTHLY:
        if anchor_date.day <= 15:
            start = anchor_date.replace(day=1)
            end = anchor_date.replace(day=15)
        else:
            start = anchor_date.replace(day=16)
            end = last_day_of_month(anchor_date.year, anchor_date.month)
    elif cadence == Cadence.MONTHLY:
        start = anchor_date.replace(day=1)
        end = last_day_of_month(anchor_date.year, anchor_date.month)
    elif cadence == Cadence.QUARTERLY:
        start = quarter_start(anchor_date)
        end = quarter_end(anchor_date)
    else:
        start = date(anchor_date.year, 1, 1)
        end = date(anchor_date.year, 12, 31)

    return _build(start, end, expected_net, income_profile_id)


def next_interval(
    cadence: CadenceLike,
    previous_end_date: date,
    expected_net: Union[Decimal, int, str],
    income_profile_id: Optional[str] = None,
) -> Interval:
    """Compute the interval that follows an interval ending on ``previous_end_date``.

    The new interval always starts the day after ``previous_end_date``. For
    semi-monthly income the end date is keyed on whether that start falls on
    the 1st: a start on the 1st ends on the 15th, any other start ends on the
    last day of its month. This differs from the day-of-month test used by
    :func:`first_interval` for starts that are neither the 1st nor the 16th.

    Raises:
        UnsupportedCadenceError: If the cadence is not supported.
    """
    cadence = Cadence.parse(cadence)
    start = previous_end_date + timedelta(days=1)

    if cadence == Cadence.WEEKLY:
        end = start + timedelta(days=6)
    elif cadence == Cadence.BI_WEEKLY:
        end = start + timedelta(days=13)
    elif cadence == Cadence.SEMI_MONTHLY:
        if start.day == 1:
            end = start.replace(day=15)
        else:
            end = last_day_of_month(start.year, start.month)
    elif cadence == Cadence.MONTHLY:
        end = last_day_of_month(start.year, start.month)
    elif cadence == Cadence.QUARTERLY:
        end = quarter_end(start)
    else:
        end = date(start.year, 12, 31)

    return _build(start, end, expected_net, income_profile_id)


def intervals_between(
    cadence: CadenceLike,
    start_date: date,
    end_date: date,
    expected_net: Union[Decimal, int, str],
    income_profile_id: Optional[str] = None,
) -> list[Interval]:
    """List every interval from ``start_date`` whose start is on or before ``end_date``.

    The first element comes from :func:`first_interval`; each following one
    from :func:`next_interval` on its predecessor's end date.
    """
    intervals: list[Interval] = []
    current = first_interval(cadence, start_date, expected_net, income_profile_id)

    while current.start_date <= end_date:
        intervals.append(current)
        current = next_interval(cadence, current.end_date, expected_net, income_profile_id)

    logger.debug(
        "intervals_generated",
        cadence=Cadence.parse(cadence).value,
        count=len(intervals),
        start=start_date.isoformat(),
        end=end_date.isoformat(),
    )
    return intervals


def current_interval_range(cadence: CadenceLike, today: Optional[date] = None) -> tuple[date, date]:
    """Return the calendar range of the current interval for a cadence.

    Weeks start on Sunday. Bi-weekly ranges are 14-day buckets counted from
    1970-01-01. The other cadences use the same boundaries as
    :func:`first_interval`.
    """
    cadence = Cadence.parse(cadence)
    today = today or date.today()

    if cadence == Cadence.WEEKLY:
        start = today - timedelta(days=(today.weekday() + 1) % 7)
        return start, start + timedelta(days=6)
    if cadence == Cadence.BI_WEEKLY:
        bucket = (today - EPOCH).days // 14
        start = EPOCH + timedelta(days=bucket * 14)
        return start, start + timedelta(days=13)

    interval = first_interval(cadence, today, Decimal("0"))
    return interval.start_date, interval.end_date


def validate_interval(
    start_date: date,
    end_date: date,
    cadence: CadenceLike,
    expected_net: Union[Decimal, int, str],
    today: Optional[date] = None,
) -> IntervalValidation:
    """Check a proposed interval for impossible or implausible values.

    Errors: start not before end, non-positive expected net. Warnings: a
    length far from the cadence's nominal length (5 days of tolerance for
    monthly, quarterly and annual, 1 day otherwise), or dates more than a
    year away from ``today``.
    """
    cadence = Cadence.parse(cadence)
    today = today or date.today()
    result = IntervalValidation()

    if start_date >= end_date:
        result.errors.append("Start date must be before end date")

    if Decimal(str(expected_net)) <= 0:
        result.errors.append("Expected net amount must be greater than zero")

    length = days_in_period(start_date, end_date)
    nominal = NOMINAL_DAYS[cadence]
    tolerance = 5 if cadence in (Cadence.MONTHLY, Cadence.QUARTERLY, Cadence.ANNUAL) else 1
    if abs(length - nominal) > tolerance:
        result.warnings.append(
            f"Period length ({length} days) differs significantly from expected "
            f"for {cadence.value} cadence ({nominal} days)"
        )

    if start_date < _shift_years(today, -1):
        result.warnings.append("Pay period starts more than a year ago")
    if end_date > _shift_years(today, 1):
        result.warnings.append("Pay period ends more than a year in the future")

    return result


def prorate_partial_interval(
    full_amount: Decimal,
    actual_days: int,
    expected_days: int,
) -> Decimal:
    """Scale an amount linearly for an interval shorter or longer than usual."""
    if expected_days == 0:
        return Decimal("0")
    return full_amount * actual_days / expected_days


def _shift_years(day: date, years: int) -> date:
    # Feb 29 shifts to Feb 28 in non-leap years
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        return day.replace(year=day.year + years, day=28)
