"""Expected vs. actual comparisons for intervals and their allocations.

Every function here is a pure, read-only view: it takes records and returns
a report model without touching storage.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Optional

import structlog

from .config import ReconciliationThresholds
from .evaluator import round_amount
from .models import (
    Allocation,
    AllocationIssue,
    AllocationStatus,
    AllocationSummary,
    AllocationValidation,
    AllocationVariance,
    BudgetHealth,
    CategoryBreakdown,
    HealthStatus,
    Interval,
    IntervalStatus,
    ReconciliationReport,
    ReconciliationStatus,
    ReconciliationSummary,
    RemainingBudget,
)

logger = structlog.get_logger()

ZERO = Decimal("0")
HUNDRED = Decimal("100")
VARIANCE_TOLERANCE = Decimal("0.01")
UNCATEGORIZED = "uncategorized"


def variance_percentage(variance: Decimal, expected: Decimal) -> Decimal:
    """Variance as a percentage of ``expected``; 0 when nothing was expected."""
    if expected == 0:
        return ZERO
    return variance / expected * HUNDRED


def classify_variance(
    percentage: Decimal,
    thresholds: Optional[ReconciliationThresholds] = None,
) -> ReconciliationStatus:
    """Map a net variance percentage to PERFECT, MINOR or MAJOR."""
    thresholds = thresholds or ReconciliationThresholds()
    magnitude = abs(percentage)
    if magnitude <= thresholds.perfect_pct:
        return ReconciliationStatus.PERFECT
    if magnitude <= thresholds.minor_pct:
        return ReconciliationStatus.MINOR
    return ReconciliationStatus.MAJOR


def reconcile_interval(
    interval: Interval,
    allocations: list[Allocation],
    thresholds: Optional[ReconciliationThresholds] = None,
) -> ReconciliationReport:
    """Compare an interval's expected figures with what actually happened.

    A missing ``actual_net`` or ``actual_amount`` counts as zero. Intervals
    that are not COMPLETED are always reported as INCOMPLETE.
    """
    actual_net = interval.actual_net if interval.actual_net is not None else ZERO
    net_variance = actual_net - interval.expected_net
    net_variance_pct = variance_percentage(net_variance, interval.expected_net)

    rows = []
    total_expected = ZERO
    total_actual = ZERO
    for allocation in allocations:
        actual = allocation.actual_amount or ZERO
        total_expected += allocation.expected_amount
        total_actual += actual
        rows.append(
            AllocationVariance(
                allocation_id=allocation.id,
                rule_id=allocation.rule_id,
                category=allocation.category,
                expected_amount=allocation.expected_amount,
                actual_amount=allocation.actual_amount,
                variance=allocation.variance,
                variance_percentage=variance_percentage(
                    allocation.variance, allocation.expected_amount
                ),
                status=allocation.status,
            )
        )

    allocation_variance = total_actual - total_expected

    if interval.status != IntervalStatus.COMPLETED:
        status = ReconciliationStatus.INCOMPLETE
    else:
        status = classify_variance(net_variance_pct, thresholds)

    return ReconciliationReport(
        interval_id=interval.id,
        start_date=interval.start_date,
        end_date=interval.end_date,
        expected_net=interval.expected_net,
        actual_net=interval.actual_net,
        net_variance=net_variance,
        net_variance_percentage=net_variance_pct,
        allocations=rows,
        total_expected_allocations=total_expected,
        total_actual_allocations=total_actual,
        allocation_variance=allocation_variance,
        allocation_variance_percentage=variance_percentage(allocation_variance, total_expected),
        unallocated_amount=actual_net - total_actual,
        status=status,
    )


def summarize_reconciliations(
    intervals: list[Interval],
    allocations_by_interval: dict[str, list[Allocation]],
    thresholds: Optional[ReconciliationThresholds] = None,
) -> ReconciliationSummary:
    """Aggregate reconciliation results across intervals.

    Averages are taken over completed intervals only and use absolute
    variances, so over- and under-runs do not cancel out.
    """
    reports = [
        reconcile_interval(interval, allocations_by_interval.get(interval.id, []), thresholds)
        for interval in intervals
    ]
    completed = [r for r in reports if r.status != ReconciliationStatus.INCOMPLETE]

    summary = ReconciliationSummary(
        total_intervals=len(reports),
        completed_intervals=len(completed),
        perfect_count=sum(1 for r in completed if r.status == ReconciliationStatus.PERFECT),
        minor_variance_count=sum(1 for r in completed if r.status == ReconciliationStatus.MINOR),
        major_variance_count=sum(1 for r in completed if r.status == ReconciliationStatus.MAJOR),
    )

    if completed:
        count = Decimal(len(completed))
        summary.average_net_variance = sum((abs(r.net_variance) for r in completed), ZERO) / count
        summary.average_allocation_variance = (
            sum((abs(r.allocation_variance) for r in completed), ZERO) / count
        )
        summary.total_unallocated = sum((r.unallocated_amount for r in completed), ZERO)

    logger.debug(
        "reconciliation_summarized",
        total_intervals=summary.total_intervals,
        completed_intervals=summary.completed_intervals,
    )
    return summary


def summarize_allocations(interval_id: str, allocations: list[Allocation]) -> AllocationSummary:
    """Totals, status counts and a per-category breakdown for one interval."""
    total_expected = sum((a.expected_amount for a in allocations), ZERO)
    total_actual = sum((a.actual_amount or ZERO for a in allocations), ZERO)
    paid_count = sum(1 for a in allocations if a.status == AllocationStatus.PAID)

    categories: dict[str, CategoryBreakdown] = defaultdict(CategoryBreakdown)
    for allocation in allocations:
        entry = categories[allocation.category or UNCATEGORIZED]
        entry.expected += allocation.expected_amount
        entry.actual += allocation.actual_amount or ZERO
        entry.count += 1

    for entry in categories.values():
        entry.percentage_of_total = variance_percentage(entry.expected, total_expected)

    return AllocationSummary(
        interval_id=interval_id,
        total_expected=total_expected,
        total_actual=total_actual,
        total_remaining=total_expected - total_actual,
        paid_count=paid_count,
        unpaid_count=len(allocations) - paid_count,
        categories=dict(categories),
    )


def validate_allocations(allocations: list[Allocation]) -> AllocationValidation:
    """Flag negative amounts as errors and actual/expected mismatches as warnings."""
    result = AllocationValidation()

    for allocation in allocations:
        if allocation.expected_amount < 0:
            result.errors.append(
                AllocationIssue(
                    code="NEGATIVE_EXPECTED_AMOUNT",
                    message="Expected amount cannot be negative",
                    rule_id=allocation.rule_id,
                    suggested_fix="Regenerate allocations for the interval",
                )
            )

        if allocation.actual_amount is not None and allocation.actual_amount < 0:
            result.errors.append(
                AllocationIssue(
                    code="NEGATIVE_ACTUAL_AMOUNT",
                    message="Actual amount cannot be negative",
                    rule_id=allocation.rule_id,
                    suggested_fix="Enter a positive actual amount",
                )
            )

        if (
            allocation.actual_amount is not None
            and abs(allocation.variance) > VARIANCE_TOLERANCE
        ):
            result.warnings.append(
                AllocationIssue(
                    code="AMOUNT_MISMATCH",
                    message=(
                        f"Actual amount ({allocation.actual_amount}) differs from "
                        f"expected ({allocation.expected_amount})"
                    ),
                    rule_id=allocation.rule_id,
                    suggested_fix="Review the actual spending or adjust the budget rule",
                )
            )

    return result


def remaining_budget(interval: Interval, allocations: list[Allocation]) -> RemainingBudget:
    """What is still unallocated and unspent for an interval."""
    total_allocated = sum((a.expected_amount for a in allocations), ZERO)
    total_paid = sum(
        (
            a.actual_amount if a.actual_amount is not None else a.expected_amount
            for a in allocations
            if a.is_paid
        ),
        ZERO,
    )
    return RemainingBudget(
        expected_net=interval.expected_net,
        total_allocated=total_allocated,
        total_paid=total_paid,
        remaining_to_allocate=interval.expected_net - total_allocated,
        remaining_to_spend=total_allocated - total_paid,
    )


# =============================================================================
# BUDGET HEALTH
# =============================================================================

# Upper bounds, in percent of net income allocated, of each scoring band.
OVER_ALLOCATED_PERCENT = Decimal("100")
TIGHT_PERCENT = Decimal("95")
WELL_ALLOCATED_PERCENT = Decimal("85")
UNDER_ALLOCATED_PERCENT = Decimal("70")


def _net_income(interval: Interval) -> Decimal:
    # An unrecorded or zero actual net falls back to the expected net.
    return interval.actual_net or interval.expected_net


def surplus_amount(interval: Interval, allocations: list[Allocation]) -> Decimal:
    """Net income not covered by expected allocations, never negative."""
    total_allocated = sum((a.expected_amount for a in allocations), ZERO)
    return max(ZERO, _net_income(interval) - total_allocated)


def score_allocation(percent_allocated: Decimal) -> tuple[Decimal, HealthStatus]:
    """
    Map a percent of net income allocated to a health score and status.

    Bands:
        above 100%      100 - 2 * overshoot, floored at 0     danger
        above 95%       85                                    warning
        above 85%       95                                    good
        70% to 85%      100                                   excellent
        below 70%       100 - shortfall, floored at 70        good
    """
    if percent_allocated > OVER_ALLOCATED_PERCENT:
        overshoot = percent_allocated - OVER_ALLOCATED_PERCENT
        return max(ZERO, HUNDRED - overshoot * 2), HealthStatus.DANGER
    if percent_allocated > TIGHT_PERCENT:
        return Decimal("85"), HealthStatus.WARNING
    if percent_allocated > WELL_ALLOCATED_PERCENT:
        return Decimal("95"), HealthStatus.GOOD
    if percent_allocated < UNDER_ALLOCATED_PERCENT:
        shortfall = UNDER_ALLOCATED_PERCENT - percent_allocated
        return max(UNDER_ALLOCATED_PERCENT, HUNDRED - shortfall), HealthStatus.GOOD
    return HUNDRED, HealthStatus.EXCELLENT


def budget_health(interval: Interval, allocations: list[Allocation]) -> BudgetHealth:
    """Score how fully an interval's net income is allocated.

    Only expected amounts count; nothing here limits what may be allocated.
    """
    net_income = _net_income(interval)
    total_allocated = sum((a.expected_amount for a in allocations), ZERO)
    remaining = net_income - total_allocated
    percent_allocated = total_allocated / net_income * HUNDRED if net_income > 0 else ZERO

    score, status = score_allocation(percent_allocated)

    if status == HealthStatus.DANGER:
        logger.warning(
            "interval_over_allocated",
            interval_id=interval.id,
            percent_allocated=str(round_amount(percent_allocated)),
        )

    return BudgetHealth(
        interval_id=interval.id,
        net_income=net_income,
        total_allocated=round_amount(total_allocated),
        remaining=round_amount(remaining),
        surplus=round_amount(max(ZERO, remaining)),
        percent_allocated=round_amount(percent_allocated),
        health_score=round_amount(score),
        status=status,
    )
