"""Single budget rule evaluation.

Turns one rule plus the income figures and the amounts already computed for
earlier rules into one rounded, non-negative amount and a calculation trace.

Calculation types are dispatched through a table keyed by
:class:`~budgetflow_core.models.CalculationType`; a rule whose type is not in
the table takes the unknown path (amount 0, trace error) instead of raising.
"""

from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Callable, Optional, Union

import structlog

from .config import EngineConfig, RoundingMode
from .exceptions import CalculationError, InvalidRuleValueError
from .models import (
    AllocationResult,
    BudgetRule,
    Cadence,
    CalculationTrace,
    CalculationType,
    IncomeProfile,
)

logger = structlog.get_logger()

HUNDRED = Decimal("100")
ONE = Decimal("1")
ZERO = Decimal("0")

_ROUNDING = {
    RoundingMode.UP: ROUND_CEILING,
    RoundingMode.DOWN: ROUND_FLOOR,
    RoundingMode.NEAREST: ROUND_HALF_UP,
}


def round_amount(
    amount: Decimal,
    mode: Union[RoundingMode, str] = RoundingMode.NEAREST,
    precision: int = 2,
) -> Decimal:
    """Round an amount to ``precision`` decimal places.

    ``up`` rounds toward positive infinity, ``down`` toward negative
    infinity, and ``nearest`` rounds halves away from zero
    (10.005 -> 10.01).
    """
    quantum = ONE.scaleb(-precision)
    return amount.quantize(quantum, rounding=_ROUNDING[RoundingMode(mode)])


def pro_rate_factor(
    rule_cadence: Cadence,
    income_cadence: Cadence,
    override: Optional[Decimal] = None,
) -> Decimal:
    """Multiplier converting a per-rule-cadence amount to a per-income-interval one.

    A monthly rule funded from bi-weekly income gets 14 / 30.44 of its value
    each interval. An explicit ``override`` takes precedence.
    """
    if override is not None:
        return Decimal(str(override))
    if rule_cadence == income_cadence:
        return ONE
    return income_cadence.day_length / rule_cadence.day_length


# =============================================================================
# CALCULATION TYPES
# =============================================================================

def _fixed(rule, income, factor, prior, trace, config) -> Decimal:
    trace.base_amount = rule.value
    return rule.value * factor


def _gross_percent(rule, income, factor, prior, trace, config) -> Decimal:
    trace.base_amount = income.gross_amount
    trace.percentage = rule.value
    return income.gross_amount * rule.value / HUNDRED * factor


def _net_percent(rule, income, factor, prior, trace, config) -> Decimal:
    trace.base_amount = income.net_amount
    trace.percentage = rule.value
    return income.net_amount * rule.value / HUNDRED * factor


def _remaining_percent(rule, income, factor, prior, trace, config) -> Decimal:
    dependency_total = ZERO
    for dep_id in rule.depends_on:
        if dep_id in prior:
            dependency_total += prior[dep_id]
        else:
            trace.notes.append(
                f"Warning: Dependency {dep_id} has no prior allocation; counted as 0."
            )

    remaining = income.net_amount - dependency_total
    trace.base_amount = remaining
    trace.percentage = rule.value
    trace.dependency_total = dependency_total

    if remaining < 0:
        shown = round_amount(remaining, config.rounding, config.precision_decimals)
        trace.notes.append(f"Warning: Remaining amount is negative ({shown}).")

    return remaining * rule.value / HUNDRED * factor


Handler = Callable[
    [BudgetRule, IncomeProfile, Decimal, dict[str, Decimal], CalculationTrace, EngineConfig],
    Decimal,
]

CALCULATORS: dict[CalculationType, Handler] = {
    CalculationType.FIXED: _fixed,
    CalculationType.GROSS_PERCENT: _gross_percent,
    CalculationType.NET_PERCENT: _net_percent,
    CalculationType.REMAINING_PERCENT: _remaining_percent,
}


def evaluate_rule(
    rule: BudgetRule,
    income: IncomeProfile,
    prior_allocations: list[AllocationResult],
    config: Optional[EngineConfig] = None,
    pro_rate_override: Optional[Decimal] = None,
) -> AllocationResult:
    """Compute one rule's amount for an interval of ``income``.

    Args:
        rule: The rule to evaluate.
        income: Income snapshot for the interval.
        prior_allocations: Results already computed in this batch, in order.
            Only REMAINING_PERCENT rules read them.
        config: Calculation policy; defaults to ``EngineConfig()``.
        pro_rate_override: Replaces the cadence table factor when given.

    Returns:
        The rounded, non-negative amount with its calculation trace.

    Raises:
        InvalidRuleValueError: If the rule value is not a finite number.
        CalculationError: If the arithmetic itself fails, for example an
            amount too large to round at the configured precision.
    """
    config = config or EngineConfig()

    if not rule.value.is_finite():
        raise InvalidRuleValueError(rule.id, rule.value)

    trace = CalculationTrace(calculation_type=rule.calc_type_name)

    try:
        factor = ONE
        if config.enable_pro_rating:
            factor = pro_rate_factor(rule.cadence, income.cadence, pro_rate_override)
            if factor != ONE:
                trace.pro_rated_factor = factor
                trace.notes.append(
                    f"Pro-rated from {rule.cadence.value} to {income.cadence.value}."
                )

        handler = CALCULATORS.get(rule.calc_type) if isinstance(rule.calc_type, CalculationType) else None
        if handler is None:
            logger.warning("unknown_calculation_type", rule_id=rule.id, calc_type=rule.calc_type_name)
            trace.error = f"Unknown calculation type {rule.calc_type_name}"
            trace.notes.append(f"Error: {trace.error}.")
            amount = ZERO
        else:
            prior = {result.rule_id: result.expected_amount for result in prior_allocations}
            amount = handler(rule, income, factor, prior, trace, config)

        amount = round_amount(amount, config.rounding, config.precision_decimals)
    except (ArithmeticError, ValueError, TypeError) as e:
        raise CalculationError(
            f"{type(e).__name__} while evaluating {rule.calc_type_name} rule",
            rule_id=rule.id,
            calculation_type=rule.calc_type_name,
        ) from e

    if amount < 0:
        amount = round_amount(ZERO, config.rounding, config.precision_decimals)
        trace.notes.append("Amount adjusted to zero (was negative).")

    logger.debug(
        "rule_evaluated",
        rule_id=rule.id,
        calc_type=trace.calculation_type,
        base_amount=str(trace.base_amount),
        factor=str(factor),
        amount=str(amount),
    )

    return AllocationResult(
        rule_id=rule.id,
        expected_amount=amount,
        calculation_details=trace,
    )
