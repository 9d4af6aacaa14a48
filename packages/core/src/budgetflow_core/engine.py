"""Batch allocation for one interval.

The engine orders the rule set, evaluates each rule in that order while
threading earlier results forward, and summarizes the batch. It follows a
partial-success policy: a rule that fails to evaluate gets a zero amount and
an error entry, and the remaining rules are still calculated.
"""

from decimal import Decimal
from typing import Optional

import structlog

from .config import EngineConfig
from .dependencies import resolve_dependencies
from .evaluator import evaluate_rule, round_amount
from .exceptions import CalculationError
from .models import (
    AllocationResult,
    BatchResult,
    BatchSummary,
    BudgetRule,
    CalculationTrace,
    CalculationType,
    IncomeProfile,
)

logger = structlog.get_logger()


class AllocationEngine:
    """
    Generate the allocation amounts for a rule set against one interval.

    The engine holds only its calculation policy; every call is independent
    and side-effect free apart from logging.

    Example:
        engine = AllocationEngine(EngineConfig(rounding="down"))
        batch = engine.generate(rules, income, interval.id)
        if not batch.success:
            print(batch.summary.calculation_errors)
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        """
        Initialize engine with a calculation policy.

        Args:
            config: Calculation policy (default: ``EngineConfig()``)
        """
        self.config = config or EngineConfig()

    def _failed_result(self, rule: BudgetRule, error: Exception) -> tuple[AllocationResult, str]:
        """Zero-amount result recorded for a rule that could not be evaluated."""
        message = f"Failed to calculate allocation for {rule.name or rule.id}: {error}"
        trace = CalculationTrace(
            calculation_type=rule.calc_type_name,
            notes=[f"Calculation failed: {error}"],
            error=str(error),
        )
        result = AllocationResult(
            rule_id=rule.id,
            expected_amount=round_amount(
                Decimal("0"), self.config.rounding, self.config.precision_decimals
            ),
            calculation_details=trace,
        )
        return result, message

    def generate(
        self,
        rules: list[BudgetRule],
        income: IncomeProfile,
        interval_id: str,
        pro_rate_override: Optional[Decimal] = None,
    ) -> BatchResult:
        """
        Calculate allocations for every active rule.

        Args:
            rules: Rule set; inactive rules are ignored.
            income: Income snapshot for the interval.
            interval_id: Interval the batch is for.
            pro_rate_override: Factor used instead of the cadence table.

        Returns:
            BatchResult with one result per active rule, in calculation order.

        Raises:
            ConfigurationError: If a rule carries a malformed value.
        """
        logger.info(
            "allocation_batch_started",
            interval_id=interval_id,
            income_profile_id=income.id,
            rule_count=len(rules),
        )

        resolution = resolve_dependencies(rules, max_iterations=self.config.max_iterations)
        results: list[AllocationResult] = []
        errors: list[str] = []
        warnings: list[str] = []

        if resolution.unresolved_rule_ids:
            warnings.append(
                "Could not resolve dependency order for rules: "
                + ", ".join(resolution.unresolved_rule_ids)
            )

        for rule in resolution.ordered:
            computed = {result.rule_id for result in results}
            # Only remaining-percent rules read earlier results.
            is_remaining = rule.calc_type == CalculationType.REMAINING_PERCENT
            for dep_id in rule.depends_on if is_remaining else []:
                if dep_id not in computed:
                    warnings.append(
                        f"Rule {rule.id} depends on {dep_id}, which has no prior allocation"
                    )

            try:
                result = evaluate_rule(
                    rule,
                    income,
                    results,
                    config=self.config,
                    pro_rate_override=pro_rate_override,
                )
            except CalculationError as e:
                result, message = self._failed_result(rule, e)
                errors.append(message)
                logger.error(
                    "rule_evaluation_failed",
                    rule_id=rule.id,
                    interval_id=interval_id,
                    error=str(e),
                )
            else:
                if result.calculation_details.has_error:
                    errors.append(
                        f"Failed to calculate allocation for {rule.name or rule.id}: "
                        f"{result.calculation_details.error}"
                    )

            results.append(result)

        total_allocated = sum((r.expected_amount for r in results), Decimal("0"))
        total_remaining = income.net_amount - total_allocated
        precision = self.config.precision_decimals

        summary = BatchSummary(
            total_allocated=round_amount(total_allocated, self.config.rounding, precision),
            total_remaining=round_amount(total_remaining, self.config.rounding, precision),
            items_processed=len(results),
            calculation_errors=errors,
        )

        if warnings:
            logger.warning(
                "allocation_batch_warnings",
                interval_id=interval_id,
                warnings=warnings,
            )

        batch = BatchResult(
            success=not errors,
            interval_id=interval_id,
            allocations=results,
            summary=summary,
            calculation_order=[r.rule_id for r in results],
            unresolved_rule_ids=resolution.unresolved_rule_ids,
            warnings=warnings,
        )

        logger.info(
            "allocation_batch_completed",
            interval_id=interval_id,
            success=batch.success,
            items_processed=summary.items_processed,
            total_allocated=str(summary.total_allocated),
            total_remaining=str(summary.total_remaining),
            error_count=len(errors),
        )

        return batch

    def preview(
        self,
        rules: list[BudgetRule],
        income: IncomeProfile,
        interval_id: str = "preview",
        pro_rate_override: Optional[Decimal] = None,
    ) -> BatchResult:
        """Calculate a batch that is shown but never persisted."""
        return self.generate(rules, income, interval_id, pro_rate_override)


def generate_allocations(
    rules: list[BudgetRule],
    income: IncomeProfile,
    interval_id: str,
    config: Optional[EngineConfig] = None,
    pro_rate_override: Optional[Decimal] = None,
) -> BatchResult:
    """Functional form of :meth:`AllocationEngine.generate`."""
    return AllocationEngine(config).generate(rules, income, interval_id, pro_rate_override)
