"""Data models for budgetflow-core.

This package provides the records the engine consumes and produces:
- Income profiles and budget rules (budget.py)
- Intervals, allocations and calculation results (allocation.py)
- Reconciliation and summary views (reconciliation.py)
"""

from budgetflow_core.models.budget import (
    # Enumerations
    Cadence,
    CalculationType,
    # Constants
    CADENCE_DAY_LENGTHS,
    CADENCE_PERIODS_PER_YEAR,
    # Inputs
    IncomeProfile,
    BudgetRule,
)

from budgetflow_core.models.allocation import (
    # Enumerations
    IntervalStatus,
    AllocationStatus,
    # Intervals
    Interval,
    # Engine output
    CalculationTrace,
    AllocationResult,
    BatchSummary,
    BatchResult,
    # Lifecycle records
    Allocation,
)

from budgetflow_core.models.reconciliation import (
    ReconciliationStatus,
    HealthStatus,
    AllocationVariance,
    ReconciliationReport,
    ReconciliationSummary,
    CategoryBreakdown,
    AllocationSummary,
    RemainingBudget,
    AllocationIssue,
    AllocationValidation,
    BudgetHealth,
)

__all__ = [
    # Enumerations
    "Cadence",
    "CalculationType",
    "IntervalStatus",
    "AllocationStatus",
    "ReconciliationStatus",
    "HealthStatus",
    # Constants
    "CADENCE_DAY_LENGTHS",
    "CADENCE_PERIODS_PER_YEAR",
    # Inputs
    "IncomeProfile",
    "BudgetRule",
    # Intervals
    "Interval",
    # Engine output
    "CalculationTrace",
    "AllocationResult",
    "BatchSummary",
    "BatchResult",
    # Lifecycle records
    "Allocation",
    # Reconciliation views
    "AllocationVariance",
    "ReconciliationReport",
    "ReconciliationSummary",
    "CategoryBreakdown",
    "AllocationSummary",
    "RemainingBudget",
    "AllocationIssue",
    "AllocationValidation",
    "BudgetHealth",
]
