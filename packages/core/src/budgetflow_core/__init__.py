"""BudgetFlow Core - Pay interval allocation engine."""

__version__ = "0.1.0"

from .config import BudgetFlowConfig, EngineConfig, ReconciliationThresholds, RoundingMode
from .dependencies import resolve, resolve_dependencies, validate_rule_set
from .engine import AllocationEngine, generate_allocations
from .evaluator import evaluate_rule, pro_rate_factor, round_amount
from .exceptions import BudgetFlowError
from .intervals import first_interval, next_interval
from .lifecycle import AllocationLifecycle
from .log_config import configure_logging
from .models import (
    Allocation,
    BatchResult,
    BudgetRule,
    Cadence,
    CalculationType,
    IncomeProfile,
    Interval,
)
from .store import AllocationStore, InMemoryStore

__all__ = [
    "AllocationEngine",
    "AllocationLifecycle",
    "AllocationStore",
    "InMemoryStore",
    "generate_allocations",
    "evaluate_rule",
    "pro_rate_factor",
    "round_amount",
    "resolve",
    "resolve_dependencies",
    "validate_rule_set",
    "first_interval",
    "next_interval",
    "configure_logging",
    "BudgetFlowConfig",
    "EngineConfig",
    "ReconciliationThresholds",
    "RoundingMode",
    "BudgetFlowError",
    "Allocation",
    "BatchResult",
    "BudgetRule",
    "Cadence",
    "CalculationType",
    "IncomeProfile",
    "Interval",
]
