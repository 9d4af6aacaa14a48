"""Shared fixtures for budgetflow-core tests."""

from datetime import date
from decimal import Decimal

import pytest
import structlog

from budgetflow_core import (
    AllocationLifecycle,
    BudgetRule,
    CalculationType,
    IncomeProfile,
    InMemoryStore,
)


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo any structlog configuration a test installed."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def monthly_income() -> IncomeProfile:
    """Monthly salary of 4200 gross / 3000 net."""
    return IncomeProfile(
        id="salary",
        name="Acme Corp salary",
        cadence="monthly",
        gross_amount=Decimal("4200.00"),
        net_amount=Decimal("3000.00"),
        start_date=date(2025, 1, 1),
    )


@pytest.fixture
def rent_rule() -> BudgetRule:
    return BudgetRule(
        id="R1",
        name="Rent",
        category="housing",
        calc_type=CalculationType.FIXED,
        value=Decimal("1000.00"),
        cadence="monthly",
        priority=1,
    )


@pytest.fixture
def savings_rule() -> BudgetRule:
    """20% of whatever is left after rent."""
    return BudgetRule(
        id="R2",
        name="Savings",
        category="savings",
        calc_type=CalculationType.REMAINING_PERCENT,
        value=Decimal("20"),
        cadence="monthly",
        priority=2,
        depends_on=["R1"],
    )


@pytest.fixture
def rules(rent_rule: BudgetRule, savings_rule: BudgetRule) -> list[BudgetRule]:
    return [savings_rule, rent_rule]


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def lifecycle(store: InMemoryStore) -> AllocationLifecycle:
    return AllocationLifecycle(store)
