"""Tests for the allocation and interval lifecycle."""

from contextlib import contextmanager
from datetime import date
from decimal import Decimal

import pytest
from structlog.testing import capture_logs

from budgetflow_core import AllocationLifecycle, BudgetFlowConfig, InMemoryStore
from budgetflow_core.exceptions import (
    ActiveIntervalConflictError,
    AllocationNotFoundError,
    ConfigurationError,
    IntervalNotFoundError,
    InvalidRuleValueError,
    InvalidTransitionError,
)
from budgetflow_core.intervals import first_interval, next_interval
from budgetflow_core.models import (
    Allocation,
    AllocationStatus,
    HealthStatus,
    IntervalStatus,
    ReconciliationStatus,
)


@pytest.fixture
def opened(lifecycle, monthly_income, rules):
    """An ACTIVE January interval with rent and savings allocations."""
    interval = lifecycle.open_next_interval(monthly_income, rules)
    allocations = {a.rule_id: a for a in lifecycle.store.list_allocations(interval.id)}
    return interval, allocations


def seed_interval(store, allocation_statuses):
    interval = store.add_interval(first_interval("monthly", date(2025, 1, 1), Decimal("3000"), "salary"))
    store.replace_allocations(
        interval.id,
        [
            Allocation(
                interval_id=interval.id,
                rule_id=f"r{n}",
                expected_amount=Decimal("100"),
                status=status,
            )
            for n, status in enumerate(allocation_statuses)
        ],
    )
    return interval


class TestTryAutoComplete:
    """Test suite for try_auto_complete."""

    def test_all_paid_completes(self, lifecycle, store):
        interval = seed_interval(store, [AllocationStatus.PAID, AllocationStatus.PAID])

        assert lifecycle.try_auto_complete(interval.id) == IntervalStatus.COMPLETED
        assert store.get_interval(interval.id).is_completed

    def test_partially_paid_stays_active(self, lifecycle, store):
        interval = seed_interval(store, [AllocationStatus.PAID, AllocationStatus.UNPAID])

        assert lifecycle.try_auto_complete(interval.id) == IntervalStatus.ACTIVE

    def test_no_allocations_stays_active(self, lifecycle, store):
        interval = seed_interval(store, [])

        assert lifecycle.try_auto_complete(interval.id) == IntervalStatus.ACTIVE

    def test_can_auto_complete(self, lifecycle, store):
        interval = seed_interval(store, [AllocationStatus.PAID])

        assert lifecycle.can_auto_complete(interval.id)

        lifecycle.try_auto_complete(interval.id)
        assert not lifecycle.can_auto_complete(interval.id)

    def test_cannot_auto_complete_without_allocations(self, lifecycle, store):
        interval = seed_interval(store, [])

        assert not lifecycle.can_auto_complete(interval.id)


class TestMarkPaid:
    """Test suite for mark_paid and mark_unpaid."""

    def test_mark_paid_records_actual(self, lifecycle, opened):
        interval, allocations = opened

        paid = lifecycle.mark_paid(allocations["R1"].id, Decimal("990.00"))

        assert paid.status == AllocationStatus.PAID
        assert lifecycle.store.get_allocation(paid.id).actual_amount == Decimal("990.00")
        assert lifecycle.store.get_interval(interval.id).status == IntervalStatus.ACTIVE

    def test_last_payment_completes_interval(self, lifecycle, opened):
        interval, allocations = opened

        with capture_logs() as logs:
            lifecycle.mark_paid(allocations["R1"].id)
            lifecycle.mark_paid(allocations["R2"].id)

        assert lifecycle.store.get_interval(interval.id).is_completed
        assert any(log["event"] == "interval_auto_completed" for log in logs)

    def test_mark_paid_missing_allocation(self, lifecycle):
        with pytest.raises(AllocationNotFoundError):
            lifecycle.mark_paid("nope")

    def test_mark_unpaid_reopens_interval(self, lifecycle, opened):
        """Unpaying an allocation of a completed interval reactivates it."""
        interval, allocations = opened
        lifecycle.mark_paid(allocations["R1"].id, Decimal("1000"))
        lifecycle.mark_paid(allocations["R2"].id)

        unpaid = lifecycle.mark_unpaid(allocations["R1"].id)

        assert unpaid.status == AllocationStatus.UNPAID
        assert unpaid.actual_amount is None
        assert lifecycle.store.get_interval(interval.id).status == IntervalStatus.ACTIVE

    def test_mark_unpaid_conflict_leaves_allocation_paid(self, lifecycle, opened, monthly_income):
        """If the interval cannot be reopened nothing changes."""
        interval, allocations = opened
        lifecycle.mark_paid(allocations["R1"].id)
        lifecycle.mark_paid(allocations["R2"].id)
        lifecycle.open_next_interval(monthly_income)

        with pytest.raises(ActiveIntervalConflictError):
            lifecycle.mark_unpaid(allocations["R1"].id)

        assert lifecycle.store.get_allocation(allocations["R1"].id).status == AllocationStatus.PAID
        assert lifecycle.store.get_interval(interval.id).is_completed


class TestReactivate:
    """Test suite for reactivate and complete_interval."""

    def test_reactivate_completed(self, lifecycle, opened):
        interval, _ = opened
        lifecycle.complete_interval(interval.id)

        reactivated = lifecycle.reactivate(interval.id)

        assert reactivated.status == IntervalStatus.ACTIVE
        assert lifecycle.store.get_interval(interval.id).status == IntervalStatus.ACTIVE

    def test_reactivate_conflict(self, lifecycle, opened, monthly_income):
        """Another ACTIVE interval for the profile blocks reactivation."""
        interval, _ = opened
        lifecycle.complete_interval(interval.id)
        newer = lifecycle.open_next_interval(monthly_income)

        with pytest.raises(ActiveIntervalConflictError) as exc_info:
            lifecycle.reactivate(interval.id)

        assert exc_info.value.details["existing_interval_id"] == newer.id
        assert lifecycle.store.get_interval(interval.id).is_completed

    def test_reactivate_active_interval_rejected(self, lifecycle, opened):
        interval, _ = opened

        with pytest.raises(InvalidTransitionError):
            lifecycle.reactivate(interval.id)

    def test_reactivate_missing(self, lifecycle):
        with pytest.raises(IntervalNotFoundError):
            lifecycle.reactivate("nope")

    def test_complete_records_actual_net(self, lifecycle, opened):
        interval, _ = opened

        completed = lifecycle.complete_interval(interval.id, Decimal("2950.00"))

        assert completed.actual_net == Decimal("2950.00")
        assert lifecycle.store.get_interval(interval.id).actual_net == Decimal("2950.00")


class TestOpenNextInterval:
    """Test suite for open_next_interval."""

    def test_first_interval_from_profile_start(self, lifecycle, monthly_income):
        interval = lifecycle.open_next_interval(monthly_income)

        assert interval.start_date == date(2025, 1, 1)
        assert interval.end_date == date(2025, 1, 31)
        assert interval.income_profile_id == "salary"
        assert interval.expected_net == Decimal("3000.00")

    def test_generates_allocations(self, opened):
        _, allocations = opened

        assert allocations["R1"].expected_amount == Decimal("1000.00")
        assert allocations["R2"].expected_amount == Decimal("400.00")
        assert allocations["R2"].category == "savings"

    def test_refuses_while_active(self, lifecycle, opened, monthly_income):
        with pytest.raises(ActiveIntervalConflictError):
            lifecycle.open_next_interval(monthly_income)

    def test_force_completes_current(self, lifecycle, opened, monthly_income):
        interval, _ = opened

        following = lifecycle.open_next_interval(monthly_income, force=True)

        assert lifecycle.store.get_interval(interval.id).is_completed
        assert following.start_date == date(2025, 2, 1)
        assert following.end_date == date(2025, 2, 28)
        assert following.status == IntervalStatus.ACTIVE

    def test_malformed_rule_leaves_store_untouched(self, lifecycle, opened, monthly_income, rules):
        """A forced open that fails to generate keeps the current interval ACTIVE."""
        interval, allocations = opened
        broken = [r.model_copy(update={"value": Decimal("NaN")}) if r.id == "R2" else r for r in rules]

        with pytest.raises(InvalidRuleValueError):
            lifecycle.open_next_interval(monthly_income, broken, force=True)

        stored = lifecycle.store.list_intervals("salary")
        assert [i.id for i in stored] == [interval.id]
        assert stored[0].status == IntervalStatus.ACTIVE
        assert len(lifecycle.store.list_allocations(interval.id)) == len(allocations)

    def test_generation_precedes_writes(self, monthly_income, rules):
        """Without store rollback a malformed rule still changes nothing."""

        class PlainStore(InMemoryStore):
            @contextmanager
            def transaction(self):
                with self._lock:
                    yield self

        lifecycle = AllocationLifecycle(PlainStore())
        current = lifecycle.open_next_interval(monthly_income, rules)
        broken = [r.model_copy(update={"value": Decimal("NaN")}) if r.id == "R2" else r for r in rules]

        with pytest.raises(InvalidRuleValueError):
            lifecycle.open_next_interval(monthly_income, broken, force=True)

        assert [i.id for i in lifecycle.store.list_intervals()] == [current.id]
        assert lifecycle.store.get_interval(current.id).status == IntervalStatus.ACTIVE

    def test_inactive_income_rejected(self, lifecycle, monthly_income):
        inactive = monthly_income.model_copy(update={"is_active": False})

        with pytest.raises(ConfigurationError):
            lifecycle.open_next_interval(inactive)


class TestRegenerate:
    """Test suite for regenerate_allocations."""

    def test_regenerate_replaces_previous_generation(self, lifecycle, opened, monthly_income, rules):
        interval, allocations = opened
        lifecycle.mark_paid(allocations["R1"].id)
        raise_rent = [r.model_copy(update={"value": Decimal("1500")}) if r.id == "R1" else r for r in rules]

        batch = lifecycle.regenerate_allocations(interval.id, raise_rent, monthly_income)
        stored = lifecycle.store.list_allocations(interval.id)

        assert batch.summary.total_allocated == Decimal("1800.00")
        assert len(stored) == 2
        assert {a.id for a in stored}.isdisjoint(a.id for a in allocations.values())
        assert all(a.status == AllocationStatus.UNPAID for a in stored)

    def test_regenerate_missing_interval(self, lifecycle, monthly_income, rules):
        with pytest.raises(IntervalNotFoundError):
            lifecycle.regenerate_allocations("nope", rules, monthly_income)


class TestReadViews:
    """Test suite for the lifecycle's reconciliation views."""

    def test_reconcile_incomplete(self, lifecycle, opened):
        interval, _ = opened

        assert lifecycle.reconcile(interval.id).status == ReconciliationStatus.INCOMPLETE

    def test_reconcile_after_completion(self, lifecycle, opened):
        interval, allocations = opened
        lifecycle.mark_paid(allocations["R1"].id, Decimal("1000"))
        lifecycle.mark_paid(allocations["R2"].id, Decimal("400"))
        lifecycle.complete_interval(interval.id, Decimal("2900"))

        report = lifecycle.reconcile(interval.id)

        assert report.status == ReconciliationStatus.MINOR
        assert report.unallocated_amount == Decimal("1500")

    def test_allocation_summary_and_remaining(self, lifecycle, opened):
        interval, allocations = opened
        lifecycle.mark_paid(allocations["R1"].id, Decimal("1000"))

        summary = lifecycle.allocation_summary(interval.id)
        remaining = lifecycle.remaining_budget(interval.id)

        assert summary.paid_count == 1
        assert summary.unpaid_count == 1
        assert remaining.remaining_to_allocate == Decimal("1600.00")
        assert remaining.remaining_to_spend == Decimal("400.00")

    def test_validate_allocations(self, lifecycle, opened):
        interval, allocations = opened
        lifecycle.mark_paid(allocations["R1"].id, Decimal("1100"))

        result = lifecycle.validate_allocations(interval.id)

        assert result.is_valid
        assert [w.code for w in result.warnings] == ["AMOUNT_MISMATCH"]

    def test_budget_health(self, lifecycle, opened):
        """Rent and savings take 1400 of 3000, an under-allocated interval."""
        interval, _ = opened

        health = lifecycle.budget_health(interval.id)

        assert health.total_allocated == Decimal("1400.00")
        assert health.surplus == Decimal("1600.00")
        assert health.percent_allocated == Decimal("46.67")
        assert health.health_score == Decimal("76.67")
        assert health.status == HealthStatus.GOOD

    def test_budget_health_missing_interval(self, lifecycle):
        with pytest.raises(IntervalNotFoundError):
            lifecycle.budget_health("nope")

    def test_reconciliation_summary(self, lifecycle, opened, monthly_income):
        interval, _ = opened
        lifecycle.complete_interval(interval.id, Decimal("3000"))
        lifecycle.open_next_interval(monthly_income)

        summary = lifecycle.reconciliation_summary("salary")

        assert summary.total_intervals == 2
        assert summary.completed_intervals == 1
        assert summary.perfect_count == 1

    def test_from_config(self, monthly_income):
        config = BudgetFlowConfig(engine={"rounding": "up"}, reconciliation={"perfect_pct": "2"})

        lifecycle = AllocationLifecycle.from_config(InMemoryStore(), config)

        assert lifecycle.engine.config.rounding.value == "up"
        assert lifecycle.thresholds.perfect_pct == Decimal("2")
