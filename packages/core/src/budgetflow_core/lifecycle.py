"""Allocation and interval lifecycle.

State machine:

    Allocation:  UNPAID <-> PAID
    Interval:    ACTIVE  -> COMPLETED  (explicitly, or automatically once every
                                        allocation is PAID)
                 COMPLETED -> ACTIVE   (reactivation, or implicitly when one of
                                        its allocations is marked unpaid)

At most one interval per income profile may be ACTIVE. Every mutation runs
inside ``store.transaction()`` and the store re-checks that constraint on
write. A failing operation leaves no partial change behind: the store rolls
back the transaction, and generation runs before any write.
"""

from decimal import Decimal
from typing import Optional

import structlog

from .config import BudgetFlowConfig, EngineConfig, ReconciliationThresholds
from .engine import AllocationEngine
from .exceptions import (
    ActiveIntervalConflictError,
    ConfigurationError,
    InvalidTransitionError,
)
from .intervals import first_interval, next_interval
from .models import (
    Allocation,
    AllocationStatus,
    AllocationSummary,
    AllocationValidation,
    BatchResult,
    BudgetHealth,
    BudgetRule,
    IncomeProfile,
    Interval,
    IntervalStatus,
    ReconciliationReport,
    ReconciliationSummary,
    RemainingBudget,
)
from . import reconciliation
from .store import AllocationStore

logger = structlog.get_logger()


class AllocationLifecycle:
    """
    Tracks allocations through payment and their intervals through completion.

    Example:
        lifecycle = AllocationLifecycle(InMemoryStore())
        interval = lifecycle.open_next_interval(income, rules)
        for allocation in lifecycle.store.list_allocations(interval.id):
            lifecycle.mark_paid(allocation.id)
        assert lifecycle.store.get_interval(interval.id).is_completed
    """

    def __init__(
        self,
        store: AllocationStore,
        config: Optional[EngineConfig] = None,
        thresholds: Optional[ReconciliationThresholds] = None,
    ):
        """
        Initialize the lifecycle over a store.

        Args:
            store: Interval and allocation storage
            config: Calculation policy used when (re)generating allocations
            thresholds: Variance thresholds used by reconciliation views
        """
        self.store = store
        self.engine = AllocationEngine(config)
        self.thresholds = thresholds or ReconciliationThresholds()

    @classmethod
    def from_config(cls, store: AllocationStore, config: BudgetFlowConfig) -> "AllocationLifecycle":
        """Build a lifecycle from loaded settings."""
        return cls(store, config=config.engine, thresholds=config.reconciliation)

    # =========================================================================
    # ALLOCATION TRANSITIONS
    # =========================================================================

    def mark_paid(self, allocation_id: str, actual_amount: Optional[Decimal] = None) -> Allocation:
        """
        Mark an allocation as paid and complete its interval if it was the last one.

        Args:
            allocation_id: Allocation to update
            actual_amount: Amount actually paid, if known

        Raises:
            AllocationNotFoundError: If the allocation does not exist.
        """
        with self.store.transaction():
            allocation = self.store.get_allocation(allocation_id)
            allocation.status = AllocationStatus.PAID
            if actual_amount is not None:
                allocation.actual_amount = Decimal(str(actual_amount))
            self.store.update_allocation(allocation)

            logger.info(
                "allocation_marked_paid",
                allocation_id=allocation_id,
                interval_id=allocation.interval_id,
                actual_amount=str(allocation.actual_amount) if allocation.actual_amount is not None else None,
            )

            self.try_auto_complete(allocation.interval_id)
            return allocation

    def mark_unpaid(self, allocation_id: str) -> Allocation:
        """
        Mark an allocation as unpaid, reopening its interval if it was completed.

        Raises:
            AllocationNotFoundError: If the allocation does not exist.
            ActiveIntervalConflictError: If the interval must be reopened but
                another interval of the same income profile is ACTIVE. The
                allocation is left unchanged.
        """
        with self.store.transaction():
            allocation = self.store.get_allocation(allocation_id)
            interval = self.store.get_interval(allocation.interval_id)

            if interval.status == IntervalStatus.COMPLETED:
                self.reactivate(interval.id)

            allocation.status = AllocationStatus.UNPAID
            allocation.actual_amount = None
            self.store.update_allocation(allocation)

            logger.info(
                "allocation_marked_unpaid",
                allocation_id=allocation_id,
                interval_id=allocation.interval_id,
            )
            return allocation

    # =========================================================================
    # INTERVAL TRANSITIONS
    # =========================================================================

    def can_auto_complete(self, interval_id: str) -> bool:
        """Returns True if the interval is ACTIVE and every allocation (at least one) is PAID."""
        interval = self.store.get_interval(interval_id)
        if interval.status != IntervalStatus.ACTIVE:
            return False
        allocations = self.store.list_allocations(interval_id)
        return bool(allocations) and all(a.is_paid for a in allocations)

    def try_auto_complete(self, interval_id: str) -> IntervalStatus:
        """
        Complete the interval if all of its allocations are paid.

        An interval without allocations is never auto-completed.

        Returns:
            The interval's status after the attempt.
        """
        with self.store.transaction():
            interval = self.store.get_interval(interval_id)
            if not self.can_auto_complete(interval_id):
                return interval.status

            interval.status = IntervalStatus.COMPLETED
            self.store.update_interval(interval)
            logger.info(
                "interval_auto_completed",
                interval_id=interval_id,
                income_profile_id=interval.income_profile_id,
            )
            return interval.status

    def complete_interval(self, interval_id: str, actual_net: Optional[Decimal] = None) -> Interval:
        """
        Mark an interval as completed, optionally recording the net actually received.

        Completing an already completed interval only updates ``actual_net``.
        """
        with self.store.transaction():
            interval = self.store.get_interval(interval_id)
            interval.status = IntervalStatus.COMPLETED
            if actual_net is not None:
                interval.actual_net = Decimal(str(actual_net))
            self.store.update_interval(interval)

        logger.info(
            "interval_completed",
            interval_id=interval_id,
            actual_net=str(interval.actual_net) if interval.actual_net is not None else None,
        )
        return interval

    def reactivate(self, interval_id: str) -> Interval:
        """
        Return a completed interval to ACTIVE.

        Raises:
            IntervalNotFoundError: If the interval does not exist.
            InvalidTransitionError: If the interval is not COMPLETED.
            ActiveIntervalConflictError: If another interval of the same
                income profile is already ACTIVE.
        """
        with self.store.transaction():
            interval = self.store.get_interval(interval_id)
            if interval.status != IntervalStatus.COMPLETED:
                raise InvalidTransitionError(
                    "Only COMPLETED intervals can be reactivated",
                    interval_id=interval_id,
                    details={"status": interval.status.value},
                )

            interval.status = IntervalStatus.ACTIVE
            self.store.update_interval(interval)

        logger.info(
            "interval_reactivated",
            interval_id=interval_id,
            income_profile_id=interval.income_profile_id,
        )
        return interval

    # =========================================================================
    # GENERATION
    # =========================================================================

    def _install_batch(self, interval_id: str, rules: list[BudgetRule], batch: BatchResult) -> None:
        categories = {rule.id: rule.category for rule in rules}
        self.store.replace_allocations(interval_id, batch.to_allocations(categories))
        logger.info(
            "allocations_regenerated",
            interval_id=interval_id,
            count=len(batch.allocations),
            success=batch.success,
        )

    def regenerate_allocations(
        self,
        interval_id: str,
        rules: list[BudgetRule],
        income: IncomeProfile,
        pro_rate_override: Optional[Decimal] = None,
    ) -> BatchResult:
        """
        Recalculate an interval's allocations and replace the existing ones.

        Previous allocations, paid or not, are discarded in the same store
        call that installs the new batch.
        """
        with self.store.transaction():
            self.store.get_interval(interval_id)
            batch = self.engine.generate(rules, income, interval_id, pro_rate_override)
            self._install_batch(interval_id, rules, batch)
        return batch

    def open_next_interval(
        self,
        income: IncomeProfile,
        rules: Optional[list[BudgetRule]] = None,
        force: bool = False,
    ) -> Interval:
        """
        Create the next interval for an income profile.

        The new interval follows the profile's latest interval, or is the
        first interval from the profile's start date if it has none. When
        ``rules`` are given the batch is calculated before the store is
        touched, so a malformed rule leaves the current interval as it was.

        Args:
            income: Income profile to open an interval for
            rules: If given, allocations are generated for the new interval
            force: Complete the currently ACTIVE interval instead of refusing

        Raises:
            ConfigurationError: If the income profile is inactive, or a rule
                carries a malformed value.
            ActiveIntervalConflictError: If an interval is ACTIVE and
                ``force`` is False.
        """
        if not income.is_active:
            raise ConfigurationError(
                f"Income profile {income.id} is inactive",
                config_key="is_active",
                expected="True",
                actual=income.is_active,
            )

        with self.store.transaction():
            current = self.store.active_interval(income.id)
            if current is not None and not force:
                raise ActiveIntervalConflictError(
                    current.id,
                    income_profile_id=income.id,
                    existing_interval_id=current.id,
                )

            latest = self.store.latest_interval(income.id)
            if latest is not None:
                interval = next_interval(income.cadence, latest.end_date, income.net_amount, income.id)
            else:
                interval = first_interval(income.cadence, income.start_date, income.net_amount, income.id)

            batch = None
            if rules is not None:
                batch = self.engine.generate(rules, income, interval.id)

            if current is not None:
                self.complete_interval(current.id)

            self.store.add_interval(interval)
            logger.info(
                "interval_opened",
                interval_id=interval.id,
                income_profile_id=income.id,
                start_date=interval.start_date.isoformat(),
                end_date=interval.end_date.isoformat(),
            )

            if batch is not None:
                self._install_batch(interval.id, rules, batch)

        return interval

    # =========================================================================
    # READ-ONLY VIEWS
    # =========================================================================

    def reconcile(self, interval_id: str) -> ReconciliationReport:
        """Expected vs. actual report for one interval."""
        interval = self.store.get_interval(interval_id)
        return reconciliation.reconcile_interval(
            interval, self.store.list_allocations(interval_id), self.thresholds
        )

    def allocation_summary(self, interval_id: str) -> AllocationSummary:
        self.store.get_interval(interval_id)
        return reconciliation.summarize_allocations(
            interval_id, self.store.list_allocations(interval_id)
        )

    def remaining_budget(self, interval_id: str) -> RemainingBudget:
        interval = self.store.get_interval(interval_id)
        return reconciliation.remaining_budget(interval, self.store.list_allocations(interval_id))

    def validate_allocations(self, interval_id: str) -> AllocationValidation:
        self.store.get_interval(interval_id)
        return reconciliation.validate_allocations(self.store.list_allocations(interval_id))

    def budget_health(self, interval_id: str) -> BudgetHealth:
        """Health score for how fully an interval's net income is allocated."""
        interval = self.store.get_interval(interval_id)
        return reconciliation.budget_health(interval, self.store.list_allocations(interval_id))

    def reconciliation_summary(self, income_profile_id: Optional[str] = None) -> ReconciliationSummary:
        """Reconciliation statistics across every interval of a profile."""
        intervals = self.store.list_intervals(income_profile_id)
        allocations = {i.id: self.store.list_allocations(i.id) for i in intervals}
        return reconciliation.summarize_reconciliations(intervals, allocations, self.thresholds)
