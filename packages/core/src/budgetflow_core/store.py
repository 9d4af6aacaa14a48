"""Persistence boundary for intervals and allocations.

The lifecycle layer talks to storage only through :class:`AllocationStore`,
a structural protocol: any object with matching methods qualifies, no
inheritance required. :class:`InMemoryStore` is the reference
implementation used by tests and previews.

Stores own two guarantees the lifecycle relies on:

- At most one ACTIVE interval per income profile. The check happens at
  write time, inside the store, so check-then-act races in callers cannot
  violate it.
- ``replace_allocations`` swaps an interval's allocations in one step;
  readers see either the old generation or the new one, never a mix.
- An exception escaping the outermost ``transaction()`` undoes every write
  made inside it.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import ContextManager, Iterator, Optional, Protocol, runtime_checkable

import structlog

from .exceptions import (
    ActiveIntervalConflictError,
    AllocationNotFoundError,
    IntervalNotFoundError,
)
from .models import Allocation, Interval, IntervalStatus

logger = structlog.get_logger()


@runtime_checkable
class AllocationStore(Protocol):
    """Contract for interval and allocation storage.

    Reads return copies; callers persist changes through the update methods.
    ``transaction()`` groups several calls into one unit that other writers
    cannot interleave with, and that is rolled back if it raises.
    """

    def transaction(self) -> ContextManager:
        """Context manager serializing a group of store calls, all or nothing."""
        ...

    def get_interval(self, interval_id: str) -> Interval:
        """Raise IntervalNotFoundError if missing."""
        ...

    def add_interval(self, interval: Interval) -> Interval:
        """Raise ActiveIntervalConflictError if it would be a second ACTIVE interval."""
        ...

    def update_interval(self, interval: Interval) -> Interval:
        """Raise ActiveIntervalConflictError if it would be a second ACTIVE interval."""
        ...

    def list_intervals(self, income_profile_id: Optional[str] = None) -> list[Interval]:
        """Intervals ordered by start date, optionally for one profile."""
        ...

    def latest_interval(self, income_profile_id: Optional[str]) -> Optional[Interval]:
        """The interval with the latest end date for a profile."""
        ...

    def active_interval(
        self,
        income_profile_id: Optional[str],
        exclude_id: Optional[str] = None,
    ) -> Optional[Interval]:
        """The ACTIVE interval for a profile, ignoring ``exclude_id``."""
        ...

    def get_allocation(self, allocation_id: str) -> Allocation:
        """Raise AllocationNotFoundError if missing."""
        ...

    def update_allocation(self, allocation: Allocation) -> Allocation:
        ...

    def list_allocations(self, interval_id: str) -> list[Allocation]:
        ...

    def replace_allocations(self, interval_id: str, allocations: list[Allocation]) -> None:
        """Atomically swap every allocation of an interval."""
        ...


class InMemoryStore:
    """Thread-safe dictionary-backed store.

    All access goes through one re-entrant lock, so ``transaction()`` can
    wrap any sequence of other calls. Nested transactions join the outermost
    one; only the outermost snapshots state and restores it on error.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._depth = 0
        self._intervals: dict[str, Interval] = {}
        self._allocations: dict[str, list[Allocation]] = {}

    def _snapshot(self) -> tuple[dict[str, Interval], dict[str, list[Allocation]]]:
        intervals = {key: interval.model_copy(deep=True) for key, interval in self._intervals.items()}
        allocations = {
            key: [allocation.model_copy(deep=True) for allocation in items]
            for key, items in self._allocations.items()
        }
        return intervals, allocations

    @contextmanager
    def transaction(self) -> Iterator[InMemoryStore]:
        with self._lock:
            snapshot = self._snapshot() if self._depth == 0 else None
            self._depth += 1
            try:
                yield self
            except Exception as e:
                if snapshot is not None:
                    self._intervals, self._allocations = snapshot
                    logger.warning("store_transaction_rolled_back", error=str(e))
                raise
            finally:
                self._depth -= 1

    # -------------------------------------------------------------------------
    # Intervals
    # -------------------------------------------------------------------------

    def _check_single_active(self, interval: Interval) -> None:
        if interval.status != IntervalStatus.ACTIVE or interval.income_profile_id is None:
            return
        existing = self.active_interval(interval.income_profile_id, exclude_id=interval.id)
        if existing is not None:
            logger.warning(
                "active_interval_conflict",
                interval_id=interval.id,
                income_profile_id=interval.income_profile_id,
                existing_interval_id=existing.id,
            )
            raise ActiveIntervalConflictError(
                interval.id,
                income_profile_id=interval.income_profile_id,
                existing_interval_id=existing.id,
            )

    def get_interval(self, interval_id: str) -> Interval:
        with self._lock:
            interval = self._intervals.get(interval_id)
            if interval is None:
                raise IntervalNotFoundError(interval_id)
            return interval.model_copy(deep=True)

    def add_interval(self, interval: Interval) -> Interval:
        with self._lock:
            self._check_single_active(interval)
            self._intervals[interval.id] = interval.model_copy(deep=True)
            self._allocations.setdefault(interval.id, [])
            return interval

    def update_interval(self, interval: Interval) -> Interval:
        with self._lock:
            if interval.id not in self._intervals:
                raise IntervalNotFoundError(interval.id)
            self._check_single_active(interval)
            self._intervals[interval.id] = interval.model_copy(deep=True)
            return interval

    def list_intervals(self, income_profile_id: Optional[str] = None) -> list[Interval]:
        with self._lock:
            intervals = [
                interval.model_copy(deep=True)
                for interval in self._intervals.values()
                if income_profile_id is None or interval.income_profile_id == income_profile_id
            ]
        return sorted(intervals, key=lambda i: i.start_date)

    def latest_interval(self, income_profile_id: Optional[str]) -> Optional[Interval]:
        intervals = self.list_intervals(income_profile_id)
        if not intervals:
            return None
        return max(intervals, key=lambda i: i.end_date)

    def active_interval(
        self,
        income_profile_id: Optional[str],
        exclude_id: Optional[str] = None,
    ) -> Optional[Interval]:
        with self._lock:
            for interval in self._intervals.values():
                if (
                    interval.income_profile_id == income_profile_id
                    and interval.status == IntervalStatus.ACTIVE
                    and interval.id != exclude_id
                ):
                    return interval.model_copy(deep=True)
        return None

    # -------------------------------------------------------------------------
    # Allocations
    # -------------------------------------------------------------------------

    def _find_allocation(self, allocation_id: str) -> tuple[list[Allocation], int]:
        for allocations in self._allocations.values():
            for index, allocation in enumerate(allocations):
                if allocation.id == allocation_id:
                    return allocations, index
        raise AllocationNotFoundError(allocation_id)

    def get_allocation(self, allocation_id: str) -> Allocation:
        with self._lock:
            allocations, index = self._find_allocation(allocation_id)
            return allocations[index].model_copy(deep=True)

    def update_allocation(self, allocation: Allocation) -> Allocation:
        with self._lock:
            allocations, index = self._find_allocation(allocation.id)
            allocations[index] = allocation.model_copy(deep=True)
            return allocation

    def list_allocations(self, interval_id: str) -> list[Allocation]:
        with self._lock:
            return [a.model_copy(deep=True) for a in self._allocations.get(interval_id, [])]

    def replace_allocations(self, interval_id: str, allocations: list[Allocation]) -> None:
        with self._lock:
            if interval_id not in self._intervals:
                raise IntervalNotFoundError(interval_id)
            fresh = [a.model_copy(deep=True) for a in allocations]
            self._allocations[interval_id] = fresh
            logger.debug(
                "allocations_replaced",
                interval_id=interval_id,
                count=len(fresh),
            )
