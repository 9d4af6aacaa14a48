"""Dependency ordering and structural validation for budget rules.

REMAINING_PERCENT rules take a percentage of what is left after other rules,
so those rules must be evaluated first. The resolver orders active rules so
that every rule follows the rules it depends on, and degrades to a
best-effort order when the graph contains cycles or references to missing
or inactive rules. It never raises for structural problems; it reports the
rules it could not place in ``unresolved_rule_ids`` instead.
"""

from decimal import Decimal

import structlog
from pydantic import BaseModel, Field

from .models import BudgetRule, CalculationType

logger = structlog.get_logger()


class DependencyResolution(BaseModel):
    """Result of ordering a rule set.

    Attributes:
        ordered: Every active rule exactly once, dependencies first. Rules
            listed in ``unresolved_rule_ids`` trail the list in priority order
            and are not guaranteed to follow their dependencies.
        unresolved_rule_ids: Rules that could not be placed.
        iterations: Number of resolution passes performed.
    """

    ordered: list[BudgetRule] = Field(default_factory=list)
    unresolved_rule_ids: list[str] = Field(default_factory=list)
    iterations: int = 0

    @property
    def is_complete(self) -> bool:
        """Returns True when the order is a valid topological order."""
        return len(self.unresolved_rule_ids) == 0

    @property
    def order(self) -> list[str]:
        """Rule ids in resolved order."""
        return [rule.id for rule in self.ordered]


class RuleSetValidation(BaseModel):
    """Structural problems found in a rule set."""

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0


def resolve_dependencies(
    rules: list[BudgetRule],
    max_iterations: int = 10,
) -> DependencyResolution:
    """Order active rules so dependencies come before their dependents.

    Active rules are first sorted by ascending priority (stable). Each pass
    scans the pending rules from back to front and collects those whose
    dependencies were all resolved before the pass began; the collected
    rules are appended in ascending priority order. Resolution stops when
    nothing is pending, when a pass makes no progress, or after
    ``max_iterations`` passes. Whatever is still pending is appended as-is.

    Args:
        rules: Rules in any order; inactive rules are dropped.
        max_iterations: Upper bound on the number of passes.

    Returns:
        The resolution, including any rules that could not be ordered.
    """
    pending = sorted((rule for rule in rules if rule.is_active), key=lambda r: r.priority)
    resolved: list[BudgetRule] = []
    resolved_ids: set[str] = set()
    iterations = 0

    while pending and iterations < max_iterations:
        iterations += 1
        ready_ids = set(resolved_ids)
        ready: list[BudgetRule] = []

        for index in range(len(pending) - 1, -1, -1):
            rule = pending[index]
            if all(dep_id in ready_ids for dep_id in rule.depends_on):
                ready.append(pending.pop(index))

        if not ready:
            break

        # Collected back to front; restore priority order within the pass
        ready.sort(key=lambda r: r.priority)
        resolved.extend(ready)
        resolved_ids.update(rule.id for rule in ready)

    unresolved_ids = [rule.id for rule in pending]
    if pending:
        logger.warning(
            "dependency_resolution_incomplete",
            unresolved_rule_ids=unresolved_ids,
            iterations=iterations,
            max_iterations=max_iterations,
        )
        resolved.extend(pending)

    logger.debug(
        "dependencies_resolved",
        rule_count=len(resolved),
        iterations=iterations,
        unresolved_count=len(unresolved_ids),
    )

    return DependencyResolution(
        ordered=resolved,
        unresolved_rule_ids=unresolved_ids,
        iterations=iterations,
    )


def resolve(rules: list[BudgetRule], max_iterations: int = 10) -> list[BudgetRule]:
    """Return active rules in dependency order (see :func:`resolve_dependencies`)."""
    return resolve_dependencies(rules, max_iterations=max_iterations).ordered


def find_cycle_members(rules: list[BudgetRule]) -> set[str]:
    """Return ids of active rules that sit on a dependency cycle.

    Self-dependencies count as cycles. Edges to missing or inactive rules are
    ignored.
    """
    graph = {
        rule.id: [dep for dep in rule.depends_on if dep != rule.id]
        for rule in rules
        if rule.is_active
    }
    members = {rule.id for rule in rules if rule.is_active and rule.is_self_dependent}

    for start in graph:
        # A node is on a cycle when it can reach itself
        stack = [dep for dep in graph[start] if dep in graph]
        seen: set[str] = set()
        while stack:
            node = stack.pop()
            if node == start:
                members.add(start)
                break
            if node in seen:
                continue
            seen.add(node)
            stack.extend(dep for dep in graph[node] if dep in graph)

    return members


def validate_rule_set(rules: list[BudgetRule]) -> RuleSetValidation:
    """Check a rule set for structural problems before allocation.

    Errors cover rule sets the engine can only process on a best-effort
    basis: no active rules, REMAINING_PERCENT rules without dependencies,
    dependencies on missing, inactive or self references, and cycles.
    Percentages outside (0, 100] are warnings.
    """
    result = RuleSetValidation()
    by_id = {rule.id: rule for rule in rules}
    active = [rule for rule in rules if rule.is_active]

    if not active:
        result.errors.append("No active budget rules found")
        return result

    for rule in active:
        label = rule.name or rule.id

        if rule.calc_type == CalculationType.REMAINING_PERCENT and not rule.depends_on:
            result.errors.append(
                f'"{label}" uses REMAINING_PERCENT but has no dependencies'
            )

        for dep_id in rule.depends_on:
            if dep_id == rule.id:
                result.errors.append(f'"{label}" cannot depend on itself')
                continue
            dependency = by_id.get(dep_id)
            if dependency is None:
                result.errors.append(f'"{label}" depends on non-existent rule {dep_id}')
            elif not dependency.is_active:
                result.errors.append(
                    f'"{label}" depends on inactive rule "{dependency.name or dependency.id}"'
                )

        if rule.is_percentage:
            if rule.value <= 0:
                result.warnings.append(f'"{label}" has a percentage of 0% or less')
            elif rule.value > Decimal("100"):
                result.warnings.append(f'"{label}" has a percentage over 100%')

    for rule_id in sorted(find_cycle_members(active) - {r.id for r in active if r.is_self_dependent}):
        rule = by_id[rule_id]
        result.errors.append(f'"{rule.name or rule.id}" is part of a circular dependency')

    return result
