"""Tests for dependency ordering and rule-set validation."""

from decimal import Decimal

import pytest
from structlog.testing import capture_logs

from budgetflow_core.dependencies import (
    find_cycle_members,
    resolve,
    resolve_dependencies,
    validate_rule_set,
)
from budgetflow_core.models import BudgetRule, CalculationType


def make_rule(
    rule_id: str,
    priority: int = 0,
    depends_on=None,
    calc_type=CalculationType.FIXED,
    value="100",
    is_active: bool = True,
) -> BudgetRule:
    return BudgetRule(
        id=rule_id,
        name=rule_id,
        calc_type=calc_type,
        value=Decimal(value),
        cadence="monthly",
        priority=priority,
        depends_on=depends_on,
        is_active=is_active,
    )


def ids(rules: list[BudgetRule]) -> list[str]:
    return [rule.id for rule in rules]


class TestResolveDependencies:
    """Test suite for resolve_dependencies."""

    def test_independent_rules_in_priority_order(self):
        """Rules without dependencies come out in ascending priority."""
        rules = [make_rule("c", 3), make_rule("a", 1), make_rule("b", 2)]

        assert ids(resolve(rules)) == ["a", "b", "c"]

    def test_equal_priorities_keep_input_order(self):
        rules = [make_rule("x", 1), make_rule("y", 1), make_rule("z", 1)]

        assert ids(resolve(rules)) == ["x", "y", "z"]

    def test_dependency_before_dependent(self):
        """A dependency is placed first even when its priority is higher."""
        rules = [
            make_rule("savings", 1, depends_on=["rent"]),
            make_rule("rent", 5),
        ]

        assert ids(resolve(rules)) == ["rent", "savings"]

    def test_acyclic_graph_is_topological(self):
        """Every active dependency appears before its dependent."""
        rules = [
            make_rule("d", 1, depends_on=["b", "c"]),
            make_rule("c", 2, depends_on=["a"]),
            make_rule("b", 3, depends_on=["a"]),
            make_rule("a", 4),
            make_rule("e", 0),
        ]

        result = resolve_dependencies(rules)
        order = result.order

        assert result.is_complete
        for rule in rules:
            for dep_id in rule.depends_on:
                assert order.index(dep_id) < order.index(rule.id)

    def test_inactive_rules_dropped(self):
        rules = [make_rule("a", 1), make_rule("b", 2, is_active=False)]

        assert ids(resolve(rules)) == ["a"]

    def test_two_cycle_terminates(self):
        """A direct 2-cycle returns both rules exactly once."""
        rules = [
            make_rule("a", 1, depends_on=["b"]),
            make_rule("b", 2, depends_on=["a"]),
        ]

        result = resolve_dependencies(rules, max_iterations=10)

        assert sorted(result.order) == ["a", "b"]
        assert result.unresolved_rule_ids == ["a", "b"]
        assert result.iterations <= 10
        assert not result.is_complete

    def test_cycle_does_not_block_other_rules(self):
        """Resolvable rules are ordered first; the cyclic tail follows."""
        rules = [
            make_rule("a", 1, depends_on=["b"]),
            make_rule("b", 2, depends_on=["a"]),
            make_rule("c", 3),
            make_rule("d", 4, depends_on=["c"]),
        ]

        result = resolve_dependencies(rules)

        assert result.order == ["c", "d", "a", "b"]
        assert result.unresolved_rule_ids == ["a", "b"]

    def test_missing_dependency_is_unresolved(self):
        rules = [make_rule("a", 1, depends_on=["ghost"]), make_rule("b", 2)]

        result = resolve_dependencies(rules)

        assert result.order == ["b", "a"]
        assert result.unresolved_rule_ids == ["a"]

    def test_inactive_dependency_is_unresolved(self):
        rules = [
            make_rule("a", 1, depends_on=["b"]),
            make_rule("b", 2, is_active=False),
        ]

        result = resolve_dependencies(rules)

        assert result.order == ["a"]
        assert result.unresolved_rule_ids == ["a"]

    def test_iteration_cap(self):
        """Hitting the pass cap leaves the remaining chain unresolved."""
        rules = [
            make_rule("a", 1),
            make_rule("b", 2, depends_on=["a"]),
            make_rule("c", 3, depends_on=["b"]),
        ]

        result = resolve_dependencies(rules, max_iterations=2)

        assert result.order == ["a", "b", "c"]
        assert result.unresolved_rule_ids == ["c"]
        assert result.iterations == 2

    def test_no_drops_no_duplicates(self):
        rules = [
            make_rule("a", 3, depends_on=["a"]),
            make_rule("b", 1, depends_on=["c"]),
            make_rule("c", 2, depends_on=["b"]),
            make_rule("d", 0),
        ]

        order = resolve_dependencies(rules).order

        assert sorted(order) == ["a", "b", "c", "d"]
        assert len(order) == len(set(order))

    def test_empty_rule_set(self):
        result = resolve_dependencies([])

        assert result.ordered == []
        assert result.is_complete
        assert result.iterations == 0

    def test_incomplete_resolution_logs_warning(self):
        rules = [make_rule("a", 1, depends_on=["a"])]

        with capture_logs() as logs:
            resolve_dependencies(rules)

        events = [log for log in logs if log["event"] == "dependency_resolution_incomplete"]
        assert len(events) == 1
        assert events[0]["log_level"] == "warning"
        assert events[0]["unresolved_rule_ids"] == ["a"]


class TestFindCycleMembers:
    """Test suite for find_cycle_members."""

    def test_detects_three_cycle(self):
        rules = [
            make_rule("a", depends_on=["b"]),
            make_rule("b", depends_on=["c"]),
            make_rule("c", depends_on=["a"]),
            make_rule("d", depends_on=["a"]),
        ]

        assert find_cycle_members(rules) == {"a", "b", "c"}

    def test_self_dependency(self):
        assert find_cycle_members([make_rule("a", depends_on=["a"])]) == {"a"}

    def test_acyclic(self):
        rules = [make_rule("a"), make_rule("b", depends_on=["a"])]

        assert find_cycle_members(rules) == set()


class TestValidateRuleSet:
    """Test suite for validate_rule_set."""

    def test_valid_rule_set(self, rules):
        result = validate_rule_set(rules)

        assert result.is_valid
        assert result.warnings == []

    def test_no_active_rules(self):
        result = validate_rule_set([make_rule("a", is_active=False)])

        assert not result.is_valid
        assert result.errors == ["No active budget rules found"]

    def test_remaining_percent_without_dependencies(self):
        rule = make_rule("left", calc_type=CalculationType.REMAINING_PERCENT, value="10")

        result = validate_rule_set([rule])

        assert not result.is_valid
        assert "no dependencies" in result.errors[0]

    def test_missing_and_inactive_dependencies(self):
        rules = [
            make_rule("a", depends_on=["ghost", "off"]),
            make_rule("off", is_active=False),
        ]

        result = validate_rule_set(rules)

        assert any("non-existent rule ghost" in e for e in result.errors)
        assert any('inactive rule "off"' in e for e in result.errors)

    def test_self_dependency(self):
        result = validate_rule_set([make_rule("a", depends_on=["a"])])

        assert result.errors == ['"a" cannot depend on itself']

    def test_cycle(self):
        rules = [make_rule("a", depends_on=["b"]), make_rule("b", depends_on=["a"])]

        result = validate_rule_set(rules)

        assert '"a" is part of a circular dependency' in result.errors
        assert '"b" is part of a circular dependency' in result.errors

    @pytest.mark.parametrize("value", ["0", "-5", "150"])
    def test_percentage_out_of_range_warns(self, value):
        rule = make_rule("p", calc_type=CalculationType.NET_PERCENT, value=value)

        result = validate_rule_set([rule])

        assert result.is_valid
        assert len(result.warnings) == 1

    def test_fixed_values_not_checked_as_percentages(self):
        result = validate_rule_set([make_rule("f", value="2500")])

        assert result.warnings == []
