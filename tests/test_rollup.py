"""Tests for the cost rollup engine."""

from decimal import Decimal

from src.models.records import MiscExpense, Task
from src.models.store import CostTotals
from src.rollup import (
    build_task_tree,
    compute_stats,
    effective_cost,
    find_parent_cycles,
    leaf_totals,
    misc_total,
    rollup_subtree,
    rollup_tasks,
)


def task(task_id, parent=None, **fields):
    return Task(id=task_id, parent_id=parent, **fields)


def totals(min_, max_, actual):
    return CostTotals(min=min_, max=max_, actual=actual)


class TestLeafFigures:
    """Tests for single-task figures."""

    def test_effective_cost_precedence(self):
        assert effective_cost(task("a", estimated_cost=100)) == Decimal("100")
        assert effective_cost(task("a", estimated_cost=100, quoted_cost=80)) == Decimal("80")
        assert effective_cost(task("a", estimated_cost=100, actual_cost=150)) == Decimal("150")

    def test_required_leaf(self):
        """Actual is money paid, so an unpaid leaf has actual 0 whatever its cost."""
        assert leaf_totals(task("a", estimated_cost=100)) == totals(100, 100, 0)

    def test_optional_unpaid_leaf_has_zero_minimum(self):
        assert leaf_totals(task("a", estimated_cost=100, is_optional=True)) == totals(0, 100, 0)

    def test_optional_paid_leaf_counts_in_full(self):
        leaf = task("a", estimated_cost=100, actual_cost=90, is_optional=True)
        assert leaf_totals(leaf) == totals(90, 90, 90)


class TestPlainForest:
    """Forests without choice groups."""

    def test_max_is_sum_of_leaf_costs(self):
        tasks = [
            task("root"),
            task("a", "root", estimated_cost=100),
            task("b", "root"),
            task("c", "b", estimated_cost=25, is_optional=True),
            task("solo", estimated_cost=10),
        ]
        result = rollup_tasks(tasks)
        assert result.max == Decimal("135")
        assert result.min == Decimal("110")
        assert result.actual == Decimal("0")

    def test_min_skips_optional_unpaid_leaves(self):
        tasks = [
            task("a", estimated_cost=100),
            task("b", estimated_cost=50, is_optional=True),
            task("c", estimated_cost=30, is_optional=True, actual_cost=20),
        ]
        assert rollup_tasks(tasks) == totals(120, 170, 20)

    def test_branch_adds_its_own_figures_once(self):
        tasks = [
            task("p", estimated_cost=10, actual_cost=5),
            task("a", "p", estimated_cost=100, actual_cost=60),
        ]
        assert rollup_tasks(tasks) == totals(65, 65, 65)

    def test_optional_branch_counts_its_own_cost_in_minimum(self):
        """Only leaves may drop out of min; a branch's own cost always counts."""
        tasks = [
            task("p", estimated_cost=50, is_optional=True),
            task("c", "p", estimated_cost=100),
        ]
        assert rollup_tasks(tasks) == totals(150, 150, 0)

    def test_standalone_task_contributes_its_leaf_figure(self):
        assert rollup_tasks([task("a", quoted_cost=70)]) == totals(70, 70, 0)

    def test_empty_forest(self):
        assert rollup_tasks([]) == CostTotals()


class TestChoiceGroups:
    """Mutually exclusive alternatives."""

    def test_selected_child_is_used_verbatim(self):
        tasks = [
            task("g", type="choice_group", selected_option_id="b", estimated_cost=999),
            task("a", "g", estimated_cost=1000, actual_cost=400),
            task("b", "g", estimated_cost=20, is_optional=True),
        ]
        assert rollup_tasks(tasks) == leaf_totals(tasks[2])

    def test_no_selection_spans_cheapest_to_priciest(self):
        tasks = [
            task("g", type="choice_group"),
            task("a", "g", estimated_cost=20, is_optional=True),
            task("a1", "a", estimated_cost=10),
            task("b", "g", estimated_cost=50, is_optional=True),
            task("b1", "b", estimated_cost=30),
        ]
        tree = build_task_tree(tasks)
        assert rollup_subtree(tree, "a") == totals(30, 30, 0)
        assert rollup_subtree(tree, "b") == totals(80, 80, 0)
        assert rollup_subtree(tree, "g") == totals(30, 80, 0)

    def test_children_with_given_ranges(self):
        """Children {min 10, max 20} and {min 30, max 50} -> 10 / 50 / 0."""
        tasks = [
            task("g", type="choice_group"),
            task("x", "g"),
            task("x1", "x", estimated_cost=10),
            task("x2", "x", estimated_cost=10, is_optional=True),
            task("y", "g"),
            task("y1", "y", estimated_cost=30),
            task("y2", "y", estimated_cost=20, is_optional=True),
        ]
        tree = build_task_tree(tasks)
        assert rollup_subtree(tree, "x") == totals(10, 20, 0)
        assert rollup_subtree(tree, "y") == totals(30, 50, 0)
        assert rollup_subtree(tree, "g") == totals(10, 50, 0)

    def test_no_selection_withholds_actual(self):
        tasks = [
            task("g", type="choice_group"),
            task("a", "g", estimated_cost=20, actual_cost=20),
            task("b", "g", estimated_cost=50),
        ]
        assert rollup_tasks(tasks) == totals(20, 50, 0)

    def test_dangling_selection_falls_back_to_range(self):
        tasks = [
            task("g", type="choice_group", selected_option_id="deleted"),
            task("a", "g", estimated_cost=10),
            task("b", "g", estimated_cost=50),
        ]
        assert rollup_tasks(tasks) == totals(10, 50, 0)

    def test_choice_group_without_children_is_a_leaf(self):
        group = task("g", type="choice_group", estimated_cost=15)
        assert rollup_tasks([group]) == totals(15, 15, 0)

    def test_nested_choice_groups(self):
        tasks = [
            task("root"),
            task("g", "root", type="choice_group", selected_option_id="inner"),
            task("inner", "g", type="choice_group"),
            task("i1", "inner", estimated_cost=5),
            task("i2", "inner", estimated_cost=15),
            task("other", "g", estimated_cost=500),
        ]
        assert rollup_tasks(tasks) == totals(5, 15, 0)


class TestIntegrity:
    """Odd data degrades, it never raises."""

    def test_archived_task_contributes_nothing(self):
        tasks = [
            task("a", estimated_cost=100),
            task("b", estimated_cost=500, quoted_cost=400, actual_cost=300, archived=True),
        ]
        assert rollup_tasks(tasks) == totals(100, 100, 0)

    def test_children_of_archived_task_are_hidden(self):
        tasks = [
            task("p", archived=True),
            task("c", "p", estimated_cost=80, actual_cost=80),
        ]
        assert rollup_tasks(tasks) == CostTotals()

    def test_orphans_are_not_counted(self):
        tasks = [task("a", estimated_cost=10), task("orphan", "missing", estimated_cost=99)]
        assert rollup_tasks(tasks) == totals(10, 10, 0)

    def test_cycles_are_excluded_and_reported(self):
        tasks = [
            task("ok", estimated_cost=10),
            task("x", "y", estimated_cost=5),
            task("y", "x", estimated_cost=7),
            task("tail", "x", estimated_cost=1),
        ]
        assert rollup_tasks(tasks) == totals(10, 10, 0)
        cycles = find_parent_cycles(tasks)
        assert len(cycles) == 1
        assert sorted(cycles[0]) == ["x", "y"]

    def test_self_parent_is_a_cycle(self):
        assert find_parent_cycles([task("a", "a")]) == [["a"]]

    def test_no_cycles_in_clean_forest(self):
        assert find_parent_cycles([task("a"), task("b", "a"), task("o", "gone")]) == []

    def test_duplicate_ids_first_wins(self):
        tasks = [task("a", estimated_cost=10), task("a", estimated_cost=99)]
        assert rollup_tasks(tasks) == totals(10, 10, 0)

    def test_deep_chain_does_not_exhaust_stack(self):
        depth = 5000
        tasks = [task("n0")] + [
            task(f"n{i}", f"n{i - 1}") for i in range(1, depth)
        ] + [task("leaf", f"n{depth - 1}", estimated_cost=3)]
        assert rollup_tasks(tasks) == totals(3, 3, 0)

    def test_unknown_subtree_is_zero(self):
        assert rollup_subtree(build_task_tree([]), "nope") == CostTotals()


class TestProjectStats:
    """Task rollup plus misc expenses."""

    def test_misc_only(self):
        """Scenario: misc [50, 75] with no tasks -> 125 on every figure."""
        misc = [MiscExpense(id="m1", amount=50), MiscExpense(id="m2", amount=75)]
        assert compute_stats([], misc) == totals(125, 125, 125)

    def test_misc_added_to_every_figure(self):
        tasks = [task("a", estimated_cost=100, is_optional=True)]
        misc = [MiscExpense(id="m1", amount=Decimal("12.50"))]
        assert compute_stats(tasks, misc) == totals(Decimal("12.50"), Decimal("112.50"), Decimal("12.50"))

    def test_misc_total(self):
        assert misc_total([]) == Decimal("0")
        assert misc_total([MiscExpense(id="m", amount=3)]) == Decimal("3")
