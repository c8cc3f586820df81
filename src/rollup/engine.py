"""
Cost Rollup Engine

DESIGN DECISION: Budget figures are a pure function of the current task and
misc-expense lists. Nothing here is stored on a task, nothing here raises on
odd data:
- archived tasks (and everything under them) are invisible
- tasks whose parent is missing never reach a root and are not counted
- parent cycles cannot be reached from a root either; they are reported by
  find_parent_cycles() so the store can log them
- a choice group pointing at a child that no longer exists behaves as if
  nothing was selected

Per node:
    leaf           min = 0 if optional and unpaid, else effective cost
                   max = effective cost
                   actual = recorded actual (money paid), not effective cost
    plain branch   sum of children, plus the node's own effective cost on
                   min and max (optional or not) and its recorded actual
    choice group   selected child's figures verbatim; without a valid
                   selection the range spans cheapest min to priciest max
                   and actual is 0 (nothing has been committed)
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from src.models.records import ZERO, MiscExpense, Task
from src.models.store import CostTotals


def effective_cost(task: Task) -> Decimal:
    """Single cost figure for a task: actual > quoted > estimated > 0."""
    return task.effective_cost


def leaf_totals(task: Task) -> CostTotals:
    """Figures of a task considered on its own."""
    cost = task.effective_cost
    unpaid_optional = task.is_optional and not task.recorded_actual
    return CostTotals(
        min=ZERO if unpaid_optional else cost,
        max=cost,
        actual=task.recorded_actual,
    )


class TaskTree:
    """
    Task forest indexed once per computation pass.

    Children are kept in input order so results never depend on dict
    iteration quirks.
    """

    def __init__(self, tasks: Iterable[Task]):
        self.nodes: dict[str, Task] = {}
        self.children: dict[str, list[Task]] = defaultdict(list)
        self.roots: list[Task] = []

        for task in tasks:
            if task.archived or task.id in self.nodes:
                continue
            self.nodes[task.id] = task

        for task in self.nodes.values():
            if task.parent_id is None:
                self.roots.append(task)
            else:
                self.children[task.parent_id].append(task)

    def children_of(self, task_id: str) -> list[Task]:
        return self.children.get(task_id, [])

    def reachable_ids(self) -> set[str]:
        """Ids of every task connected to a root."""
        seen: set[str] = set()
        stack = [root.id for root in self.roots]
        while stack:
            task_id = stack.pop()
            if task_id in seen:
                continue
            seen.add(task_id)
            stack.extend(child.id for child in self.children_of(task_id))
        return seen


def build_task_tree(tasks: Iterable[Task]) -> TaskTree:
    return TaskTree(tasks)


def _combine(task: Task, child_totals: Sequence[tuple[Task, CostTotals]]) -> CostTotals:
    if not child_totals:
        return leaf_totals(task)

    if task.is_choice_group:
        if task.selected_option_id is not None:
            for child, totals in child_totals:
                if child.id == task.selected_option_id:
                    return totals
        # No selection, or a selection that no longer exists
        return CostTotals(
            min=min(totals.min for _, totals in child_totals),
            max=max(totals.max for _, totals in child_totals),
            actual=ZERO,
        )

    summed = CostTotals()
    for _, totals in child_totals:
        summed = summed + totals
    own_cost = task.effective_cost
    return summed + CostTotals(min=own_cost, max=own_cost, actual=task.recorded_actual)


def rollup_subtree(tree: TaskTree, root_id: str) -> CostTotals:
    """
    Aggregate one subtree.

    Iterative post-order walk, so tree depth is not bounded by the
    interpreter's recursion limit.
    """
    if root_id not in tree.nodes:
        return CostTotals()

    done: dict[str, CostTotals] = {}
    in_progress: set[str] = set()
    stack: list[tuple[str, bool]] = [(root_id, False)]

    while stack:
        task_id, expanded = stack.pop()
        if expanded:
            task = tree.nodes[task_id]
            child_totals = [
                (child, done[child.id])
                for child in tree.children_of(task_id)
                if child.id in done
            ]
            done[task_id] = _combine(task, child_totals)
            in_progress.discard(task_id)
            continue

        if task_id in done or task_id in in_progress:
            continue
        in_progress.add(task_id)
        stack.append((task_id, True))
        for child in reversed(tree.children_of(task_id)):
            if child.id not in done and child.id not in in_progress:
                stack.append((child.id, False))

    return done[root_id]


def rollup_tasks(tasks: Iterable[Task]) -> CostTotals:
    """Aggregate the whole task forest (roots summed)."""
    tree = build_task_tree(tasks)
    total = CostTotals()
    for root in tree.roots:
        total = total + rollup_subtree(tree, root.id)
    return total


def misc_total(misc: Iterable[MiscExpense]) -> Decimal:
    return sum((expense.amount for expense in misc), ZERO)


def compute_stats(
    tasks: Iterable[Task],
    misc: Optional[Iterable[MiscExpense]] = None,
) -> CostTotals:
    """
    Project-wide budget figures.

    Task rollup plus the flat sum of misc expenses on each figure.
    """
    return rollup_tasks(tasks).plus_flat(misc_total(misc or ()))


def find_parent_cycles(tasks: Iterable[Task]) -> list[list[str]]:
    """
    Detect cycles in the parent references of visible tasks.

    Returns:
        One list of task ids per cycle, in parent-walk order
    """
    tree = build_task_tree(tasks)
    reachable = tree.reachable_ids()

    cycles: list[list[str]] = []
    state: dict[str, int] = {}  # 1 = on current walk, 2 = finished
    for start in tree.nodes:
        if start in reachable or start in state:
            continue
        walk: list[str] = []
        current: Optional[str] = start
        while current is not None and current in tree.nodes and current not in state:
            state[current] = 1
            walk.append(current)
            current = tree.nodes[current].parent_id
        if current is not None and state.get(current) == 1:
            cycles.append(walk[walk.index(current):])
        for task_id in walk:
            state[task_id] = 2
    return cycles
