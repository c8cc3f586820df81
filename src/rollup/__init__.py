"""Cost rollup package."""

from src.rollup.engine import (
    TaskTree,
    build_task_tree,
    compute_stats,
    effective_cost,
    find_parent_cycles,
    leaf_totals,
    misc_total,
    rollup_subtree,
    rollup_tasks,
)

__all__ = [
    "TaskTree",
    "build_task_tree",
    "compute_stats",
    "effective_cost",
    "find_parent_cycles",
    "leaf_totals",
    "misc_total",
    "rollup_subtree",
    "rollup_tasks",
]
