"""
Store State Container

DESIGN DECISION: One object owns the in-memory snapshot and is its only
writer. Backends publish into it; everything else reads from it and
subscribes to changes. Readers never mutate - StoreData is frozen and its
slices are tuples that get replaced, not edited.

The budget figures are derived here, memoized on the identity of the task
and misc slices: any write that touches either slice replaces the tuple,
which invalidates the cached figures.
"""

from typing import Callable, Iterable, Mapping, Optional

import structlog

from src.audit import AuditLogger
from src.models.records import Collection, ProjectSettings, Record
from src.models.store import CostTotals, StoreData, StoreMode
from src.rollup import compute_stats, find_parent_cycles


logger = structlog.get_logger(__name__)

Listener = Callable[["StoreState"], None]


class StoreState:
    """Single-writer holder of the current snapshot, mode and derived stats."""

    def __init__(
        self,
        data: Optional[StoreData] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._data = data or StoreData()
        self._mode = StoreMode.INITIALIZING
        self._version = 0
        self._listeners: list[Listener] = []
        self._audit_logger = audit_logger or AuditLogger()

        self._stats: Optional[CostTotals] = None
        self._stats_inputs: tuple[tuple, tuple] = ((), ())

    # ---------- reads ----------
    @property
    def data(self) -> StoreData:
        return self._data

    @property
    def mode(self) -> StoreMode:
        return self._mode

    @property
    def version(self) -> int:
        """Incremented on every published change."""
        return self._version

    @property
    def stats(self) -> CostTotals:
        """Project budget figures for the current tasks and misc expenses."""
        tasks, misc = self._data.tasks, self._data.misc
        if (
            self._stats is None
            or self._stats_inputs[0] is not tasks
            or self._stats_inputs[1] is not misc
        ):
            for cycle in find_parent_cycles(tasks):
                self._audit_logger.log_task_cycle(cycle)
            self._stats = compute_stats(tasks, misc)
            self._stats_inputs = (tasks, misc)
        return self._stats

    # ---------- writes ----------
    def replace(self, data: StoreData) -> None:
        """Swap in a whole new snapshot."""
        self._data = data
        self._publish()

    def replace_slices(
        self,
        collections: Optional[Mapping[Collection, Iterable[Record]]] = None,
        settings: Optional[ProjectSettings] = None,
    ) -> None:
        """Replace several slices as one change (one notification)."""
        data = self._data
        for collection, records in (collections or {}).items():
            data = data.with_records(collection, records)
        if settings is not None:
            data = data.with_settings(settings)
        self.replace(data)

    def set_mode(self, mode: StoreMode) -> None:
        if mode != self._mode:
            self._mode = mode
            self._publish()

    def reset(self) -> None:
        """Back to an empty snapshot, as at process start."""
        self._data = StoreData()
        self._mode = StoreMode.INITIALIZING
        self._publish()

    # ---------- subscriptions ----------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a change listener.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        self._version += 1
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                # A broken reader must not stop the writer
                logger.exception("state_listener_failed", version=self._version)
