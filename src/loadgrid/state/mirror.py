"""Client-side mirror of coordinator-owned state.

The :class:`StateMirror` is the only place inbound deltas land. It replaces
fields wholesale, never merging inside a map or list, and notifies its
subscribers synchronously after every change. Writes arrive serially from
the channel's receive callback; a ``threading.Lock`` additionally lets a
renderer on another thread read a consistent view.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loadgrid._internal.logging import get_logger
from loadgrid.protocol.models import UNSET

if TYPE_CHECKING:
    from collections.abc import Callable

    from loadgrid._internal.types import Samples, Stats
    from loadgrid.protocol.models import Report, Run, ScriptError, StateDelta

logger = get_logger("state.mirror")


@dataclass(frozen=True)
class MirrorSnapshot:
    """Immutable copy of the mirrored state at one instant.

    Attributes:
        generator_count: Connected generators, 0 if never reported.
        stats: Telemetry series keyed by metric key.
        run: Active run, or None when idle.
        reports: Reports in the order they were recorded.
        last_script_error: Most recent script error, or None.
    """

    generator_count: int = 0
    stats: Stats = field(default_factory=dict)
    run: Run | None = None
    reports: tuple[Report, ...] = ()
    last_script_error: ScriptError | None = None


class StateMirror:
    """Reactive local copy of fleet telemetry, the active run and reports.

    Mutated only through :meth:`apply` and :meth:`clear`. Subscribers are
    called with the mirror itself after each mutation, in subscription
    order, on the thread that applied the change.
    """

    def __init__(self) -> None:
        """Initialize an empty mirror."""
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[StateMirror], None]] = []
        self._generator_count: int | None = None
        self._stats: Stats = {}
        self._run: Run | None = None
        self._reports: dict[str, Report] = {}
        self._last_script_error: ScriptError | None = None
        self._synced = False

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def apply(self, delta: StateDelta) -> None:
        """Apply one partial update.

        Every field present in *delta* replaces the stored value in full;
        absent fields are left alone. ``None`` clears ``run``,
        ``last_script_error`` and ``stats``. ``reports`` replaces the whole
        report set, ``report_added`` / ``report_removed`` edit it by id.

        Args:
            delta: Partial state decoded from one envelope.
        """
        with self._lock:
            if delta.generator_count is not UNSET:
                self._generator_count = delta.generator_count
            if delta.stats is not UNSET:
                self._stats = dict(delta.stats) if delta.stats is not None else {}
            if delta.run is not UNSET:
                self._replace_run(delta.run)
            if delta.last_script_error is not UNSET:
                self._last_script_error = delta.last_script_error
            if delta.reports is not UNSET:
                self._reports = {report.id: report for report in delta.reports}
            if delta.report_added is not UNSET:
                self._add_report(delta.report_added)
            if delta.report_removed is not UNSET:
                self._reports.pop(delta.report_removed, None)
            self._synced = True

        logger.debug("Applied delta: fields=%s", delta.present_fields())
        self._notify()

    def clear(self) -> None:
        """Forget everything, as on a fresh connection."""
        with self._lock:
            self._generator_count = None
            self._stats = {}
            self._run = None
            self._reports = {}
            self._last_script_error = None
            self._synced = False
        logger.debug("Mirror cleared")
        self._notify()

    def _replace_run(self, run: Run | None) -> None:
        current = self._run
        if current is not None and run is not None and current.id != run.id:
            # Coordinator state wins; a missed clear frame is the usual cause
            logger.warning(
                "Run id changed from %s to %s without the run being cleared",
                current.id,
                run.id,
            )
        self._run = run

    def _add_report(self, report: Report) -> None:
        if report.id in self._reports:
            logger.debug("Report %s already recorded, keeping the recorded one", report.id)
            return
        self._reports[report.id] = report

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, callback: Callable[[StateMirror], None]) -> Callable[[], None]:
        """Register *callback* to run after every change.

        Args:
            callback: Called with this mirror.

        Returns:
            A function that removes the subscription. Calling it twice is
            harmless.
        """
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            callback(self)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def synced(self) -> bool:
        """True once a delta has been applied since the last clear."""
        with self._lock:
            return self._synced

    @property
    def generator_count(self) -> int:
        """Connected generators, 0 if never reported."""
        with self._lock:
            return self._generator_count or 0

    @property
    def run(self) -> Run | None:
        """The active run, or None when idle."""
        with self._lock:
            return self._run

    @property
    def last_script_error(self) -> ScriptError | None:
        with self._lock:
            return self._last_script_error

    @property
    def stats(self) -> Stats:
        """Copy of all telemetry series."""
        with self._lock:
            return {key: list(series) for key, series in self._stats.items()}

    @property
    def reports(self) -> list[Report]:
        """Reports in the order they were recorded."""
        with self._lock:
            return list(self._reports.values())

    def report(self, report_id: str) -> Report | None:
        """Return the report with *report_id*, or None."""
        with self._lock:
            return self._reports.get(report_id)

    def series(self, key: str) -> Samples:
        """Return a copy of the series for *key*, newest sample first."""
        with self._lock:
            return list(self._stats.get(key, []))

    def latest(self, key: str) -> float | None:
        """Return the newest sample of *key*, or None if there is none."""
        with self._lock:
            series = self._stats.get(key)
            return series[0] if series else None

    def snapshot(self) -> MirrorSnapshot:
        """Return an immutable copy of the whole mirrored state."""
        with self._lock:
            return MirrorSnapshot(
                generator_count=self._generator_count or 0,
                stats={key: list(series) for key, series in self._stats.items()},
                run=self._run,
                reports=tuple(self._reports.values()),
                last_script_error=self._last_script_error,
            )
