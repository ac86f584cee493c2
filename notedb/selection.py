"""
Shared selection state.

Holds the currently selected date and the active navigation period. The
derived period bounds are recomputed together, synchronously, on every
mutation and before any listener runs, so an observer never sees a
selected date whose bounds have not caught up.

The state object is owned by the runtime and passed to every component that
needs it. The setters are the only write path; notifications go to a
synchronous observer list in subscription order.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from .blocks import is_iso_date
from .errors import ConfigError
from .periods import Period, adjacent_period_date, calculate_period_range

logger = logging.getLogger(__name__)

DATE_CHANGED_EVENT = "date_changed"


@dataclass(frozen=True)
class SelectionChange:
    """Snapshot of the selection, delivered to listeners and used for placeholders."""

    selected_date: str
    current_period: Period
    period_start_date: str
    period_end_date: str

    def to_dict(self) -> dict:
        return {
            "selected_date": self.selected_date,
            "current_period": self.current_period.value,
            "period_start_date": self.period_start_date,
            "period_end_date": self.period_end_date,
        }


Listener = Callable[[SelectionChange], None]


class SelectionState:
    """Selected date + navigation period, with derived bounds and change fan-out."""

    def __init__(
        self,
        selected_date: str | None = None,
        period: Period | str = Period.DAY,
        strict_dates: bool = False,
        today: Callable[[], date] = date.today,
    ):
        self._today = today
        self.strict_dates = strict_dates
        self._listeners: list[Listener] = []
        self._lock = threading.RLock()
        self._period = Period(period)
        self._selected_date = self._normalize(selected_date) if selected_date else self._today().isoformat()
        self._recalculate()

    # ==================== Reads ====================

    @property
    def selected_date(self) -> str:
        return self._selected_date

    @selected_date.setter
    def selected_date(self, new_date: str) -> None:
        self.set(selected_date=new_date)

    @property
    def current_period(self) -> Period:
        return self._period

    @current_period.setter
    def current_period(self, new_period: Period | str) -> None:
        self.set(period=new_period)

    @property
    def period_start_date(self) -> str:
        return self._start

    @property
    def period_end_date(self) -> str:
        return self._end

    def snapshot(self) -> SelectionChange:
        with self._lock:
            return SelectionChange(self._selected_date, self._period, self._start, self._end)

    # ==================== Writes ====================

    def set(self, selected_date: str | None = None, period: Period | str | None = None) -> bool:
        """Apply a date and/or period change with a single notification.

        Returns True when something changed (and listeners were notified).
        """
        with self._lock:
            new_date = self._normalize(selected_date) if selected_date is not None else self._selected_date
            new_period = Period(period) if period is not None else self._period
            if new_date == self._selected_date and new_period == self._period:
                return False
            self._selected_date = new_date
            self._period = new_period
            self._recalculate()
            change = self.snapshot()

        logger.debug("Selection changed: %s", change.to_dict())
        self._notify(change)
        return True

    def go_next(self) -> bool:
        return self.set(selected_date=adjacent_period_date(self._selected_date, self._period, "next"))

    def go_prev(self) -> bool:
        return self.set(selected_date=adjacent_period_date(self._selected_date, self._period, "prev"))

    def go_today(self) -> bool:
        return self.set(selected_date=self._today().isoformat())

    # ==================== Listeners ====================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*. Returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def clear_listeners(self) -> None:
        with self._lock:
            self._listeners.clear()

    # ==================== Internals ====================

    def _normalize(self, value: str) -> str:
        if isinstance(value, str) and is_iso_date(value):
            try:
                date.fromisoformat(value)
                return value
            except ValueError:
                pass
        if self.strict_dates:
            raise ConfigError(f"Invalid selected date {value!r} (expected YYYY-MM-DD)")
        today = self._today().isoformat()
        logger.warning("Invalid selected date %r, falling back to today (%s)", value, today)
        return today

    def _recalculate(self) -> None:
        rng = calculate_period_range(self._selected_date, self._period)
        self._start, self._end = rng.start, rng.end

    def _notify(self, change: SelectionChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Selection listener %r failed", listener)
