"""
Runtime facade.

Created once at activation; owns the backend, the shared SelectionState, the
RecordStore, every mounted widget and every registered document view.
Deactivation tears all of it down in reverse order.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from .backends import DataAccess, open_backend
from .blocks import BlockKind
from .config import Settings
from .errors import ConfigError
from .processors import BlockResult, process_chart_block, process_sql_block
from .selection import SelectionChange, SelectionState
from .upsert import RecordStore
from .widgets import BindingWidget, ViewListener, create_widget

logger = logging.getLogger(__name__)

ViewCallback = Callable[[SelectionChange], None]


class NoteDBRuntime:
    """
    Usage:
        with NoteDBRuntime(load_settings()) as rt:
            counter = rt.mount_widget("counter", {...})
            print(rt.render_block("sql", "table: tasks").to_text())
    """

    def __init__(self, settings: Settings, backend: DataAccess | None = None):
        self.settings = settings
        self.backend = backend or open_backend(settings)
        self.selection = SelectionState(period=settings.default_period, strict_dates=settings.strict_dates)
        self.records = RecordStore(self.backend)
        self.widgets: list[BindingWidget] = []
        self._view_unsubscribers: list[Callable[[], None]] = []
        self.active = True
        logger.info("NoteDB runtime activated in %s mode", self.backend.mode)

    def _require_active(self) -> None:
        if not self.active:
            raise ConfigError("NoteDB runtime has been deactivated.")

    def mount_widget(
        self, kind: BlockKind | str, attributes: Mapping[str, Any], on_render: ViewListener | None = None
    ) -> BindingWidget:
        """Create a widget for *attributes*, attach it and load its value."""
        self._require_active()
        widget = create_widget(kind, attributes, self.selection, on_render)
        widget.attach(self.records)
        self.widgets.append(widget)
        return widget

    def unmount_widget(self, widget: BindingWidget) -> None:
        widget.detach()
        if widget in self.widgets:
            self.widgets.remove(widget)

    def register_view(self, callback: ViewCallback) -> Callable[[], None]:
        """Re-run *callback* whenever the selection changes. Returns an unregister callable."""
        self._require_active()
        unsubscribe = self.selection.subscribe(callback)
        self._view_unsubscribers.append(unsubscribe)
        return unsubscribe

    def render_block(self, kind: BlockKind | str, source: str) -> BlockResult:
        self._require_active()
        try:
            kind = BlockKind(kind)
        except ValueError:
            raise ConfigError(f"Unknown block kind {kind!r}") from None
        if kind is BlockKind.SQL:
            return process_sql_block(self.backend, source, self.selection)
        if kind is BlockKind.CHART:
            return process_chart_block(self.backend, source, self.selection)
        raise ConfigError(f"{kind.value} is a widget, not a block; use mount_widget")

    def deactivate(self) -> None:
        if not self.active:
            return
        for widget in self.widgets:
            widget.detach()
        self.widgets.clear()
        for unsubscribe in self._view_unsubscribers:
            unsubscribe()
        self._view_unsubscribers.clear()
        self.selection.clear_listeners()
        self.backend.close()
        self.active = False
        logger.info("NoteDB runtime deactivated")

    def __enter__(self) -> "NoteDBRuntime":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.deactivate()
