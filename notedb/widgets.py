"""
Reactive widget bindings.

One controller per widget instance on the page. A controller reads its
declarative attributes, resolves its effective date (fixed, or the shared
selected date for ``@date``), loads its value through the RecordStore and
keeps a WidgetView the host renders.

State machine:

    UNINITIALIZED -> LOADING -> READY <-> SAVING
                 \\-> ERROR (config)      any -> ERROR (backend)

Every load and save takes a number from a per-widget monotonic sequence. A
load result is applied only if its number is still the latest issued, so a
slow reload never overwrites the result of a newer one.
"""

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Any, Optional

from .blocks import Binding, BlockKind, ModalType, parse_binding
from .errors import ConfigError, NoteDBError
from .observability import RenderContext
from .placeholders import replace_placeholders
from .selection import SelectionChange, SelectionState
from .upsert import RecordStore

logger = logging.getLogger(__name__)

ERROR_TOKEN = "ERR"


class WidgetState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    SAVING = "saving"
    ERROR = "error"


@dataclass
class WidgetView:
    """What the host renders for a widget."""

    text: str = ""
    checked: bool = False
    disabled: bool = True
    error: bool = False
    tooltip: str = ""
    label: str = ""


ViewListener = Callable[["BindingWidget", WidgetView], None]
# (modal type, current value) -> picked value, or None when cancelled
Picker = Callable[[ModalType, str], Optional[str]]


class BindingWidget:
    """Base controller. Subclasses set ``kind`` and the value/view mapping."""

    kind: BlockKind
    default_value: Any = None

    def __init__(
        self,
        attributes: Mapping[str, Any],
        selection: SelectionState,
        on_render: ViewListener | None = None,
    ):
        self.attributes = dict(attributes)
        self.selection = selection
        self.on_render = on_render
        self.binding: Binding | None = None
        self.store: RecordStore | None = None
        self.state = WidgetState.UNINITIALIZED
        self.view = WidgetView()
        self.value: Any = self.default_value
        self.config_error = False
        self._seq = 0
        self._seq_lock = threading.Lock()
        self._unsubscribe: Callable[[], None] | None = None

    def __repr__(self) -> str:
        key = self.binding.key if self.binding else self.attributes.get("key", "?")
        return f"<{type(self).__name__} {key} {self.state.value}>"

    # ==================== Lifecycle ====================

    def attach(self, store: RecordStore) -> None:
        """Read attributes, subscribe if the date follows the selection, then load."""
        self.store = store
        try:
            self.binding = parse_binding(self.kind, self.attributes)
        except ConfigError as e:
            logger.warning("%s widget misconfigured: %s", self.kind.value, e)
            self.config_error = True
            self.view.label = str(self.attributes.get("key") or self.attributes.get("habit") or "Config Error")
            self._enter_error(f"Config Error: {e}")
            return

        self.view.label = self.binding.label or self.binding.key
        if self.binding.follows_selection and self._unsubscribe is None:
            self._unsubscribe = self.selection.subscribe(self._on_selection_change)
        self.load()

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def subscribed(self) -> bool:
        return self._unsubscribe is not None

    def effective_date(self) -> str:
        if self.binding is None or self.binding.follows_selection:
            return self.selection.selected_date
        return self.binding.date

    # ==================== Loading ====================

    def _next_seq(self) -> int:
        with self._seq_lock:
            self._seq += 1
            return self._seq

    def _is_latest(self, seq: int) -> bool:
        with self._seq_lock:
            return seq == self._seq

    def load(self) -> bool:
        """Fetch the current value. Returns True when the result was applied."""
        if self.binding is None or self.store is None:
            return False

        seq = self._next_seq()
        effective_date = self.effective_date()
        self.state = WidgetState.LOADING
        self.view.disabled = True
        self._publish()

        with RenderContext(prefix=self.kind.value):
            try:
                value = self.store.fetch_value(self.binding, effective_date)
            except NoteDBError as e:
                if not self._is_latest(seq):
                    logger.debug("Discarding stale load failure #%d for %r", seq, self)
                    return False
                logger.error("Error loading %s for %s: %s", self.binding.key, effective_date, e)
                self._load_failed(str(e))
                return False

            if not self._is_latest(seq):
                logger.debug("Discarding stale load #%d for %r (%s)", seq, self, effective_date)
                return False

            self.value = value
            self._enter_ready()
            logger.debug("Loaded %s for %s: %r", self.binding.key, effective_date, value)
            return True

    def _on_selection_change(self, change: SelectionChange) -> None:
        self.load()

    def _load_failed(self, message: str) -> None:
        self._enter_error(message)

    # ==================== Saving ====================

    @property
    def interactive(self) -> bool:
        return self.state is WidgetState.READY

    def _save(self, new_value: Any) -> bool:
        """Optimistically show *new_value*, then persist it."""
        if not self.interactive:
            logger.debug("Ignoring interaction on %r", self)
            return False

        previous = self.value
        seq = self._next_seq()
        effective_date = self.effective_date()
        self.state = WidgetState.SAVING
        self.value = new_value
        self._render_value()
        self.view.disabled = True
        self._publish()

        with RenderContext(prefix=self.kind.value):
            try:
                self.store.upsert_value(self.binding, effective_date, new_value)
            except NoteDBError as e:
                if not self._is_latest(seq):
                    logger.debug("Discarding stale save failure #%d for %r", seq, self)
                    return False
                logger.error("Error saving %s for %s: %s", self.binding.key, effective_date, e)
                self.value = previous
                self._save_failed(str(e))
                return False

        if self._is_latest(seq):
            self._enter_ready()
        logger.info("Saved %s for %s: %r", self.binding.key, effective_date, new_value)
        return True

    def _save_failed(self, message: str) -> None:
        self._enter_error(message)

    # ==================== View ====================

    def _render_value(self) -> None:
        self.view.text = "" if self.value is None else str(self.value)

    def _enter_ready(self) -> None:
        self.state = WidgetState.READY
        self._render_value()
        self.view.disabled = False
        self.view.error = False
        self.view.tooltip = ""
        self._publish()

    def _enter_error(self, message: str) -> None:
        self.state = WidgetState.ERROR
        self.view.text = ERROR_TOKEN
        self.view.disabled = True
        self.view.error = True
        self.view.tooltip = message
        self._publish()

    def _publish(self) -> None:
        if self.on_render is None:
            return
        try:
            self.on_render(self, replace(self.view))
        except Exception:
            logger.exception("Render callback failed for %r", self)


class CounterWidget(BindingWidget):
    """Non-negative integer with +1/-1 buttons."""

    kind = BlockKind.COUNTER
    default_value = 0

    def increment(self) -> bool:
        return self._save(self.value + 1)

    def decrement(self) -> bool:
        return self._save(max(0, self.value - 1))


class SwitchWidget(BindingWidget):
    """0/1 toggle. A failed save puts the toggle back where it was."""

    kind = BlockKind.SWITCH
    default_value = 0

    def _render_value(self) -> None:
        self.view.checked = self.value == 1
        self.view.text = "on" if self.view.checked else "off"

    def toggle(self) -> bool:
        return self._save(0 if self.value == 1 else 1)

    def _save_failed(self, message: str) -> None:
        self.view.checked = self.value == 1
        super()._save_failed(message)


class TextWidget(BindingWidget):
    """Free-text field, optionally filled from a time or date picker."""

    kind = BlockKind.TEXT
    default_value = ""

    def commit(self, text: str) -> bool:
        return self._save(text)

    def _load_failed(self, message: str) -> None:
        super()._load_failed(message)
        if self.binding is not None and self.binding.initial_value:
            self.view.text = self.binding.initial_value
            self._publish()

    def open_picker(self, picker: Picker) -> bool:
        """Run a blocking picker and commit its result. Cancel leaves the value alone."""
        if self.binding is None or not self.interactive:
            return False
        modal = self.binding.modal_type
        if modal is ModalType.NONE:
            logger.warning("Picker requested for %r but modal type is 'none'", self)
            return False

        current = self.value or ""
        if modal is ModalType.DATE_PICKER and not current:
            current = date.today().isoformat()
        picked = picker(modal, current)
        if picked is None:
            logger.debug("Picker cancelled for %r", self)
            return False
        return self.commit(picked)


class AddTextWidget(BindingWidget):
    """Button that appends a text entry as a new row.

    Nothing is loaded: the widget is READY once its attributes parse. Extra
    ``data-*`` values are resolved against the selection at the moment the
    entry is added, so ``data-date="@date"`` records the day being viewed.
    """

    kind = BlockKind.ADD_TEXT
    default_value = ""

    def load(self) -> bool:
        if self.binding is None or self.store is None:
            return False
        self.view.label = replace_placeholders(self.binding.label, self.selection.snapshot())
        self._enter_ready()
        return True

    def _render_value(self) -> None:
        self.view.text = self.view.label

    def effective_date(self) -> str:
        return self.selection.selected_date

    def resolved_extra_values(self) -> dict[str, str]:
        snapshot = self.selection.snapshot()
        return {column: replace_placeholders(raw, snapshot) for column, raw in self.binding.extra_values}

    def add(self, text: str) -> bool:
        """Insert *text* with the resolved extra columns. Blank text is refused."""
        if self.binding is None or not self.interactive:
            logger.debug("Ignoring interaction on %r", self)
            return False
        entry = text.strip()
        if not entry:
            logger.info("Refusing empty entry for %r", self)
            return False

        values = {**self.resolved_extra_values(), self.binding.text_column: entry}
        self.state = WidgetState.SAVING
        self.view.disabled = True
        self._publish()

        with RenderContext(prefix=self.kind.value):
            try:
                self.store.insert_entry(self.binding.table, values)
            except NoteDBError as e:
                logger.error("Error adding entry to %s: %s", self.binding.table, e)
                # the button stays usable; the failure shows on the view
                self._enter_ready()
                self.view.error = True
                self.view.tooltip = f"Failed to save entry: {e}"
                self._publish()
                return False

        self.value = entry
        self._enter_ready()
        logger.info("Added entry to %s", self.binding.table)
        return True


WIDGET_CLASSES: dict[BlockKind, type[BindingWidget]] = {
    BlockKind.COUNTER: CounterWidget,
    BlockKind.SWITCH: SwitchWidget,
    BlockKind.TEXT: TextWidget,
    BlockKind.ADD_TEXT: AddTextWidget,
}


def create_widget(
    kind: BlockKind | str,
    attributes: Mapping[str, Any],
    selection: SelectionState,
    on_render: ViewListener | None = None,
) -> BindingWidget:
    try:
        cls = WIDGET_CLASSES[BlockKind(kind)]
    except (KeyError, ValueError):
        raise ConfigError(f"{kind!r} is not a widget kind") from None
    return cls(attributes, selection, on_render)
