"""
Tests for the reactive widget controllers.

Covers the state machine, @date subscription, optimistic saves, switch
revert on failure and stale-load discard.
"""

from datetime import date
from unittest.mock import patch

import pytest

from notedb.blocks import ModalType
from notedb.errors import ConfigError, TransientBackendError
from notedb.selection import SelectionState
from notedb.upsert import RecordStore
from notedb.widgets import (
    ERROR_TOKEN,
    AddTextWidget,
    CounterWidget,
    SwitchWidget,
    TextWidget,
    WidgetState,
    create_widget,
)

HABIT_ATTRS = {
    "table": "habits",
    "key": "water",
    "data-key-col": "habitId",
    "data-value-col": "value",
    "data-date-col": "date",
    "label": "Water",
}
JOURNAL_ATTRS = {"table": "journal", "data-value-col": "entry", "data-date-col": "date"}


@pytest.fixture
def selection():
    return SelectionState("2024-06-13", today=lambda: date(2024, 6, 13))


@pytest.fixture
def store(backend):
    return RecordStore(backend)


class TestLifecycle:
    def test_attach_loads(self, selection, store, backend):
        backend.run("INSERT INTO habits VALUES ('water', '2024-06-13', 4)")
        widget = CounterWidget(HABIT_ATTRS, selection)
        widget.attach(store)
        assert widget.state is WidgetState.READY
        assert widget.value == 4
        assert widget.view.text == "4"
        assert widget.view.label == "Water"
        assert not widget.view.disabled

    def test_missing_attributes_skip_loading(self, selection, store):
        widget = CounterWidget({"table": "habits"}, selection)
        with patch.object(store, "fetch_value") as fetch:
            widget.attach(store)
        fetch.assert_not_called()
        assert widget.state is WidgetState.ERROR
        assert widget.config_error
        assert widget.view.text == ERROR_TOKEN
        assert widget.view.tooltip.startswith("Config Error")
        assert not widget.subscribed

    def test_follows_selection(self, selection, store, backend):
        backend.run("INSERT INTO habits VALUES ('water', '2024-06-14', 2)")
        widget = CounterWidget(HABIT_ATTRS, selection)
        widget.attach(store)
        assert widget.value == 0
        selection.go_next()
        assert widget.effective_date() == "2024-06-14"
        assert widget.value == 2

    def test_fixed_date_does_not_subscribe(self, selection, store):
        widget = CounterWidget({**HABIT_ATTRS, "date": "2024-01-01"}, selection)
        widget.attach(store)
        assert not widget.subscribed
        assert selection.listener_count == 0
        assert widget.effective_date() == "2024-01-01"

    def test_detach_unsubscribes(self, selection, store):
        widget = CounterWidget(HABIT_ATTRS, selection)
        widget.attach(store)
        widget.detach()
        assert selection.listener_count == 0

    def test_load_error_then_recovery(self, selection, store):
        widget = CounterWidget(HABIT_ATTRS, selection)
        with patch.object(store, "fetch_value", side_effect=TransientBackendError("offline")):
            widget.attach(store)
        assert widget.state is WidgetState.ERROR
        assert widget.view.tooltip == "offline"
        assert widget.subscribed
        selection.go_next()
        assert widget.state is WidgetState.READY
        assert not widget.view.error

    def test_render_callback_receives_copies(self, selection, store):
        views = []
        widget = CounterWidget(HABIT_ATTRS, selection, on_render=lambda w, view: views.append(view))
        widget.attach(store)
        assert [v.disabled for v in views] == [True, False]

    def test_create_widget_rejects_block_kinds(self, selection):
        with pytest.raises(ConfigError):
            create_widget("chart", {}, selection)


class TestCounter:
    def test_increment_persists(self, selection, store):
        widget = CounterWidget(HABIT_ATTRS, selection)
        widget.attach(store)
        assert widget.increment()
        assert widget.increment()
        assert widget.value == 2
        assert store.fetch_value(widget.binding, "2024-06-13") == 2

    def test_decrement_clamped(self, selection, store):
        widget = CounterWidget(HABIT_ATTRS, selection)
        widget.attach(store)
        widget.decrement()
        assert widget.value == 0

    def test_ignored_while_not_ready(self, selection, store):
        widget = CounterWidget({"table": "habits"}, selection)
        widget.attach(store)
        assert widget.increment() is False

    def test_save_failure(self, selection, store):
        widget = CounterWidget(HABIT_ATTRS, selection)
        widget.attach(store)
        with patch.object(store, "upsert_value", side_effect=TransientBackendError("disk full")):
            assert widget.increment() is False
        assert widget.state is WidgetState.ERROR
        assert widget.value == 0
        assert widget.view.text == ERROR_TOKEN


class TestSwitch:
    def test_toggle(self, selection, store):
        widget = SwitchWidget({**HABIT_ATTRS, "key": "meds"}, selection)
        widget.attach(store)
        assert widget.toggle()
        assert widget.view.checked
        assert store.fetch_value(widget.binding, "2024-06-13") == 1

    def test_failed_toggle_reverts(self, selection, store):
        widget = SwitchWidget({**HABIT_ATTRS, "key": "meds"}, selection)
        widget.attach(store)
        seen = []
        widget.on_render = lambda w, view: seen.append(view.checked)
        with patch.object(store, "upsert_value", side_effect=TransientBackendError("offline")):
            widget.toggle()
        assert seen[0] is True
        assert widget.view.checked is False
        assert widget.value == 0
        assert widget.state is WidgetState.ERROR


class TestText:
    def test_commit_and_clear(self, selection, store, backend):
        widget = TextWidget(JOURNAL_ATTRS, selection)
        widget.attach(store)
        widget.commit("Good day")
        assert backend.execute("SELECT entry FROM journal") == [{"entry": "Good day"}]
        widget.commit("")
        assert backend.execute("SELECT entry FROM journal") == [{"entry": None}]

    def test_initial_value_on_load_failure(self, selection, store):
        widget = TextWidget({**JOURNAL_ATTRS, "value": "draft"}, selection)
        with patch.object(store, "fetch_value", side_effect=TransientBackendError("offline")):
            widget.attach(store)
        assert widget.state is WidgetState.ERROR
        assert widget.view.text == "draft"

    def test_picker(self, selection, store):
        widget = TextWidget({**JOURNAL_ATTRS, "modal": "time-picker"}, selection)
        widget.attach(store)
        calls = []

        def picker(modal, current):
            calls.append((modal, current))
            return "07:30"

        assert widget.open_picker(picker)
        assert calls == [(ModalType.TIME_PICKER, "")]
        assert widget.value == "07:30"

    def test_picker_cancel(self, selection, store):
        widget = TextWidget({**JOURNAL_ATTRS, "modal": "date-picker"}, selection)
        widget.attach(store)
        assert widget.open_picker(lambda modal, current: None) is False
        assert widget.value == ""

    def test_no_modal(self, selection, store):
        widget = TextWidget(JOURNAL_ATTRS, selection)
        widget.attach(store)
        assert widget.open_picker(lambda modal, current: "x") is False


class TestStaleness:
    def test_stale_load_discarded(self, selection, store, backend):
        """A load overtaken by a newer one does not overwrite its result."""
        backend.run("INSERT INTO habits VALUES ('water', '2024-06-13', 1)")
        backend.run("INSERT INTO habits VALUES ('water', '2024-06-14', 9)")
        widget = CounterWidget(HABIT_ATTRS, selection)
        widget.attach(store)

        real_fetch = store.fetch_value
        calls = []

        def slow_fetch(binding, effective_date):
            calls.append(effective_date)
            value = real_fetch(binding, effective_date)
            if len(calls) == 1:
                # a newer selection change arrives while this load is in flight
                selection.go_next()
            return value

        with patch.object(store, "fetch_value", side_effect=slow_fetch):
            assert widget.load() is False

        assert calls == ["2024-06-13", "2024-06-14"]
        assert widget.value == 9
        assert widget.state is WidgetState.READY

    def test_stale_save_failure_keeps_newer_load(self, selection, store, backend):
        """A save that fails after a newer load leaves the fresh value in place."""
        backend.run("INSERT INTO habits VALUES ('water', '2024-06-14', 9)")
        widget = CounterWidget(HABIT_ATTRS, selection)
        widget.attach(store)

        def failing_upsert(binding, effective_date, new_value):
            # the selection moves on while this write is in flight
            selection.go_next()
            raise TransientBackendError("database is locked")

        with patch.object(store, "upsert_value", side_effect=failing_upsert):
            assert widget.increment() is False

        assert widget.state is WidgetState.READY
        assert widget.value == 9
        assert widget.view.text == "9"
        assert not widget.view.error


ADD_JOURNAL_ATTRS = {"data-table": "journal", "data-column": "entry", "data-date": "@date"}


class TestAddText:
    def test_ready_without_loading(self, selection, store):
        widget = create_widget("add-text", ADD_JOURNAL_ATTRS, selection)
        with patch.object(store, "fetch_value") as fetch:
            widget.attach(store)
        fetch.assert_not_called()
        assert isinstance(widget, AddTextWidget)
        assert widget.state is WidgetState.READY
        assert widget.view.text == widget.view.label == "Add Entry to journal"
        assert not widget.subscribed

    def test_placeholders_resolved_when_added(self, selection, store, backend):
        widget = create_widget("add-text", ADD_JOURNAL_ATTRS, selection)
        widget.attach(store)
        selection.go_next()
        assert widget.add("  Long walk  ") is True
        assert backend.execute("SELECT date, entry FROM journal") == [{"date": "2024-06-14", "entry": "Long walk"}]
        assert widget.value == "Long walk"
        assert widget.state is WidgetState.READY

    def test_button_text_placeholders(self, selection, store):
        attrs = {**ADD_JOURNAL_ATTRS, "data-button-text": "Journal for @date"}
        widget = create_widget("add-text", attrs, selection)
        widget.attach(store)
        assert widget.view.label == "Journal for 2024-06-13"

    def test_blank_entry_refused(self, selection, store, backend):
        widget = create_widget("add-text", ADD_JOURNAL_ATTRS, selection)
        widget.attach(store)
        assert widget.add("   ") is False
        assert backend.execute("SELECT * FROM journal") == []

    def test_unsafe_column_is_a_config_error(self, selection, store, backend):
        attrs = {**ADD_JOURNAL_ATTRS, "data-entry); DROP TABLE journal; --": "x"}
        widget = create_widget("add-text", attrs, selection)
        widget.attach(store)
        assert widget.config_error
        assert widget.state is WidgetState.ERROR
        assert widget.add("hello") is False
        assert backend.table_columns("journal") == ["date", "entry"]

    def test_failed_insert_keeps_button_usable(self, selection, store, backend):
        attrs = {**ADD_JOURNAL_ATTRS, "data-mood": "good"}
        widget = create_widget("add-text", attrs, selection)
        widget.attach(store)
        assert widget.add("hello") is False
        assert widget.state is WidgetState.READY
        assert widget.view.error
        assert "mood" in widget.view.tooltip
        assert backend.execute("SELECT * FROM journal") == []
