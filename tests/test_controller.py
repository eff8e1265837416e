"""Tests for TableController: atomic transitions, URL seeding and fetching.

Note: Fixtures (table_columns, sample_users_data, *_column) are defined in
conftest.py
"""

import json
from datetime import datetime
from typing import List
from urllib.parse import urlencode

import polars as pl
import pytest

from cursor_table.core.columns import ColumnConfig
from cursor_table.core.controller import (
    NO_DATA_AFTER_FILTERS_TEXT,
    FilterPill,
    TableController,
)
from cursor_table.core.filters import FilterEntry
from cursor_table.core.pager import CursorUnavailableError
from cursor_table.core.sort import ASC, DESC
from cursor_table.sources.array import ArrayDataSource
from cursor_table.sources.connection import ConnectionResult, PageInfo
from cursor_table.sync.ports import InMemoryQueryParams

ACTIVE = FilterEntry("status", "ACTIVE", "Status", "ACTIVE")
PENDING = FilterEntry("status", "PENDING", "Status", "PENDING")


def walk_to_page(controller: TableController, page: int) -> None:
    """Page forward, observing a synthetic end cursor on each page."""
    while controller.current_page < page:
        controller.observe_end_cursor(f"c{controller.current_page}")
        controller.change_page(controller.current_page + 1)


@pytest.fixture
def port() -> InMemoryQueryParams:
    return InMemoryQueryParams()


@pytest.fixture
def controller(
    table_columns: List[ColumnConfig], port: InMemoryQueryParams
) -> TableController:
    return TableController(columns=table_columns, port=port, rows_per_page=10)


@pytest.fixture
def users_source(sample_users_data: pl.LazyFrame) -> ArrayDataSource:
    return ArrayDataSource(
        sample_users_data,
        filters={"status": "status", "nameSubstring": ("name", "contains")},
        sort_columns={"EMAIL": "email", "NAME": "name"},
    )


class TestExampleScenario:
    def test_single_status_filter_variables(self, controller: TableController):
        controller.apply_filter(ACTIVE, is_single=True)

        variables = controller.current_variables()
        assert variables["filters"]["status"] == "ACTIVE"
        assert variables["after"] is None
        assert variables["first"] == 10

    def test_next_page_without_observed_cursor_rejected(self, controller):
        controller.apply_filter(ACTIVE, is_single=True)
        generation = controller.generation

        with pytest.raises(CursorUnavailableError):
            controller.change_page(1)

        assert controller.current_page == 0
        assert controller.current_variables()["after"] is None
        assert controller.generation == generation


class TestCursorCache:
    def test_revisited_pages_use_original_cursors(self, controller):
        controller.observe_end_cursor("c0")
        controller.change_page(1)
        assert controller.current_variables()["after"] == "c0"
        controller.observe_end_cursor("c1")
        controller.change_page(2)
        assert controller.current_variables()["after"] == "c1"
        controller.observe_end_cursor("c2")

        controller.change_page(0)
        assert controller.current_variables()["after"] is None
        controller.change_page(1)
        assert controller.current_variables()["after"] == "c0"
        controller.change_page(2)
        assert controller.current_variables()["after"] == "c1"

    def test_jump_rejected(self, controller):
        controller.observe_end_cursor("c0")
        with pytest.raises(CursorUnavailableError):
            controller.change_page(3)

    @pytest.mark.parametrize(
        "transition",
        [
            lambda c: c.apply_filter(ACTIVE),
            lambda c: c.apply_filter(ACTIVE, is_single=True),
            lambda c: c.clear_filter("status", "ACTIVE"),
            lambda c: c.clear_all_filters(),
            lambda c: c.toggle_sort("EMAIL"),
            lambda c: c.change_rows_per_page(25),
        ],
        ids=[
            "apply_multi",
            "apply_single",
            "clear",
            "clear_all",
            "toggle_sort",
            "rows_per_page",
        ],
    )
    def test_transitions_reset_pagination(self, controller, transition):
        walk_to_page(controller, 2)
        assert controller.pagination_state.cursor_cache == {1: "c0", 2: "c1"}

        transition(controller)

        state = controller.pagination_state
        assert state.current_page == 0
        assert state.after_cursor is None
        assert state.cursor_cache == {}

    def test_rows_per_page_change(self, controller):
        controller.change_rows_per_page(50)

        assert controller.rows_per_page == 50
        assert controller.current_variables()["first"] == 50


class TestFiltersAndSort:
    def test_multi_filter_accumulates(self, controller):
        controller.apply_filter(ACTIVE)
        controller.apply_filter(PENDING)

        assert controller.current_variables()["filters"] == {
            "status": ["ACTIVE", "PENDING"]
        }

    def test_clear_filter_value(self, controller):
        controller.apply_filter(ACTIVE)
        controller.apply_filter(PENDING)
        controller.clear_filter("status", "ACTIVE")

        assert controller.filters == {"status": [PENDING]}

    def test_clear_last_value_removes_key(self, controller):
        controller.apply_filter(ACTIVE)
        controller.clear_filter("status", "ACTIVE")

        assert controller.filters == {}
        assert "status" not in controller.current_variables()["filters"]

    def test_toggle_sort(self, controller):
        controller.toggle_sort("EMAIL")
        assert (controller.sort_key, controller.direction) == ("EMAIL", ASC)
        controller.toggle_sort("EMAIL")
        assert controller.direction == DESC
        controller.toggle_sort("NAME")
        assert (controller.sort_key, controller.direction) == ("NAME", ASC)

    def test_default_sort(self, table_columns):
        controller = TableController(
            columns=table_columns,
            default_sort_key="CREATED_AT",
            default_sort_direction=ASC,
        )
        assert controller.current_variables()["orderBy"] == {
            "sort": "CREATED_AT",
            "direction": ASC,
        }

    def test_base_variables(self, table_columns):
        controller = TableController(
            columns=table_columns,
            base_variables={"orgId": "org-1", "filters": {"deleted": False}},
        )
        controller.apply_filter(ACTIVE)

        variables = controller.current_variables()
        assert variables["orgId"] == "org-1"
        assert variables["filters"] == {"deleted": False, "status": ["ACTIVE"]}

    def test_menu_selection(self, controller, status_column, name_column):
        controller.pause_polling()
        controller.apply_menu_selection(status_column, "ACTIVE", None)
        controller.apply_menu_selection(name_column, "ali", None)

        assert controller.current_variables()["filters"] == {
            "status": ["ACTIVE"],
            "nameSubstring": "ali",
        }
        assert not controller.polling_paused

    def test_menu_selection_on_plain_column(self, controller):
        with pytest.raises(ValueError, match="not filterable"):
            controller.apply_menu_selection(ColumnConfig("Email"), "x", "x")

    def test_date_time_filter(self, controller, created_column):
        controller.apply_date_time_filter(created_column, "start", 1000)
        controller.apply_date_time_filter(created_column, "start", 2000)

        assert controller.current_variables()["filters"] == {"createdAfter": 2000}
        assert controller.filter_pills() == [
            FilterPill("createdAfter", 2000, "After", "1970-01-01T00:00:02Z")
        ]

    def test_menu_options_hide_active(self, controller, status_column):
        controller.apply_filter(ACTIVE)
        options = [
            {"name": "ACTIVE", "value": "ACTIVE"},
            {"name": "PENDING", "value": "PENDING"},
        ]

        assert controller.menu_options(status_column, options) == [
            {"name": "PENDING", "value": "PENDING"}
        ]
        assert controller.menu_options(ColumnConfig("Email"), options) == []

    def test_search_menu_options(self, controller, status_column):
        controller.apply_filter(PENDING)

        assert controller.search_menu_options(status_column, "ING") == []
        assert controller.search_menu_options(status_column, "act") == [
            {"name": "ACTIVE", "value": "ACTIVE"}
        ]

    def test_filter_value_must_survive_url(self, controller, port):
        entry = FilterEntry("when", datetime(2024, 1, 1), "When", "2024")

        with pytest.raises(ValueError, match="'when'"):
            controller.apply_filter(entry)

        assert controller.filters == {}
        assert controller.generation == 0
        assert port.history == []


class TestURLSync:
    def test_transitions_write_url(self, controller, port):
        controller.toggle_sort("EMAIL")
        controller.apply_filter(ACTIVE)

        assert len(port.history) == 2
        assert port.read() == {
            "sort": "EMAIL",
            "direction": "ASC",
            "status": '[{"value":"ACTIVE","name":"ACTIVE"}]',
        }
        assert controller.query_string == port.query_string

    def test_paging_does_not_write_url(self, controller, port):
        walk_to_page(controller, 2)
        controller.change_rows_per_page(25)
        assert port.history == []

    def test_state_seeded_from_url(self, table_columns):
        query = urlencode(
            {
                "sort": "NAME",
                "direction": "ASC",
                "status": json.dumps([{"value": "ACTIVE", "name": "ACTIVE"}]),
                "createdBefore": json.dumps({"value": 5000, "name": "then"}),
            }
        )
        seen = []

        controller = TableController(
            columns=table_columns,
            port=InMemoryQueryParams(query),
            on_filter_change=seen.append,
        )

        assert controller.sort_key == "NAME"
        assert controller.direction == ASC
        assert controller.current_variables()["filters"] == {
            "status": ["ACTIVE"],
            "createdBefore": 5000,
        }
        assert [pill.text for pill in controller.filter_pills()] == [
            "Status: ACTIVE",
            "Before: then",
        ]
        assert len(seen) == 1

    def test_malformed_url_filter_ignored(self, table_columns):
        controller = TableController(
            columns=table_columns,
            port=InMemoryQueryParams("status=%7Boops&sort=EMAIL"),
        )

        assert controller.filters == {}
        assert controller.sort_key == "EMAIL"

    def test_filter_change_callback(self, table_columns):
        seen = []
        controller = TableController(
            columns=table_columns, on_filter_change=seen.append
        )
        controller.apply_filter(ACTIVE)
        controller.toggle_sort("EMAIL")
        controller.clear_all_filters()

        assert seen == [{}, {"status": [ACTIVE]}, {}]


class TestFetching:
    def test_paging_through_array_source(self, controller, users_source):
        result = controller.fetch(users_source)
        info = controller.pagination_info(result)
        assert info.label == "1-10 of 25"
        assert info.can_go_next and not info.can_go_back

        controller.change_page(1)
        result = controller.fetch(users_source)
        assert result.rows[0]["id"] == 11

        controller.change_page(2)
        result = controller.fetch(users_source)
        info = controller.pagination_info(result)
        assert [row["id"] for row in result.rows] == [21, 22, 23, 24, 25]
        assert info.label == "21-25 of 25"
        assert not info.can_go_next
        assert info.can_go_first and info.can_go_back

        controller.change_page(0)
        assert controller.fetch(users_source).rows[0]["id"] == 1

    def test_filtered_sorted_fetch(self, controller, users_source):
        controller.apply_filter(ACTIVE)
        controller.toggle_sort("EMAIL")
        controller.toggle_sort("EMAIL")

        result = controller.fetch(users_source)

        assert result.total_count == 8
        assert result.rows[0]["email"] == "user24@example.com"

    def test_stale_result_discarded(self, controller):
        ticket = controller.begin_fetch()
        controller.toggle_sort("EMAIL")

        stale = ConnectionResult(
            rows=[{"id": 1}], page_info=PageInfo(end_cursor="stale")
        )
        assert controller.complete_fetch(ticket, stale) is False
        assert controller.last_result is None

        with pytest.raises(CursorUnavailableError):
            controller.change_page(1)

    def test_stale_end_cursor_discarded(self, controller):
        generation = controller.generation
        controller.change_rows_per_page(25)

        assert controller.observe_end_cursor("old", generation=generation) is False
        assert controller.observe_end_cursor("new", generation=controller.generation)
        controller.change_page(1)
        assert controller.current_variables()["after"] == "new"

    def test_ticket_carries_variables(self, controller):
        controller.apply_filter(ACTIVE, is_single=True)
        ticket = controller.begin_fetch()

        assert ticket.generation == controller.generation
        assert ticket.variables == controller.current_variables()

    def test_data_source_errors_propagate(self, controller):
        def failing_source(variables):
            raise ConnectionError("backend down")

        with pytest.raises(ConnectionError, match="backend down"):
            controller.fetch(failing_source)
        assert controller.last_result is None

    def test_on_completed_sees_accepted_results(self, table_columns):
        completed = []
        controller = TableController(
            columns=table_columns, on_completed=completed.append
        )
        result = ConnectionResult(rows=[{"id": 1}])

        stale = controller.begin_fetch()
        controller.toggle_sort("EMAIL")
        controller.complete_fetch(stale, result)
        assert completed == []

        controller.complete_fetch(controller.begin_fetch(), result)
        assert completed == [result]


class TestDerivedValues:
    def test_unknown_total_count(self, controller):
        result = ConnectionResult(rows=[{"id": i} for i in range(10)])
        controller.complete_fetch(controller.begin_fetch(), result)

        assert controller.pagination_info().label == "1-10 of Many"

    def test_unknown_total_count_short_page(self, controller):
        result = ConnectionResult(rows=[{"id": i} for i in range(3)])
        controller.complete_fetch(controller.begin_fetch(), result)

        assert controller.pagination_info().label == "1-3 of Many"

    def test_unknown_total_count_later_page(self, controller):
        walk_to_page(controller, 1)
        result = ConnectionResult(rows=[{"id": i} for i in range(4)])
        controller.complete_fetch(controller.begin_fetch(), result)

        assert controller.pagination_info().label == "11-14 of Many"

    def test_next_needs_a_known_cursor(self, controller):
        result = ConnectionResult(
            rows=[{"id": 1}], total_count=40, page_info=PageInfo(has_next_page=True)
        )
        controller.complete_fetch(controller.begin_fetch(), result)

        assert controller.pagination_info().can_go_next is False

    def test_pagination_hidden_under_threshold(self, table_columns, users_source):
        controller = TableController(
            columns=table_columns, disable_pagination_if_row_count_under=30
        )
        result = controller.fetch(users_source)
        assert controller.pagination_info(result).visible is False

    def test_pagination_hidden_without_rows(self, controller):
        assert controller.pagination_info().visible is False

    def test_empty_text(self, table_columns):
        controller = TableController(columns=table_columns, no_data_text="No users")
        empty = ConnectionResult(rows=[], total_count=0)

        assert controller.empty_text(empty) == "No users"
        controller.apply_filter(ACTIVE)
        assert controller.empty_text(empty) == NO_DATA_AFTER_FILTERS_TEXT
        assert controller.empty_text(ConnectionResult(rows=[{"id": 1}])) is None

    def test_header_visibility(self, controller):
        empty = ConnectionResult(rows=[], total_count=0)

        assert controller.should_render_header(empty) is False
        assert controller.should_render_header(empty, render_header_if_no_data=True)
        controller.apply_filter(ACTIVE)
        assert controller.should_render_header(empty) is True

    def test_clear_all_offered_for_multiple_pills(self, controller):
        controller.apply_filter(ACTIVE)
        assert controller.show_clear_all() is False
        controller.apply_filter(PENDING)
        assert controller.show_clear_all() is True

    def test_polling(self, table_columns):
        controller = TableController(columns=table_columns, poll_interval=5)
        assert controller.effective_poll_interval == 5

        controller.pause_polling()
        assert controller.effective_poll_interval == 0
        controller.resume_polling()
        assert controller.effective_poll_interval == 5

    def test_is_sorted(self, controller, name_column):
        assert not controller.is_sorted(name_column)
        controller.toggle_sort("NAME")
        assert controller.is_sorted(name_column)
        assert not controller.is_sorted(ColumnConfig("Plain"))


class TestRowSelection:
    ROWS = [{"id": 1}, {"id": 2}, {"id": 3}]

    def test_toggle_all_rows(self, controller):
        assert controller.toggle_all_rows(self.ROWS) == [1, 2, 3]
        assert controller.all_selected(self.ROWS)

        assert controller.toggle_all_rows(self.ROWS) == []
        assert controller.selected_rows == []

    def test_partial_selection_selects_all(self, controller):
        controller.toggle_row(self.ROWS[1])

        assert controller.partially_selected(self.ROWS)
        assert not controller.all_selected(self.ROWS)
        assert controller.toggle_all_rows(self.ROWS) == [1, 2, 3]

    def test_toggle_row(self, controller):
        controller.toggle_row(self.ROWS[0])
        controller.toggle_row(self.ROWS[2])
        controller.toggle_row(self.ROWS[0])

        assert controller.selected_rows == [3]

    def test_nothing_selected_on_empty_page(self, controller):
        assert not controller.all_selected([])
        assert not controller.partially_selected([])

    def test_custom_row_id_key(self, table_columns):
        controller = TableController(columns=table_columns, row_id_key="email")
        controller.toggle_row({"email": "a@example.com", "id": 1})

        assert controller.selected_rows == ["a@example.com"]

    @pytest.mark.parametrize(
        "transition",
        [
            lambda c: c.apply_filter(ACTIVE),
            lambda c: c.toggle_sort("EMAIL"),
            lambda c: c.change_rows_per_page(25),
        ],
    )
    def test_query_changes_clear_selection(self, controller, transition):
        controller.toggle_all_rows(self.ROWS)
        transition(controller)
        assert controller.selected_rows == []

    def test_selection_action(self, controller):
        controller.toggle_all_rows(self.ROWS)
        generation = controller.generation
        deleted = []

        outcome = controller.run_selection_action(
            lambda ids: deleted.extend(ids) or len(ids)
        )

        assert outcome == 3
        assert deleted == [1, 2, 3]
        assert controller.selected_rows == []
        assert controller.generation == generation + 1

    def test_failed_action_keeps_selection(self, controller):
        controller.toggle_row(self.ROWS[0])

        def failing_action(ids):
            raise RuntimeError("mutation failed")

        with pytest.raises(RuntimeError):
            controller.run_selection_action(failing_action)
        assert controller.selected_rows == [1]
