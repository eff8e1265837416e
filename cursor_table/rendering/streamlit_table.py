"""Streamlit host for the table controller.

The controller lives in ``st.session_state`` so its cursor cache survives
reruns. Each script run fetches the current page, draws it, and maps every
widget interaction onto exactly one controller transition followed by
``st.rerun()``.
"""

from datetime import date, datetime, time, timezone
from typing import Any, Callable, List, Optional, Sequence

import pandas as pd
import streamlit as st

from ..core.columns import END, END_PILL_LABEL, START, START_PILL_LABEL, ColumnConfig
from ..core.controller import PaginationInfo, TableController
from ..core.sort import ASC, DESC
from ..sources.connection import ConnectionResult, DataSource

# Session state key prefix for controllers, one per table key
_CONTROLLER_STATE_KEY = "_cursor_table_controller"

SORT_ICONS = {ASC: "↓", DESC: "↑"}

# Header checkbox states: all, some, none selected
SELECTION_ICONS = ("☑", "▣", "☐")


def _state_key(session_key: str) -> str:
    return f"{_CONTROLLER_STATE_KEY}:{session_key}"


def get_table_controller(
    session_key: str, factory: Callable[[], TableController]
) -> TableController:
    """
    Get or create the controller stored in session state.

    Args:
        session_key: Identifies the table within the session
        factory: Builds the controller on first use. URL state is read at
            that point, so filters survive reloads and shared links.

    Returns:
        The session's TableController for this key
    """
    state_key = _state_key(session_key)
    if state_key not in st.session_state:
        st.session_state[state_key] = factory()
    return st.session_state[state_key]


def reset_table_controller(session_key: str) -> None:
    """Forget the stored controller (useful for testing)."""
    st.session_state.pop(_state_key(session_key), None)


def _render_sort_buttons(controller: TableController, key: str) -> None:
    sortable = [column for column in controller.columns if column.sortable]
    if not sortable:
        return

    for column, slot in zip(sortable, st.columns(len(sortable))):
        label = column.name
        if controller.is_sorted(column):
            label = f"{label} {SORT_ICONS[controller.direction]}"
        if slot.button(label, key=f"{key}_sort_{column.sort_key}"):
            controller.toggle_sort(column.sort_key)
            st.rerun()


def _render_filter_pills(controller: TableController, key: str) -> None:
    pills = controller.filter_pills()
    if not pills:
        return

    show_clear_all = controller.show_clear_all()
    slots = st.columns(len(pills) + (1 if show_clear_all else 0))

    for index, (pill, slot) in enumerate(zip(pills, slots)):
        # Keys are positional: duplicate values may share a filter key
        if slot.button(f"{pill.text} ✕", key=f"{key}_pill_{index}"):
            controller.clear_filter(pill.filter_key, pill.filter_value)
            st.rerun()

    if show_clear_all and slots[-1].button(
        "Clear All Filters", key=f"{key}_clear_all"
    ):
        controller.clear_all_filters()
        st.rerun()


def _menu_key(
    controller: TableController, key: str, column: ColumnConfig, part: str
) -> str:
    # The generation suffix resets menu widgets after every transition
    return f"{key}_filter_{column.name}_{part}_{controller.generation}"


def _date_to_epoch_ms(day: date) -> int:
    """Midnight UTC of a picked day, in epoch milliseconds."""
    moment = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def _render_option_menu(
    controller: TableController, column: ColumnConfig, slot: Any, key: str
) -> bool:
    """Draw a column's option menu; returns whether search text is entered."""
    options = column.filter_options
    search = None
    if not options.no_text_search:
        search = slot.text_input(
            f"Filter {column.name}",
            key=_menu_key(controller, key, column, "search"),
        )

    found = controller.search_menu_options(column, search)
    choice = slot.selectbox(
        column.name,
        [""] + [option.get("name") for option in found],
        index=0,
        key=_menu_key(controller, key, column, "choice"),
    )
    if choice:
        value = next(o.get("value") for o in found if o.get("name") == choice)
        controller.apply_menu_selection(column, choice, value)
        st.rerun()

    if (
        search
        and options.rows_query_substring_filter_key
        and slot.button(
            f'Contains "{search}"',
            key=_menu_key(controller, key, column, "contains"),
        )
    ):
        controller.apply_menu_selection(column, search, None)
        st.rerun()

    return bool(search)


def _render_date_time_menu(
    controller: TableController, column: ColumnConfig, slot: Any, key: str
) -> None:
    for which, label in ((START, START_PILL_LABEL), (END, END_PILL_LABEL)):
        picked = slot.date_input(
            f"{column.name} {label}",
            value=None,
            key=_menu_key(controller, key, column, which),
        )
        if picked is not None:
            controller.apply_date_time_filter(column, which, _date_to_epoch_ms(picked))
            st.rerun()


def _render_filter_menus(controller: TableController, key: str) -> None:
    """
    Draw one filter control per filterable column.

    Option columns get a search box, a select over the matching options and,
    for columns with a substring key, a "Contains" button for the typed text.
    Date-time columns get start and end date pickers. Polling is paused while
    any search box holds text.
    """
    filterable = [column for column in controller.columns if column.filterable]
    if not filterable:
        return

    searching = False
    for column, slot in zip(filterable, st.columns(len(filterable))):
        if column.filter_options.date_time is not None:
            _render_date_time_menu(controller, column, slot, key)
        elif _render_option_menu(controller, column, slot, key):
            searching = True

    if searching:
        controller.pause_polling()
    elif controller.polling_paused:
        controller.resume_polling()


def _render_selection_row(
    controller: TableController,
    rows: Sequence[dict],
    key: str,
    action: Callable[[List[Any]], Any],
    action_label: str,
) -> None:
    toggle_slot, count_slot, action_slot = st.columns(3)

    if controller.all_selected(rows):
        icon = SELECTION_ICONS[0]
    elif controller.partially_selected(rows):
        icon = SELECTION_ICONS[1]
    else:
        icon = SELECTION_ICONS[2]
    if toggle_slot.button(f"{icon} Select all", key=f"{key}_select_all"):
        controller.toggle_all_rows(rows)
        st.rerun()

    selected = controller.selected_rows
    count_slot.caption(f"{len(selected)} Selected")
    if action_slot.button(
        action_label, key=f"{key}_selection_action", disabled=not selected
    ):
        controller.run_selection_action(action)
        st.rerun()


def _render_pagination(
    controller: TableController, info: PaginationInfo, key: str
) -> None:
    first_slot, back_slot, next_slot, size_slot, label_slot = st.columns(5)

    if first_slot.button("⏮", key=f"{key}_first", disabled=not info.can_go_first):
        controller.change_page(0)
        st.rerun()

    if back_slot.button("◀", key=f"{key}_back", disabled=not info.can_go_back):
        controller.change_page(info.page - 1)
        st.rerun()

    if next_slot.button("▶", key=f"{key}_next", disabled=not info.can_go_next):
        controller.change_page(info.page + 1)
        st.rerun()

    options = list(info.rows_per_page_options)
    if info.rows_per_page not in options:
        options = sorted(options + [info.rows_per_page])
    selected = size_slot.selectbox(
        "Rows per page",
        options,
        index=options.index(info.rows_per_page),
        key=f"{key}_rows_per_page",
    )
    if selected != info.rows_per_page:
        controller.change_rows_per_page(selected)
        st.rerun()

    label_slot.caption(info.label)


def render_table(
    controller: TableController,
    data_source: DataSource,
    key: str = "cursor_table",
    render_rows: Optional[Callable[[ConnectionResult], None]] = None,
    render_header_if_no_data: bool = False,
    selection_action: Optional[Callable[[List[Any]], Any]] = None,
    selection_action_label: str = "Delete selected",
) -> ConnectionResult:
    """
    Fetch and render the controller's current page in Streamlit.

    This function:
    1. Fetches the page for the controller's current variables
    2. Draws sort buttons, filter menus and filter pills (while there are
       rows or filters)
    3. Draws the row selection controls when a selection action is given
    4. Draws the rows, or the empty-state text
    5. Draws pagination controls when the count warrants them

    Data source errors propagate to the caller.

    Args:
        controller: The table's controller (see get_table_controller())
        data_source: Callable returning a ConnectionResult for variables
        key: Unique widget key prefix for this table
        render_rows: Custom row renderer; defaults to ``st.dataframe``
        render_header_if_no_data: Keep headers visible on empty results
        selection_action: Bulk action run with the selected row ids (e.g. a
            delete mutation). Enables the row selection controls.
        selection_action_label: Button text for the selection action

    Returns:
        The fetched ConnectionResult
    """
    result = controller.fetch(data_source)

    if controller.should_render_header(result, render_header_if_no_data):
        _render_sort_buttons(controller, key)
        _render_filter_menus(controller, key)
        _render_filter_pills(controller, key)

    if selection_action is not None and result.has_rows:
        _render_selection_row(
            controller, result.rows, key, selection_action, selection_action_label
        )

    empty_text = controller.empty_text(result)
    if empty_text is not None:
        if empty_text:
            st.info(empty_text)
    elif render_rows is not None:
        render_rows(result)
    else:
        st.dataframe(
            pd.DataFrame(result.rows), hide_index=True, use_container_width=True
        )

    info = controller.pagination_info(result)
    if info.visible:
        _render_pagination(controller, info, key)

    return result
