"""Table state controller: sole owner of filter, sort and pagination state."""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..sources.connection import ConnectionResult, DataSource
from ..sync.ports import InMemoryQueryParams, QueryParamsPort
from ..sync.url_sync import URLSync
from .columns import ColumnConfig, working_options
from .filters import FilterEntry, FilterStore, StoredFilter
from .pager import CursorPager, PaginationState
from .sort import DESC, SortState
from .variables import build_variables

logger = logging.getLogger(__name__)

NO_DATA_AFTER_FILTERS_TEXT = "Nothing matches the selected filters."
UNKNOWN_COUNT_LABEL = "Many"
DEFAULT_ROWS_PER_PAGE_OPTIONS = (10, 25, 50, 100, 200)


@dataclass(frozen=True)
class FetchTicket:
    """Variables of one fetch, tagged with the generation they were built in."""

    generation: int
    variables: Dict[str, Any]


@dataclass(frozen=True)
class FilterPill:
    """A removable pill for one active filter entry."""

    filter_key: str
    filter_value: Any
    label: str
    value: str

    @property
    def text(self) -> str:
        return f"{self.label}: {self.value}"


@dataclass(frozen=True)
class PaginationInfo:
    """Everything the renderer needs to draw pagination controls."""

    page: int
    rows_per_page: int
    count: Optional[int]
    label: str
    can_go_first: bool
    can_go_back: bool
    can_go_next: bool
    visible: bool
    rows_per_page_options: Tuple[int, ...]


class TableController:
    """
    Owns the filter store, sort state and cursor pager of one table.

    Every filter or sort change is one atomic transition: the state changes,
    the cursor cache is invalidated and the URL is rewritten. The rendering
    layer reads derived values and calls the transition methods; it never
    touches the underlying state.

    Each transition that changes the query variables advances a generation
    counter. Fetch results are tagged with the generation they were requested
    in and ignored once superseded, so a slow response can never plant a
    cursor computed under an old configuration.

    Example:
        controller = TableController(
            columns=[
                ColumnConfig("Email", sort_key="EMAIL"),
                ColumnConfig(
                    "Status",
                    filter_options=FilterOptions(
                        rows_query_filter_key="status",
                        pill_label="Status",
                        fixed_menu_options=["ACTIVE", "DISABLED"],
                    ),
                ),
            ],
            port=StreamlitQueryParams(),
        )
        result = controller.fetch(ArrayDataSource(users_df))
    """

    def __init__(
        self,
        columns: Optional[Sequence[ColumnConfig]] = None,
        port: Optional[QueryParamsPort] = None,
        base_variables: Optional[Dict[str, Any]] = None,
        default_sort_key: Optional[str] = None,
        default_sort_direction: str = DESC,
        rows_per_page: int = 10,
        rows_per_page_options: Sequence[int] = DEFAULT_ROWS_PER_PAGE_OPTIONS,
        poll_interval: float = 0,
        disable_pagination_if_row_count_under: int = 0,
        no_data_text: str = "",
        on_filter_change: Optional[
            Callable[[Dict[str, StoredFilter]], None]
        ] = None,
        on_completed: Optional[Callable[[ConnectionResult], None]] = None,
        row_id_key: str = "id",
    ):
        """
        Initialize the controller and seed filter/sort state from the URL.

        Args:
            columns: Column configuration. Declares which URL parameters are
                read back as filters and how their pill labels are rebuilt.
            port: Where query parameters are read and written. Defaults to an
                empty InMemoryQueryParams.
            base_variables: Variables every fetch starts from; their
                ``filters`` are overlaid by the active filters
            default_sort_key: Sort key when the URL has none
            default_sort_direction: "ASC" or "DESC" when the URL has none
            rows_per_page: Initial page size
            rows_per_page_options: Page sizes offered by the renderer
            poll_interval: Refetch interval for the external scheduler (0 = off)
            disable_pagination_if_row_count_under: Hide pagination controls
                when the total count is below this
            no_data_text: Text shown when there are no rows and no filters
            on_filter_change: Called with a snapshot of the filters once after
                seeding and after every filter change
            on_completed: Called with every accepted fetch result
            row_id_key: Row field identifying a row for selection
        """
        self._columns: List[ColumnConfig] = list(columns or [])
        self._base_variables = dict(base_variables or {})
        self._rows_per_page_options = tuple(rows_per_page_options)
        self._poll_interval = poll_interval
        self._disable_pagination_if_row_count_under = (
            disable_pagination_if_row_count_under
        )
        self._no_data_text = no_data_text
        self._on_filter_change = on_filter_change
        self._on_completed = on_completed
        self._row_id_key = row_id_key

        if port is None:
            port = InMemoryQueryParams()
        self._url_sync = URLSync(port)
        url_state = self._url_sync.read(self._columns)

        self._filter_store = FilterStore(url_state.filters)
        self._sort_state = SortState(
            sort_key=url_state.sort_key or default_sort_key,
            direction=url_state.direction or default_sort_direction,
        )
        self._pager = CursorPager(rows_per_page)
        self._generation = 0
        self._polling_paused = False
        self._last_result: Optional[ConnectionResult] = None
        self._selected_rows: List[Any] = []

        self._notify_filter_change()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _advance_generation(self) -> None:
        self._generation += 1

    def _commit_query_change(self, filters_changed: bool) -> None:
        """Invalidate cursors and rewrite the URL after a filter/sort change."""
        self._pager.invalidate()
        self._selected_rows = []
        self._advance_generation()
        self._url_sync.write(self._filter_store, self._sort_state)
        if filters_changed:
            self._notify_filter_change()

    def _notify_filter_change(self) -> None:
        if self._on_filter_change is not None:
            self._on_filter_change(self._filter_store.snapshot())

    def apply_filter(self, entry: FilterEntry, is_single: bool = False) -> None:
        """
        Add a filter and return to the first page.

        Args:
            entry: The filter clause, stored under ``entry.filter_key``
            is_single: Replace any existing filter under the key instead of
                appending to it

        Raises:
            ValueError: If the filter value cannot be stored in the URL. The
                state is left unchanged.
        """
        URLSync.encode_filter(entry.filter_key, entry)
        self._filter_store.apply(entry.filter_key, entry, is_single)
        self._commit_query_change(filters_changed=True)

    def clear_filter(self, filter_key: str, filter_value: Any = None) -> None:
        """
        Remove a filter (one value of a multi-valued key) and return to the
        first page.
        """
        self._filter_store.clear(filter_key, filter_value)
        self._commit_query_change(filters_changed=True)

    def clear_all_filters(self) -> None:
        """Remove every filter and return to the first page."""
        self._filter_store.clear_all()
        self._commit_query_change(filters_changed=True)

    def toggle_sort(self, sort_key: str) -> None:
        """
        Sort by a key, flipping the direction if it is already active, and
        return to the first page.
        """
        self._sort_state.toggle(sort_key)
        self._commit_query_change(filters_changed=False)

    def change_page(self, page: int) -> None:
        """
        Move to another page.

        Raises:
            CursorUnavailableError: If the page cannot be reached with a known
                cursor. The state is left unchanged.
        """
        self._pager.on_page_change(page)
        self._selected_rows = []
        self._advance_generation()

    def change_rows_per_page(self, rows_per_page: int) -> None:
        """Change the page size, dropping all cursors and returning to page 0."""
        self._pager.set_rows_per_page(rows_per_page)
        self._selected_rows = []
        self._advance_generation()

    def pause_polling(self) -> None:
        """Suspend periodic refetching (e.g. while a filter menu is open)."""
        self._polling_paused = True

    def resume_polling(self) -> None:
        self._polling_paused = False

    def apply_menu_selection(
        self, column: ColumnConfig, name: str, value: Any
    ) -> None:
        """
        Apply a filter chosen from a column's menu.

        Selecting an option closes the menu, so polling resumes as well.

        Args:
            column: The column whose menu was used
            name: Display name of the option (or the typed text)
            value: Value of the option
        """
        if column.filter_options is None:
            raise ValueError(f"Column '{column.name}' is not filterable")
        entry, is_single = column.filter_options.selection_to_filter(name, value)
        self.apply_filter(entry, is_single=is_single)
        self.resume_polling()

    def apply_date_time_filter(
        self, column: ColumnConfig, which: str, timestamp_ms: int
    ) -> None:
        """
        Set one end ("start" or "end") of a column's time range filter.

        Polling resumes since the picker closes on selection.
        """
        if column.filter_options is None:
            raise ValueError(f"Column '{column.name}' is not filterable")
        entry = column.filter_options.date_time_filter(which, timestamp_ms)
        self.apply_filter(entry, is_single=True)
        self.resume_polling()

    # ------------------------------------------------------------------
    # Row selection
    # ------------------------------------------------------------------

    def _row_id(self, row: Dict[str, Any]) -> Any:
        return row[self._row_id_key]

    def toggle_row(self, row: Dict[str, Any]) -> None:
        """Select a row, or deselect it if it is already selected."""
        row_id = self._row_id(row)
        if row_id in self._selected_rows:
            self._selected_rows = [r for r in self._selected_rows if r != row_id]
        else:
            self._selected_rows = self._selected_rows + [row_id]

    def toggle_all_rows(self, rows: Sequence[Dict[str, Any]]) -> List[Any]:
        """
        Select every row of the page, or none once all are selected.

        Args:
            rows: The rows currently shown

        Returns:
            The new selection (row ids)
        """
        if len(self._selected_rows) < len(rows):
            self._selected_rows = [self._row_id(row) for row in rows]
        else:
            self._selected_rows = []
        return list(self._selected_rows)

    def clear_selection(self) -> None:
        self._selected_rows = []

    def run_selection_action(self, action: Callable[[List[Any]], Any]) -> Any:
        """
        Run a bulk action (e.g. a delete mutation) on the selected row ids.

        On success the selection is cleared and the generation advances, so
        the next fetch reloads the page and results fetched before the action
        are discarded. Errors from the action propagate and the selection is
        kept.

        Args:
            action: Called with the list of selected row ids

        Returns:
            Whatever the action returns
        """
        outcome = action(list(self._selected_rows))
        self._selected_rows = []
        self._advance_generation()
        return outcome

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def current_variables(self) -> Dict[str, Any]:
        """Return the variables for the next fetch."""
        return build_variables(
            self._filter_store, self._sort_state, self._pager, self._base_variables
        )

    def begin_fetch(self) -> FetchTicket:
        """Snapshot the current variables for a fetch about to be issued."""
        return FetchTicket(
            generation=self._generation, variables=self.current_variables()
        )

    def complete_fetch(self, ticket: FetchTicket, result: ConnectionResult) -> bool:
        """
        Accept a fetch result unless it was superseded.

        Args:
            ticket: The ticket returned by begin_fetch() for this fetch
            result: The data source's response

        Returns:
            True if the result was accepted, False if it was stale and ignored
        """
        if ticket.generation != self._generation:
            logger.debug(
                "Discarding result of generation %d (current generation %d)",
                ticket.generation,
                self._generation,
            )
            return False

        self._pager.observe_end_cursor(
            result.page_info.end_cursor, result.page_info.has_next_page
        )
        self._last_result = result
        if self._on_completed is not None:
            self._on_completed(result)
        return True

    def fetch(self, data_source: DataSource) -> ConnectionResult:
        """
        Fetch the current page from a data source.

        Data source errors propagate to the caller; nothing is retried.

        Args:
            data_source: Callable taking the query variables

        Returns:
            The data source's result
        """
        ticket = self.begin_fetch()
        result = data_source(ticket.variables)
        self.complete_fetch(ticket, result)
        return result

    def observe_end_cursor(
        self,
        cursor: Any,
        generation: Optional[int] = None,
        has_next_page: Optional[bool] = None,
    ) -> bool:
        """
        Record the end cursor of the current page.

        For hosts that run fetches themselves; pass the generation of the
        ticket the fetch was issued with so stale responses are ignored.

        Returns:
            True if the cursor was recorded
        """
        if generation is not None and generation != self._generation:
            logger.debug(
                "Ignoring end cursor of generation %d (current generation %d)",
                generation,
                self._generation,
            )
            return False
        self._pager.observe_end_cursor(cursor, has_next_page)
        return True

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def columns(self) -> List[ColumnConfig]:
        return list(self._columns)

    @property
    def filters(self) -> Dict[str, StoredFilter]:
        return self._filter_store.snapshot()

    @property
    def sort_key(self) -> Optional[str]:
        return self._sort_state.sort_key

    @property
    def direction(self) -> str:
        return self._sort_state.direction

    @property
    def current_page(self) -> int:
        return self._pager.current_page

    @property
    def rows_per_page(self) -> int:
        return self._pager.rows_per_page

    @property
    def rows_per_page_options(self) -> Tuple[int, ...]:
        return self._rows_per_page_options

    @property
    def pagination_state(self) -> PaginationState:
        return self._pager.state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def last_result(self) -> Optional[ConnectionResult]:
        """The most recent accepted fetch result."""
        return self._last_result

    @property
    def polling_paused(self) -> bool:
        return self._polling_paused

    @property
    def effective_poll_interval(self) -> float:
        """Poll interval for the scheduler: 0 while polling is paused."""
        return 0 if self._polling_paused else self._poll_interval

    @property
    def query_string(self) -> str:
        """The query string the current filter and sort state serialize to."""
        return self._url_sync.to_query_string(self._filter_store, self._sort_state)

    def is_sorted(self, column: ColumnConfig) -> bool:
        return bool(column.sort_key) and column.sort_key == self._sort_state.sort_key

    def filter_state(self, filter_key: Optional[str]) -> Optional[StoredFilter]:
        """Return the stored filter for a key, if any."""
        if not filter_key:
            return None
        return self._filter_store.get(filter_key)

    def menu_options(
        self, column: ColumnConfig, options: Sequence[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Options for a column's menu, minus duplicates and active selections."""
        if column.filter_options is None:
            return []
        state = self.filter_state(column.filter_options.rows_query_filter_key)
        return working_options(options, state)

    def search_menu_options(
        self, column: ColumnConfig, search_term: Optional[str]
    ) -> List[Dict[str, Any]]:
        """
        Look up a column's menu options for a search term.

        Fixed options are matched locally; typeahead options are fetched with
        the column's menu query. Either way duplicates and already active
        selections are removed.
        """
        if column.filter_options is None:
            return []
        options = column.filter_options.fetch_menu_options(search_term)
        return self.menu_options(column, options)

    @property
    def selected_rows(self) -> List[Any]:
        """Ids of the selected rows, in selection order."""
        return list(self._selected_rows)

    def all_selected(self, rows: Sequence[Dict[str, Any]]) -> bool:
        return len(rows) > 0 and len(self._selected_rows) == len(rows)

    def partially_selected(self, rows: Sequence[Dict[str, Any]]) -> bool:
        return 0 < len(self._selected_rows) < len(rows)

    def filter_pills(self) -> List[FilterPill]:
        """Pills for all active filters, in key order then insertion order."""
        return [
            FilterPill(
                filter_key=entry.filter_key,
                filter_value=entry.filter_value,
                label=entry.pill_label,
                value=entry.pill_value,
            )
            for entry in self._filter_store.entries()
        ]

    def show_clear_all(self) -> bool:
        """Whether a "Clear All Filters" pill is offered."""
        return len(self.filter_pills()) > 1

    def pagination_info(
        self, result: Optional[ConnectionResult] = None
    ) -> PaginationInfo:
        """
        Describe pagination controls for a result.

        Args:
            result: The page being shown. Defaults to the last accepted result.

        Returns:
            PaginationInfo with the displayed-rows label and button states
        """
        if result is None:
            result = self._last_result

        page = self._pager.current_page
        rows_per_page = self._pager.rows_per_page
        count = result.total_count if result is not None else None
        has_rows = result is not None and result.has_rows

        if count is None:
            if result is not None:
                last_row = page * rows_per_page + len(result.rows)
            else:
                last_row = (page + 1) * rows_per_page
            count_label = UNKNOWN_COUNT_LABEL
        else:
            last_row = min(count, (page + 1) * rows_per_page)
            count_label = str(count)
        first_row = 0 if count == 0 else page * rows_per_page + 1

        has_next_page = result is not None and result.page_info.has_next_page
        next_reachable = (
            page + 1 in self._pager.cursor_cache or self._pager.end_cursor is not None
        )

        visible = has_rows and (
            count is None or count >= self._disable_pagination_if_row_count_under
        )

        return PaginationInfo(
            page=page,
            rows_per_page=rows_per_page,
            count=count,
            label=f"{first_row}-{last_row} of {count_label}",
            can_go_first=page > 0,
            can_go_back=page > 0,
            can_go_next=has_next_page and next_reachable,
            visible=visible,
            rows_per_page_options=self._rows_per_page_options,
        )

    def empty_text(
        self, result: Optional[ConnectionResult] = None
    ) -> Optional[str]:
        """Text to show instead of rows, or None when the page has rows."""
        if result is None:
            result = self._last_result
        if result is not None and result.has_rows:
            return None
        if len(self._filter_store) > 0:
            return NO_DATA_AFTER_FILTERS_TEXT
        return self._no_data_text

    def should_render_header(
        self,
        result: Optional[ConnectionResult] = None,
        render_header_if_no_data: bool = False,
    ) -> bool:
        """Headers stay visible while filters are active so they can be cleared."""
        if result is None:
            result = self._last_result
        has_rows = result is not None and result.has_rows
        return render_header_if_no_data or has_rows or len(self._filter_store) > 0

    def __repr__(self) -> str:
        return (
            f"TableController(filters={self._filter_store.snapshot()}, "
            f"sort={self._sort_state}, "
            f"pagination={self._pager}, "
            f"generation={self._generation})"
        )
