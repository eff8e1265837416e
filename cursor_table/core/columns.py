"""Column configuration and filter-menu helpers.

Columns declare which filter keys they own and how menu selections turn into
filter entries. The same configuration is used to rebuild pill labels when
filters are restored from the URL, since only values survive serialization.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..sources.connection import get_path
from .filters import FilterEntry, StoredFilter

START = "start"
END = "end"

START_PILL_LABEL = "After"
END_PILL_LABEL = "Before"

MIN_SEARCH_LENGTH = 3


@dataclass(frozen=True)
class DateTimeFilterOptions:
    """Paired filter keys for a start/end time range."""

    start_time_filter_key: str
    end_time_filter_key: str

    def __post_init__(self):
        if not self.start_time_filter_key or not self.end_time_filter_key:
            raise ValueError(
                "DateTimeFilterOptions requires start_time_filter_key and "
                "end_time_filter_key"
            )

    def key_for(self, which: str) -> str:
        if which == START:
            return self.start_time_filter_key
        if which == END:
            return self.end_time_filter_key
        raise ValueError(f"Range boundary must be '{START}' or '{END}', got '{which}'")


@dataclass(frozen=True)
class TypeaheadOptions:
    """
    Query used to look up menu options as the user types.

    Attributes:
        query: Callable that runs the menu query for a variables dict and
            returns its payload
        data_path: Dotted path to the connection in the query result
        query_filter_key: Filter key the search term is sent under
        query_variables: Base variables for the menu query
    """

    query: Callable[[Dict[str, Any]], Any]
    data_path: str
    query_filter_key: str = "nameSubstring"
    query_variables: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not callable(self.query) or not self.data_path or not self.query_filter_key:
            raise ValueError(
                "TypeaheadOptions requires query, query_filter_key, and data_path"
            )


@dataclass(frozen=True)
class FilterOptions:
    """
    How a column filters the table.

    Attributes:
        rows_query_filter_key: Filter key for exact-match selections
        rows_query_substring_filter_key: Filter key used for free-text
            "contains" filters when a selection has no value
        pill_label: Label shown on this column's pills
        filter_on_value: Filter on the option's value (True) or its name
        replace_existing_filter: Selections replace each other instead of
            accumulating
        no_text_search: The menu has no search box
        show_all_immediately: Show options before anything is typed
        fixed_menu_options: Static list of option names
        typeahead: Query-backed menu options
        name_value_from_nodes: Maps typeahead result nodes to
            ``{"name", "value"}`` options
        date_time: Start/end time range filter
    """

    rows_query_filter_key: Optional[str] = None
    rows_query_substring_filter_key: Optional[str] = None
    pill_label: str = "Filter"
    filter_on_value: bool = True
    replace_existing_filter: bool = False
    no_text_search: bool = False
    show_all_immediately: bool = False
    fixed_menu_options: Optional[Sequence[str]] = None
    typeahead: Optional[TypeaheadOptions] = None
    name_value_from_nodes: Optional[
        Callable[[List[Dict[str, Any]]], List[Dict[str, Any]]]
    ] = None
    date_time: Optional[DateTimeFilterOptions] = None

    def __post_init__(self):
        if not (self.typeahead or self.fixed_menu_options or self.date_time):
            raise ValueError(
                "One of typeahead, date_time, or fixed_menu_options is required"
            )
        if self.date_time is None and not self.rows_query_filter_key:
            raise ValueError(
                "rows_query_filter_key is required unless date_time is used"
            )

    @property
    def substring_pill_label(self) -> str:
        return f"{self.pill_label} Contains"

    def filter_keys(self) -> List[str]:
        """Return the filter keys this column owns, in URL order."""
        if self.date_time is not None:
            return [
                self.date_time.start_time_filter_key,
                self.date_time.end_time_filter_key,
            ]
        keys = [self.rows_query_filter_key, self.rows_query_substring_filter_key]
        return [key for key in keys if key]

    def selection_to_filter(self, name: str, value: Any) -> Tuple[FilterEntry, bool]:
        """
        Turn a menu selection into a filter entry.

        A selection without a usable value is treated as free text: it moves to
        the substring key (when configured) as a single "Contains" filter, and
        the name becomes the filter value.

        Args:
            name: Display name of the selected option (or the typed text)
            value: Value of the selected option

        Returns:
            Tuple of (entry, is_single)
        """
        filter_key = self.rows_query_filter_key
        filter_value = value if self.filter_on_value else name
        pill_label = self.pill_label
        is_single = self.replace_existing_filter

        if not filter_value:
            if self.rows_query_substring_filter_key:
                filter_key = self.rows_query_substring_filter_key
                pill_label = self.substring_pill_label
                is_single = True
            filter_value = name

        entry = FilterEntry(
            filter_key=filter_key,
            filter_value=filter_value,
            pill_label=pill_label,
            pill_value=name,
        )
        return entry, is_single

    def date_time_filter(self, which: str, timestamp_ms: int) -> FilterEntry:
        """
        Build the single-valued filter for one end of the time range.

        Args:
            which: "start" or "end"
            timestamp_ms: Epoch timestamp in milliseconds

        Returns:
            FilterEntry labelled "After" (start) or "Before" (end)
        """
        if self.date_time is None:
            raise ValueError("Column has no date_time filter options")
        filter_key = self.date_time.key_for(which)
        return FilterEntry(
            filter_key=filter_key,
            filter_value=timestamp_ms,
            pill_label=START_PILL_LABEL if which == START else END_PILL_LABEL,
            pill_value=format_utc_timestamp(timestamp_ms),
        )

    def should_show_options(self, search_term: Optional[str]) -> bool:
        """Whether the menu lists options for the current search term."""
        return bool(
            self.no_text_search
            or self.show_all_immediately
            or (search_term and len(search_term) >= MIN_SEARCH_LENGTH)
        )

    def match_fixed_options(self, search_term: Optional[str]) -> List[str]:
        """Return the fixed options containing the search term (case-insensitive)."""
        if not self.fixed_menu_options or not self.should_show_options(search_term):
            return []
        needle = (search_term or "").lower()
        return [
            option for option in self.fixed_menu_options if needle in option.lower()
        ]

    def menu_variables(self, search_term: Optional[str]) -> Dict[str, Any]:
        """
        Variables for the typeahead menu query.

        Returns:
            The typeahead base variables with the search term set under the
            query filter key (None when the menu has no text search)
        """
        if self.typeahead is None:
            raise ValueError("Column has no typeahead options")
        variables = dict(self.typeahead.query_variables)
        filters = dict(variables.get("filters") or {})
        filters[self.typeahead.query_filter_key] = (
            None if self.no_text_search else search_term
        )
        variables["filters"] = filters
        return variables

    def fetch_menu_options(self, search_term: Optional[str]) -> List[Dict[str, Any]]:
        """
        Options the menu lists for a search term.

        Fixed options are matched locally. Typeahead options come from running
        the menu query and reading the nodes under ``data_path``; nodes that are
        not already ``{"name", "value"}`` options go through
        ``name_value_from_nodes``.

        Returns:
            List of ``{"name", "value"}`` options, empty while the search term
            is too short
        """
        if not self.should_show_options(search_term):
            return []
        if self.fixed_menu_options:
            return [
                {"name": option, "value": option}
                for option in self.match_fixed_options(search_term)
            ]
        if self.typeahead is None:
            return []

        payload = self.typeahead.query(self.menu_variables(search_term))
        nodes = get_path(payload, self.typeahead.data_path) or []
        if isinstance(nodes, dict):
            nodes = nodes.get("edges") or []
        nodes = [
            node["node"] if isinstance(node, dict) and "node" in node else node
            for node in nodes
        ]
        if self.name_value_from_nodes is not None:
            return list(self.name_value_from_nodes(nodes))
        return nodes


@dataclass(frozen=True)
class ColumnConfig:
    """
    A table column.

    Attributes:
        name: Header text
        width: Optional layout width, passed through to the renderer
        sort_key: Sort key sent in ``orderBy`` when the column is sortable
        filter_options: How the column filters the table, if it does
    """

    name: str
    width: Optional[int] = None
    sort_key: Optional[str] = None
    filter_options: Optional[FilterOptions] = None

    @property
    def sortable(self) -> bool:
        return bool(self.sort_key)

    @property
    def filterable(self) -> bool:
        return self.filter_options is not None

    def filter_keys(self) -> List[str]:
        if self.filter_options is None:
            return []
        return self.filter_options.filter_keys()


def format_utc_timestamp(timestamp_ms: int) -> str:
    """Render an epoch-milliseconds timestamp as ``YYYY-MM-DDTHH:MM:SSZ``."""
    moment = datetime.fromtimestamp(int(timestamp_ms) / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def working_options(
    options: Sequence[Dict[str, Any]],
    filter_state: Optional[StoredFilter],
) -> List[Dict[str, Any]]:
    """
    Menu options still worth offering.

    Deduplicates ``{"name", "value"}`` options by value (first wins) and drops
    options whose name is already an active pill for the column.

    Args:
        options: Candidate options
        filter_state: The column's stored filter (entry or list), if any

    Returns:
        Filtered list of options, in input order
    """
    seen = set()
    unique = []
    for option in options:
        marker = repr(option.get("value"))
        if marker in seen:
            continue
        seen.add(marker)
        unique.append(option)

    if filter_state is None:
        return unique

    entries = filter_state if isinstance(filter_state, list) else [filter_state]
    active_names = {entry.pill_value for entry in entries}
    return [option for option in unique if option.get("name") not in active_names]
