"""
Cursor Table - State controller for paginated, filterable, sortable tables.

This package tracks a table's filters, sort order and forward-only cursor
pagination, keeps filter and sort state in the page URL, and derives the
variables sent to the data source on every change. A Streamlit host renders
controllers with removable filter pills and pagination controls.
"""

from .core.columns import (
    ColumnConfig,
    DateTimeFilterOptions,
    FilterOptions,
    TypeaheadOptions,
)
from .core.controller import FetchTicket, FilterPill, PaginationInfo, TableController
from .core.filters import FilterEntry, FilterStore
from .core.pager import CursorPager, CursorUnavailableError
from .core.sort import ASC, DESC, SortState
from .core.variables import build_variables
from .rendering.streamlit_table import get_table_controller, render_table
from .sources.array import ArrayDataSource
from .sources.connection import ConnectionResult, PageInfo
from .sync.ports import InMemoryQueryParams, QueryParamsPort, StreamlitQueryParams
from .sync.url_sync import URLSync

__version__ = "0.1.0"

__all__ = [
    # Core
    "TableController",
    "FilterStore",
    "FilterEntry",
    "SortState",
    "ASC",
    "DESC",
    "CursorPager",
    "CursorUnavailableError",
    "build_variables",
    "FetchTicket",
    "FilterPill",
    "PaginationInfo",
    # Columns
    "ColumnConfig",
    "FilterOptions",
    "DateTimeFilterOptions",
    "TypeaheadOptions",
    # URL
    "URLSync",
    "QueryParamsPort",
    "InMemoryQueryParams",
    "StreamlitQueryParams",
    # Data sources
    "ConnectionResult",
    "PageInfo",
    "ArrayDataSource",
    # Streamlit
    "render_table",
    "get_table_controller",
]
