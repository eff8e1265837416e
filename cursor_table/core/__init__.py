"""Core table state: filters, sort, cursor pagination and the controller."""

from .filters import FilterEntry, FilterStore
from .sort import ASC, DESC, SortState
from .pager import CursorPager, CursorUnavailableError, PaginationState
from .variables import build_variables
from .columns import (
    ColumnConfig,
    DateTimeFilterOptions,
    FilterOptions,
    TypeaheadOptions,
    working_options,
)
from .controller import FetchTicket, FilterPill, PaginationInfo, TableController

__all__ = [
    "FilterEntry",
    "FilterStore",
    "SortState",
    "ASC",
    "DESC",
    "CursorPager",
    "CursorUnavailableError",
    "PaginationState",
    "build_variables",
    "ColumnConfig",
    "DateTimeFilterOptions",
    "FilterOptions",
    "TypeaheadOptions",
    "working_options",
    "TableController",
    "FetchTicket",
    "FilterPill",
    "PaginationInfo",
]
