"""Data sources the table controller can fetch pages from."""

from .array import ArrayDataSource, apply_filters, apply_sort
from .connection import ConnectionResult, DataSource, PageInfo, get_path

__all__ = [
    "ConnectionResult",
    "PageInfo",
    "DataSource",
    "ArrayDataSource",
    "apply_filters",
    "apply_sort",
    "get_path",
]
