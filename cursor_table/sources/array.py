"""In-memory data source backed by a polars frame.

Serves connection-style pages from local data using integer row offsets as
cursors, so tables over in-memory data page exactly like tables over a
remote connection.
"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple, Union

import pandas as pd
import polars as pl

from .connection import ConnectionResult, PageInfo

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10

FILTER_OPERATORS = ("eq", "in", ">=", "<=", "contains")

FrameLike = Union[pl.LazyFrame, pl.DataFrame, pd.DataFrame]
FilterBinding = Union[str, Tuple[str, str]]


def _to_lazy(data: FrameLike) -> pl.LazyFrame:
    if isinstance(data, pd.DataFrame):
        data = pl.from_pandas(data)
    if isinstance(data, pl.DataFrame):
        data = data.lazy()
    return data


def _normalize_binding(
    filter_key: str, binding: FilterBinding
) -> Tuple[str, Optional[str]]:
    if isinstance(binding, str):
        return binding, None
    column, operator = binding
    if operator not in FILTER_OPERATORS:
        raise ValueError(
            f"Unknown filter operator '{operator}' for filter '{filter_key}'. "
            f"Available operators: {list(FILTER_OPERATORS)}"
        )
    return column, operator


def _coerce_number(value: Any) -> Any:
    # JSON round trips turn integers into floats
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def apply_filters(
    data: pl.LazyFrame,
    filter_values: Dict[str, Any],
    bindings: Dict[str, Tuple[str, Optional[str]]],
) -> pl.LazyFrame:
    """
    Filter data by the query's filter values.

    Args:
        data: LazyFrame to filter
        filter_values: The ``filters`` object of the query variables
        bindings: Filter key to (column, operator). A None operator means
            "eq" for scalar values and "in" for lists.

    Returns:
        Filtered LazyFrame. Keys without a binding or with a None value are
        ignored.
    """
    for filter_key, (column, operator) in bindings.items():
        value = filter_values.get(filter_key)
        if value is None:
            continue

        if operator is None:
            operator = "in" if isinstance(value, (list, tuple)) else "eq"

        if operator == "in":
            values = value if isinstance(value, (list, tuple)) else [value]
            values = [_coerce_number(v) for v in values]
            data = data.filter(pl.col(column).is_in(values))
        elif operator == "eq":
            data = data.filter(pl.col(column) == _coerce_number(value))
        elif operator == ">=":
            data = data.filter(pl.col(column) >= _coerce_number(value))
        elif operator == "<=":
            data = data.filter(pl.col(column) <= _coerce_number(value))
        elif operator == "contains":
            data = data.filter(
                pl.col(column)
                .cast(pl.Utf8)
                .str.to_lowercase()
                .str.contains(str(value).lower(), literal=True)
            )

    return data


def apply_sort(
    data: pl.LazyFrame,
    order_by: Optional[Dict[str, Any]],
    sort_columns: Optional[Dict[str, str]] = None,
) -> pl.LazyFrame:
    """
    Sort data by the query's ``orderBy`` object.

    Args:
        data: LazyFrame to sort
        order_by: ``{"sort": key, "direction": "ASC" | "DESC"}``
        sort_columns: Sort key to column name; keys map to themselves by default

    Returns:
        Sorted LazyFrame, or the input when there is no sort key or the column
        does not exist
    """
    if not order_by or not order_by.get("sort"):
        return data

    sort_key = order_by["sort"]
    column = (sort_columns or {}).get(sort_key, sort_key)
    if column not in data.collect_schema().names():
        logger.debug("Ignoring sort key '%s': no column '%s'", sort_key, column)
        return data

    descending = order_by.get("direction") == "DESC"
    return data.sort(column, descending=descending, maintain_order=True)


class ArrayDataSource:
    """
    Data source over a local frame.

    Cursors are row offsets: ``after`` is the offset of the first row of the
    page and the end cursor is the offset just past the page.

    Example:
        source = ArrayDataSource(
            users_df,
            filters={"status": "status", "nameSubstring": ("name", "contains")},
            sort_columns={"EMAIL": "email"},
        )
        controller.fetch(source)
    """

    def __init__(
        self,
        data: FrameLike,
        filters: Optional[Dict[str, FilterBinding]] = None,
        sort_columns: Optional[Dict[str, str]] = None,
        filter_and_sort: Optional[
            Callable[[pl.LazyFrame, Dict[str, Any]], FrameLike]
        ] = None,
    ):
        """
        Initialize the data source.

        Args:
            data: Rows as a polars LazyFrame/DataFrame or a pandas DataFrame
            filters: Filter key to column name, or to (column, operator) with
                operator one of "eq", "in", ">=", "<=", "contains"
            sort_columns: Sort key to column name
            filter_and_sort: Replaces the built-in filtering and sorting.
                Called with the full LazyFrame and the query variables.
        """
        self._data = _to_lazy(data)
        self._filters = {
            key: _normalize_binding(key, binding)
            for key, binding in (filters or {}).items()
        }
        self._sort_columns = sort_columns or {}
        self._filter_and_sort = filter_and_sort

        schema_names = self._data.collect_schema().names()
        for key, (column, _) in self._filters.items():
            if column not in schema_names:
                raise ValueError(
                    f"Filter column '{column}' for filter '{key}' not found in data. "
                    f"Available columns: {schema_names}"
                )

    def _select(self, variables: Dict[str, Any]) -> pl.LazyFrame:
        if self._filter_and_sort is not None:
            return _to_lazy(self._filter_and_sort(self._data, variables))
        filter_values = variables.get("filters") or {}
        data = apply_filters(self._data, filter_values, self._filters)
        return apply_sort(data, variables.get("orderBy"), self._sort_columns)

    def __call__(self, variables: Dict[str, Any]) -> ConnectionResult:
        """
        Fetch one page.

        Args:
            variables: Query variables (``filters``, ``orderBy``, ``after``,
                ``first``)

        Returns:
            ConnectionResult for the requested slice
        """
        after = int(variables.get("after") or 0)
        first = int(variables.get("first") or DEFAULT_PAGE_SIZE)

        selected = self._select(variables)
        total = selected.select(pl.len()).collect().item()
        page = selected.slice(after, first).collect()

        end_cursor = after + first
        return ConnectionResult(
            rows=page.to_dicts(),
            total_count=total,
            page_info=PageInfo(
                has_next_page=end_cursor < total,
                has_previous_page=after != 0,
                end_cursor=end_cursor,
            ),
        )

    def __repr__(self) -> str:
        return (
            f"ArrayDataSource(filters={self._filters}, "
            f"sort_columns={self._sort_columns})"
        )
