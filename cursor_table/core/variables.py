"""Derivation of the query variables sent to the data source."""

from typing import Any, Dict, Optional, Union

from .filters import FilterStore
from .pager import CursorPager, PaginationState
from .sort import SortState


def build_variables(
    filter_store: FilterStore,
    sort_state: SortState,
    pagination: Union[CursorPager, PaginationState],
    base_variables: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build the parameter object for the next fetch.

    Pure function: the inputs are not modified and a new dict is returned on
    every call.

    Args:
        filter_store: Active filters; their values overlay ``base_variables["filters"]``
        sort_state: Active sort, sent as ``orderBy``
        pagination: Pager (or its state) providing ``after`` and ``first``
        base_variables: Caller-supplied variables every fetch starts from

    Returns:
        Dict with the base variables plus ``filters``, ``after``, ``first`` and
        ``orderBy``
    """
    base = dict(base_variables or {})
    filters = dict(base.get("filters") or {})
    filters.update(filter_store.to_query_fragment())

    return {
        **base,
        "filters": filters,
        "after": pagination.after_cursor,
        "first": pagination.rows_per_page,
        "orderBy": sort_state.to_order_by(),
    }
