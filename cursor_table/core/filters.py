"""Active filter storage for the table controller."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterEntry:
    """
    One active filter clause.

    Attributes:
        filter_key: Identifier of the filter in the query's ``filters`` object
        filter_value: Value sent to the data source
        pill_label: Human-readable label of the removable pill (e.g. "Status")
        pill_value: Human-readable value of the pill, also persisted to the URL
    """

    filter_key: str
    filter_value: Any
    pill_label: str
    pill_value: str


StoredFilter = Union[FilterEntry, List[FilterEntry]]


def _strict_equals(left: Any, right: Any) -> bool:
    """
    Compare two filter values without cross-type coercion.

    Numbers compare by value (1 == 1.0), booleans only match booleans and
    every other type must match exactly, so "1" never clears the filter 1.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    numeric = (int, float)
    if isinstance(left, numeric) and isinstance(right, numeric):
        return left == right
    return type(left) is type(right) and left == right


class FilterStore:
    """
    Holds the active filters keyed by filter identifier.

    A key maps either to a single FilterEntry (single-valued filters replace
    each other) or to an ordered list of entries (multi-valued filters append).
    A key is never retained with an empty list.
    """

    def __init__(self, filters: Optional[Dict[str, StoredFilter]] = None):
        self._filters: Dict[str, StoredFilter] = {}
        for key, value in (filters or {}).items():
            if isinstance(value, list):
                if value:
                    self._filters[key] = list(value)
            else:
                self._filters[key] = value

    def apply(self, filter_key: str, entry: FilterEntry, is_single: bool) -> None:
        """
        Add a filter entry.

        Args:
            filter_key: Key the entry is stored under
            entry: The filter clause
            is_single: Replace the stored value outright instead of appending.
                Repeated values are appended as-is; uniqueness is the caller's
                concern.
        """
        if is_single:
            self._filters[filter_key] = entry
            return

        existing = self._filters.get(filter_key)
        if existing is None:
            self._filters[filter_key] = [entry]
        elif isinstance(existing, list):
            self._filters[filter_key] = existing + [entry]
        else:
            # Promote a single entry seeded from the URL to a multi-valued list
            self._filters[filter_key] = [existing, entry]

    def clear(self, filter_key: str, filter_value: Any = None) -> bool:
        """
        Remove a filter entry.

        For a multi-valued key, removes the first entry whose filter value
        strictly equals ``filter_value`` and deletes the key once empty. For a
        single-valued key the key is deleted and ``filter_value`` is ignored.

        Returns:
            True if anything was removed, False otherwise
        """
        existing = self._filters.get(filter_key)
        if existing is None:
            return False

        if not isinstance(existing, list):
            del self._filters[filter_key]
            return True

        for index, entry in enumerate(existing):
            if _strict_equals(entry.filter_value, filter_value):
                remaining = existing[:index] + existing[index + 1 :]
                if remaining:
                    self._filters[filter_key] = remaining
                else:
                    del self._filters[filter_key]
                return True

        logger.debug(
            "No '%s' filter with value %r to clear", filter_key, filter_value
        )
        return False

    def clear_all(self) -> None:
        """Remove every active filter."""
        self._filters = {}

    def get(self, filter_key: str) -> Optional[StoredFilter]:
        """Return the stored value for a key (a copy for multi-valued keys)."""
        value = self._filters.get(filter_key)
        if isinstance(value, list):
            return list(value)
        return value

    def to_query_fragment(self) -> Dict[str, Any]:
        """
        Strip pill metadata, keeping only what the data source consumes.

        Returns:
            Dict mapping each active key to its filter value, or to the ordered
            list of filter values for multi-valued keys
        """
        fragment: Dict[str, Any] = {}
        for key, value in self._filters.items():
            if isinstance(value, list):
                fragment[key] = [entry.filter_value for entry in value]
            else:
                fragment[key] = value.filter_value
        return fragment

    def snapshot(self) -> Dict[str, StoredFilter]:
        """Return a copy of the filter state safe to hand to callers."""
        return {
            key: list(value) if isinstance(value, list) else value
            for key, value in self._filters.items()
        }

    def entries(self) -> Iterator[FilterEntry]:
        """Iterate over all entries in key order, then insertion order."""
        for value in self._filters.values():
            if isinstance(value, list):
                yield from value
            else:
                yield value

    def keys(self) -> List[str]:
        return list(self._filters.keys())

    def __contains__(self, filter_key: object) -> bool:
        return filter_key in self._filters

    def __len__(self) -> int:
        return len(self._filters)

    def __repr__(self) -> str:
        return f"FilterStore(filters={self._filters})"
