"""Bidirectional synchronization of filter and sort state with the URL.

Parameters written:
    sort       the active sort key
    direction  ASC or DESC
    <key>      one per active filter key: JSON ``{"value": ..., "name": ...}``
               or a JSON array of such pairs for multi-valued filters

Only the filter value and the pill value survive the round trip. Pill labels
are rebuilt from column configuration on read.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlencode

from ..core.columns import (
    END,
    END_PILL_LABEL,
    START,
    START_PILL_LABEL,
    ColumnConfig,
    FilterOptions,
)
from ..core.filters import FilterEntry, FilterStore, StoredFilter
from ..core.sort import DIRECTIONS, SortState
from .ports import QueryParamsPort

logger = logging.getLogger(__name__)

SORT_PARAM = "sort"
DIRECTION_PARAM = "direction"


@dataclass
class URLState:
    """State recovered from the URL. ``None`` means the parameter was absent."""

    filters: Dict[str, StoredFilter] = field(default_factory=dict)
    sort_key: Optional[str] = None
    direction: Optional[str] = None


def _parse_json(key: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        logger.debug("Ignoring URL parameter '%s': not valid JSON", key)
        return None


def _is_pair(payload: Any) -> bool:
    return isinstance(payload, dict) and "value" in payload and "name" in payload


def _to_pair(entry: FilterEntry) -> Dict[str, Any]:
    return {"value": entry.filter_value, "name": entry.pill_value}


class URLSync:
    """
    Reads initial filter/sort state from a query-params port and writes the
    current state back after every transition.
    """

    def __init__(self, port: QueryParamsPort):
        self._port = port

    @property
    def port(self) -> QueryParamsPort:
        return self._port

    def read(self, columns: Sequence[ColumnConfig]) -> URLState:
        """
        Parse the port's parameters into initial state.

        Only filter keys declared by ``columns`` are considered. Parameters
        that are not valid JSON or not ``{value, name}`` shaped are treated as
        absent.

        Args:
            columns: Column configuration declaring the filter keys

        Returns:
            URLState with reconstructed filters, sort key and direction
        """
        params = self._port.read()
        state = URLState()

        state.sort_key = params.get(SORT_PARAM) or None
        direction = params.get(DIRECTION_PARAM) or None
        if direction is not None and direction not in DIRECTIONS:
            logger.warning("Ignoring unknown sort direction '%s' in URL", direction)
            direction = None
        state.direction = direction

        for column in columns:
            options = column.filter_options
            if options is None:
                continue
            if options.date_time is not None:
                self._read_range(params, options, state.filters)
            else:
                self._read_menu_filters(params, options, state.filters)

        return state

    def _read_range(
        self,
        params: Dict[str, str],
        options: FilterOptions,
        filters: Dict[str, StoredFilter],
    ) -> None:
        for which in (START, END):
            key = options.date_time.key_for(which)
            raw = params.get(key)
            if not raw:
                continue
            payload = _parse_json(key, raw)
            if not _is_pair(payload):
                if payload is not None:
                    logger.debug("Ignoring URL parameter '%s': expected a pair", key)
                continue
            filters[key] = FilterEntry(
                filter_key=key,
                filter_value=payload["value"],
                pill_label=START_PILL_LABEL if which == START else END_PILL_LABEL,
                pill_value=payload["name"],
            )

    def _read_menu_filters(
        self,
        params: Dict[str, str],
        options: FilterOptions,
        filters: Dict[str, StoredFilter],
    ) -> None:
        for key in options.filter_keys():
            raw = params.get(key)
            if not raw:
                continue
            payload = _parse_json(key, raw)

            pill_label = options.pill_label
            if key == options.rows_query_substring_filter_key:
                pill_label = options.substring_pill_label

            def build(pair: Dict[str, Any]) -> FilterEntry:
                return FilterEntry(
                    filter_key=key,
                    filter_value=(
                        pair["value"] if options.filter_on_value else pair["name"]
                    ),
                    pill_label=pill_label,
                    pill_value=pair["name"],
                )

            if isinstance(payload, list) and payload and all(map(_is_pair, payload)):
                filters[key] = [build(pair) for pair in payload]
            elif _is_pair(payload):
                filters[key] = build(payload)
            elif payload is not None:
                logger.debug("Ignoring URL parameter '%s': unexpected shape", key)

    @staticmethod
    def encode_filter(filter_key: str, stored: StoredFilter) -> str:
        """
        Encode one filter key's entries as a URL parameter value.

        Args:
            filter_key: The key the entries are stored under
            stored: A single entry or a list of entries

        Returns:
            Compact JSON of the ``{value, name}`` pair, or a list of pairs

        Raises:
            ValueError: If a filter value would not read back unchanged
                from JSON
        """
        if isinstance(stored, list):
            payload: Any = [_to_pair(entry) for entry in stored]
        else:
            payload = _to_pair(stored)

        try:
            encoded = json.dumps(payload, separators=(",", ":"))
        except (TypeError, ValueError) as error:
            raise ValueError(
                f"Filter '{filter_key}' cannot be stored in the URL: {error}"
            ) from error

        if json.loads(encoded) != payload:
            raise ValueError(
                f"Filter '{filter_key}' cannot be stored in the URL: its value "
                "does not survive a JSON round trip"
            )
        return encoded

    @staticmethod
    def to_pairs(
        filter_store: FilterStore, sort_state: SortState
    ) -> List[Tuple[str, str]]:
        """
        Serialize filter and sort state into ordered query parameter pairs.

        Returns:
            ``sort`` and ``direction`` (when set) followed by one pair per
            active filter key
        """
        pairs: List[Tuple[str, str]] = []
        if sort_state.sort_key:
            pairs.append((SORT_PARAM, sort_state.sort_key))
        if sort_state.direction:
            pairs.append((DIRECTION_PARAM, sort_state.direction))

        for key, stored in filter_store.snapshot().items():
            pairs.append((key, URLSync.encode_filter(key, stored)))
        return pairs

    def write(self, filter_store: FilterStore, sort_state: SortState) -> None:
        """Rebuild the query parameters from scratch and hand them to the port."""
        self._port.replace(self.to_pairs(filter_store, sort_state))

    def to_query_string(self, filter_store: FilterStore, sort_state: SortState) -> str:
        return urlencode(self.to_pairs(filter_store, sort_state))
