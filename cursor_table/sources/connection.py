"""Data source contract: connection-style page results."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional


@dataclass(frozen=True)
class PageInfo:
    """Pagination metadata returned with every page."""

    has_next_page: bool = True
    has_previous_page: bool = False
    end_cursor: Any = None


@dataclass(frozen=True)
class ConnectionResult:
    """
    One fetched page.

    Attributes:
        rows: Flat list of row records
        total_count: Total number of matching rows, or None when unknown
        page_info: Cursor metadata for paging forward
    """

    rows: List[Dict[str, Any]] = field(default_factory=list)
    total_count: Optional[int] = None
    page_info: PageInfo = field(default_factory=PageInfo)

    @property
    def has_rows(self) -> bool:
        return len(self.rows) > 0

    @classmethod
    def from_payload(
        cls, payload: Dict[str, Any], data_path: str
    ) -> "ConnectionResult":
        """
        Parse a connection-shaped query result.

        Expects ``{"edges": [...], "totalCount": n, "pageInfo": {...}}`` at the
        dotted ``data_path``. Edges of the form ``{"node": {...}}`` are
        unwrapped.

        Args:
            payload: The query result
            data_path: Dotted path to the connection (e.g. "viewer.users")

        Returns:
            ConnectionResult; missing parts fall back to empty rows, unknown
            total and default page info
        """
        connection = get_path(payload, data_path) or {}

        rows = []
        for edge in connection.get("edges") or []:
            if isinstance(edge, dict) and "node" in edge:
                rows.append(edge["node"])
            else:
                rows.append(edge)

        raw_info = connection.get("pageInfo") or {}
        page_info = PageInfo(
            has_next_page=bool(raw_info.get("hasNextPage", True)),
            has_previous_page=bool(raw_info.get("hasPreviousPage", False)),
            end_cursor=raw_info.get("endCursor"),
        )
        return cls(
            rows=rows,
            total_count=connection.get("totalCount"),
            page_info=page_info,
        )


# A data source takes the controller's variables and returns one page
DataSource = Callable[[Dict[str, Any]], ConnectionResult]


def get_path(payload: Any, path: str) -> Any:
    """Look up a dotted path in nested dicts, returning None when absent."""
    current = payload
    for part in path.split(".") if path else []:
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current
