"""Forward-only cursor pagination with a client-side cursor cache.

Connection-style data sources expose a single forward cursor per page, so
backward and first-page navigation is served from a cache of page index to
the cursor that page was fetched with. The cache is populated lazily as the
user pages forward and is only valid for the page size and filter/sort
configuration it was built under.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class CursorUnavailableError(Exception):
    """Raised when a page cannot be reached with a known cursor.

    This error is raised when:
    1. The target page is negative
    2. The target page is more than one page past the current page and was
       never visited under the current configuration
    3. The next page is requested before an end cursor was observed for the
       current page, or after the data source reported no next page

    It signals a bug in the calling layer: fetching with a fabricated cursor
    would silently show the wrong rows.
    """

    pass


@dataclass(frozen=True)
class PaginationState:
    """Immutable view of the pager's state."""

    rows_per_page: int
    current_page: int
    after_cursor: Any
    cursor_cache: Dict[int, Any] = field(default_factory=dict)


class CursorPager:
    """
    Tracks the current page, rows per page and the page-to-cursor cache.

    Page 0 always uses no cursor. ``cursor_cache[p]`` for ``p > 0`` exists only
    once page ``p - 1`` was fetched and its end cursor observed.
    """

    def __init__(self, rows_per_page: int = 10):
        self._validate_rows_per_page(rows_per_page)
        self.rows_per_page = rows_per_page
        self.current_page = 0
        self.after_cursor: Any = None
        self._cursor_cache: Dict[int, Any] = {}
        self._end_cursor: Any = None
        self._has_next_page: Optional[bool] = None

    @staticmethod
    def _validate_rows_per_page(rows_per_page: int) -> None:
        if isinstance(rows_per_page, bool) or not isinstance(rows_per_page, int):
            raise ValueError(f"rows_per_page must be an int, got {rows_per_page!r}")
        if rows_per_page < 1:
            raise ValueError(f"rows_per_page must be at least 1, got {rows_per_page}")

    @property
    def cursor_cache(self) -> Dict[int, Any]:
        """Return a copy of the page-to-cursor cache."""
        return dict(self._cursor_cache)

    @property
    def end_cursor(self) -> Any:
        """The end cursor last observed for the current page, if any."""
        return self._end_cursor

    @property
    def has_next_page(self) -> Optional[bool]:
        """Whether the data source reported a next page (None if unknown)."""
        return self._has_next_page

    @property
    def state(self) -> PaginationState:
        return PaginationState(
            rows_per_page=self.rows_per_page,
            current_page=self.current_page,
            after_cursor=self.after_cursor,
            cursor_cache=self.cursor_cache,
        )

    def observe_end_cursor(
        self, cursor: Any, has_next_page: Optional[bool] = None
    ) -> None:
        """
        Record the end cursor returned by the data source for the current page.

        Args:
            cursor: The opaque end cursor of the fetched page
            has_next_page: The data source's hasNextPage flag, if known
        """
        self._end_cursor = cursor
        self._has_next_page = has_next_page

    def on_page_change(self, target_page: int, end_cursor: Any = None) -> Any:
        """
        Move to another page and compute the cursor to fetch it with.

        Cached pages are always served from the cache, so revisiting a page
        fetches it with the cursor it was first reached with. An uncached page
        is only reachable as the immediate next page, using the end cursor
        observed for the current page.

        Args:
            target_page: 0-based page index
            end_cursor: End cursor of the current page. Defaults to the one
                recorded by observe_end_cursor().

        Returns:
            The ``after`` cursor for the next fetch (None for page 0)

        Raises:
            CursorUnavailableError: If no correct cursor exists for the page
        """
        if target_page < 0:
            raise CursorUnavailableError(f"Page index must be >= 0, got {target_page}")

        if target_page == 0:
            after = None
        elif target_page in self._cursor_cache:
            after = self._cursor_cache[target_page]
        elif target_page == self.current_page + 1:
            cursor = end_cursor if end_cursor is not None else self._end_cursor
            if cursor is None:
                raise CursorUnavailableError(
                    f"Cannot move to page {target_page}: no end cursor has been "
                    f"observed for page {self.current_page}"
                )
            if self._has_next_page is False:
                raise CursorUnavailableError(
                    f"Cannot move to page {target_page}: the data source reported "
                    f"no page after {self.current_page}"
                )
            self._cursor_cache[target_page] = cursor
            after = cursor
        else:
            raise CursorUnavailableError(
                f"Cannot jump from page {self.current_page} to page {target_page}: "
                "pages can only be reached by paging forward one at a time"
            )

        self.current_page = target_page
        self.after_cursor = after
        # The observed cursor belonged to the page we just left
        self._end_cursor = None
        self._has_next_page = None
        return after

    def set_rows_per_page(self, rows_per_page: int) -> None:
        """
        Change the page size.

        Cursors are only meaningful for the page size they were fetched with,
        so the cache is dropped and pagination returns to page 0.
        """
        self._validate_rows_per_page(rows_per_page)
        self.rows_per_page = rows_per_page
        self._reset()

    def invalidate(self) -> None:
        """Drop all cursors and return to page 0, keeping the page size."""
        self._reset()

    def _reset(self) -> None:
        if self._cursor_cache:
            logger.debug("Dropping %d cached cursors", len(self._cursor_cache))
        self._cursor_cache = {}
        self.current_page = 0
        self.after_cursor = None
        self._end_cursor = None
        self._has_next_page = None

    def __repr__(self) -> str:
        return (
            f"CursorPager(rows_per_page={self.rows_per_page}, "
            f"current_page={self.current_page}, "
            f"after_cursor={self.after_cursor!r}, "
            f"cursor_cache={self._cursor_cache})"
        )
