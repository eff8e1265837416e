"""Pytest configuration and shared fixtures for cursor-table tests."""

from typing import Any, Dict, List
from unittest.mock import patch

import polars as pl
import pytest

from cursor_table.core.columns import (
    ColumnConfig,
    DateTimeFilterOptions,
    FilterOptions,
)


class MockSessionState(dict):
    """Mock Streamlit session_state that behaves like a dict."""

    pass


class MockQueryParams(dict):
    """Mock Streamlit query_params with the to_dict/from_dict API."""

    def to_dict(self) -> Dict[str, str]:
        return dict(self)

    def from_dict(self, params: Dict[str, Any]) -> None:
        self.clear()
        self.update({key: str(value) for key, value in params.items()})


@pytest.fixture
def mock_streamlit():
    """
    Mock Streamlit's session_state for testing the rendering layer.

    This fixture patches st.session_state to allow testing without running a
    full Streamlit server.
    """
    mock_session_state = MockSessionState()

    with patch("streamlit.session_state", mock_session_state):
        yield mock_session_state


@pytest.fixture
def mock_query_params():
    """Mock Streamlit's query_params (the page URL's parameters)."""
    params = MockQueryParams()

    with patch("streamlit.query_params", params):
        yield params


@pytest.fixture
def status_column() -> ColumnConfig:
    """Multi-valued menu filter on user status."""
    return ColumnConfig(
        "Status",
        filter_options=FilterOptions(
            rows_query_filter_key="status",
            pill_label="Status",
            fixed_menu_options=["ACTIVE", "DISABLED", "PENDING"],
            filter_on_value=False,
        ),
    )


@pytest.fixture
def name_column() -> ColumnConfig:
    """Sortable column with exact and substring name filters."""
    return ColumnConfig(
        "Name",
        sort_key="NAME",
        filter_options=FilterOptions(
            rows_query_filter_key="name",
            rows_query_substring_filter_key="nameSubstring",
            pill_label="Name",
            fixed_menu_options=["alice", "bob"],
        ),
    )


@pytest.fixture
def created_column() -> ColumnConfig:
    """Sortable column with a start/end time range filter."""
    return ColumnConfig(
        "Created",
        sort_key="CREATED_AT",
        filter_options=FilterOptions(
            pill_label="Created",
            date_time=DateTimeFilterOptions(
                start_time_filter_key="createdAfter",
                end_time_filter_key="createdBefore",
            ),
        ),
    )


@pytest.fixture
def table_columns(
    status_column: ColumnConfig,
    name_column: ColumnConfig,
    created_column: ColumnConfig,
) -> List[ColumnConfig]:
    """Columns of the sample users table."""
    return [
        ColumnConfig("Email", sort_key="EMAIL"),
        name_column,
        status_column,
        created_column,
    ]


@pytest.fixture
def sample_users_data() -> pl.LazyFrame:
    """Create 25 sample users for paging through."""
    statuses = ["ACTIVE", "DISABLED", "PENDING"]
    return pl.LazyFrame(
        {
            "id": list(range(1, 26)),
            "email": [f"user{i:02d}@example.com" for i in range(1, 26)],
            "name": [f"user_{i:02d}" for i in range(1, 26)],
            "status": [statuses[i % 3] for i in range(1, 26)],
            "created_at": [1_700_000_000_000 + i * 60_000 for i in range(1, 26)],
        }
    )
