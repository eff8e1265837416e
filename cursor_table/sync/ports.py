"""Persisted-state ports: where URL query parameters are read and written."""

from abc import ABC, abstractmethod
from typing import Dict, List, Sequence, Tuple
from urllib.parse import parse_qsl, urlencode


class QueryParamsPort(ABC):
    """
    Access to the address bar's query parameters.

    Read once when a controller is constructed, written after every filter or
    sort transition. Writes replace the whole parameter set and must not
    trigger a navigation.
    """

    @abstractmethod
    def read(self) -> Dict[str, str]:
        """Return the current parameters (first value per name)."""
        pass

    @abstractmethod
    def replace(self, pairs: Sequence[Tuple[str, str]]) -> None:
        """Replace all parameters with the given ordered pairs."""
        pass


class InMemoryQueryParams(QueryParamsPort):
    """
    Query parameters held in memory.

    Used when no browser is involved (scripts, tests). Every write is appended
    to ``history`` as an encoded query string.
    """

    def __init__(self, query_string: str = ""):
        self._pairs: List[Tuple[str, str]] = parse_qsl(query_string.lstrip("?"))
        self.history: List[str] = []

    def read(self) -> Dict[str, str]:
        params: Dict[str, str] = {}
        for name, value in self._pairs:
            params.setdefault(name, value)
        return params

    def replace(self, pairs: Sequence[Tuple[str, str]]) -> None:
        self._pairs = list(pairs)
        self.history.append(self.query_string)

    @property
    def pairs(self) -> List[Tuple[str, str]]:
        return list(self._pairs)

    @property
    def query_string(self) -> str:
        return urlencode(self._pairs)

    def __repr__(self) -> str:
        return f"InMemoryQueryParams('{self.query_string}')"


class StreamlitQueryParams(QueryParamsPort):
    """Query parameters of the running Streamlit page (``st.query_params``)."""

    def read(self) -> Dict[str, str]:
        import streamlit as st

        return dict(st.query_params.to_dict())

    def replace(self, pairs: Sequence[Tuple[str, str]]) -> None:
        import streamlit as st

        # from_dict clears existing parameters and updates the URL in place
        st.query_params.from_dict(dict(pairs))
