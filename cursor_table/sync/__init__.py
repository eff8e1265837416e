"""URL synchronization of table state."""

from .ports import InMemoryQueryParams, QueryParamsPort, StreamlitQueryParams
from .url_sync import URLState, URLSync

__all__ = [
    "QueryParamsPort",
    "InMemoryQueryParams",
    "StreamlitQueryParams",
    "URLSync",
    "URLState",
]
