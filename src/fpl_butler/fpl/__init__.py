"""FPL API integration: typed client, batched entry fetching and gameweek helpers."""

from .batch import BatchFetcher, fetch_entry_bundles
from .client import FPLClient, UpstreamError, UpstreamFormatError
from .gameweeks import find_current_gameweek, next_deadline, resolve_target_gameweek

__all__ = [
    "BatchFetcher",
    "FPLClient",
    "UpstreamError",
    "UpstreamFormatError",
    "fetch_entry_bundles",
    "find_current_gameweek",
    "next_deadline",
    "resolve_target_gameweek",
]
