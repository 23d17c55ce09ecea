"""Search OpenAlex works published in a curated set of business journals."""

from journal_search.controller import SearchController
from journal_search.models import FilterState, Journal, SearchState, UserConfig, Work

__version__ = "0.1.0"

__all__ = [
    "FilterState",
    "Journal",
    "SearchController",
    "SearchState",
    "UserConfig",
    "Work",
    "__version__",
]
