"""Data models and constants for the OpenAlex journal search client."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# Application identity: single source of truth for platformdirs config paths
CONFIG_APP_NAME = "openalex-journal-search"

OPENALEX_WORKS_URL = "https://api.openalex.org/works"

# ABS ranking tiers, best first
ABS_RANKS = ("4*", "4", "3", "2", "1")

# Sort option value -> label
SORT_OPTIONS: dict[str, str] = {
    "cited_by_count:desc": "Citations (desc)",
    "publication_date:desc": "Year (newest)",
    "publication_date:asc": "Year (oldest)",
    "display_name:asc": "Title (A-Z)",
}
DEFAULT_SORT = "cited_by_count:desc"

PAGE_SIZE_OPTIONS = (20, 30, 40, 50)
DEFAULT_PAGE_SIZE = 20

# Bulk retrieval limits
BULK_MAX_RECORDS = 2000
BULK_REMOTE_PAGE_SIZE = 200
BULK_MAX_COUNTDOWN_SECONDS = 40

ISSN_PLACEHOLDER = "nan"


@dataclass(frozen=True, slots=True)
class Journal:
    """One row of the curated journal allow-list."""

    title: str
    issn: str
    field: str | None = None
    abs_rank: str | None = None
    is_ft50: bool = False
    is_utd24: bool = False


@dataclass(slots=True)
class FilterState:
    """User-selected filter over the journal allow-list."""

    fields: set[str] = field(default_factory=set)
    ranks: set[str] = field(default_factory=set)
    ft50: bool = False
    utd24: bool = False


@dataclass(slots=True)
class Work:
    """A bibliographic record returned by the OpenAlex works endpoint."""

    id: str
    display_name: str = ""
    publication_year: int | None = None
    cited_by_count: int = 0
    doi: str = ""
    source_name: str = ""
    source_issns: tuple[str, ...] = ()
    authors: tuple[str, ...] = ()
    volume: str = ""
    issue: str = ""
    first_page: str = ""
    last_page: str = ""
    abstract_inverted_index: dict[str, list[int]] = field(default_factory=dict)


@dataclass(slots=True)
class WorksPage:
    """One page of search results plus the total match count."""

    results: list[Work]
    count: int


class SearchStatus(str, Enum):
    """Lifecycle of the interactive search."""

    IDLE = "idle"
    SEARCHING = "searching"
    READY = "ready"
    ERROR = "error"


@dataclass(slots=True)
class SearchState:
    """Observable application state, mutated only by SearchController."""

    filter: FilterState = field(default_factory=FilterState)
    keywords: str = ""
    year_from: str = ""
    year_to: str = ""
    sort: str = DEFAULT_SORT
    page_size: int = DEFAULT_PAGE_SIZE
    api_key: str = ""

    status: SearchStatus = SearchStatus.IDLE
    has_searched: bool = False
    error_message: str = ""
    works: list[Work] = field(default_factory=list)
    total_count: int = 0
    current_page: int = 1

    selected_ids: list[str] = field(default_factory=list)
    selected_works: dict[str, Work] = field(default_factory=dict)

    select_all_loading: bool = False
    select_all_countdown: int = 0
    export_loading: bool = False
    export_countdown: int = 0
    export_error: str = ""
    last_export_count: int = 0


@dataclass(slots=True)
class UserConfig:
    """Persisted user preferences, including the cached API credential."""

    api_key: str = ""
    journals_path: str = ""  # Empty = bundled dataset
    export_dir: str = ""  # Empty = use ~/openalex-exports/
    page_size: int = DEFAULT_PAGE_SIZE
    sort: str = DEFAULT_SORT
    version: int = 1
    config_defaulted: bool = False


__all__ = [
    "ABS_RANKS",
    "BULK_MAX_COUNTDOWN_SECONDS",
    "BULK_MAX_RECORDS",
    "BULK_REMOTE_PAGE_SIZE",
    "CONFIG_APP_NAME",
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_SORT",
    "ISSN_PLACEHOLDER",
    "OPENALEX_WORKS_URL",
    "PAGE_SIZE_OPTIONS",
    "SORT_OPTIONS",
    "FilterState",
    "Journal",
    "SearchState",
    "SearchStatus",
    "UserConfig",
    "Work",
    "WorksPage",
]
