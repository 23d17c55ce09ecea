"""OpenAlex works query construction.

Builds the canonical request for one page of results. Nothing here performs
network I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from urllib.parse import urlencode

from journal_search.models import DEFAULT_PAGE_SIZE, DEFAULT_SORT, OPENALEX_WORKS_URL

ISSN_FILTER_FIELD = "primary_location.source.issn"


class EmptyIdentifierSetError(ValueError):
    """Raised when a query would not be scoped to any journal."""


@dataclass(frozen=True, slots=True)
class SearchQuery:
    """Everything needed to request one page from the works endpoint."""

    issns: tuple[str, ...]
    keywords: str = ""
    year_from: str = ""
    year_to: str = ""
    sort: str = DEFAULT_SORT
    page: int = 1
    per_page: int = DEFAULT_PAGE_SIZE
    api_key: str = ""

    def for_page(self, page: int, per_page: int | None = None) -> SearchQuery:
        """Return the same query pointed at another page."""
        return replace(self, page=page, per_page=per_page or self.per_page)


def build_filter_clauses(query: SearchQuery) -> list[str]:
    """Build the AND-combined filter clauses for a query."""
    if not query.issns:
        raise EmptyIdentifierSetError("No journal ISSNs match the current filter")
    clauses = [f"{ISSN_FILTER_FIELD}:{'|'.join(query.issns)}"]
    year_from = query.year_from.strip()
    if year_from:
        clauses.append(f"from_publication_date:{year_from}-01-01")
    year_to = query.year_to.strip()
    if year_to:
        clauses.append(f"to_publication_date:{year_to}-12-31")
    return clauses


def build_search_params(query: SearchQuery) -> dict[str, str]:
    """Build query parameters for the works endpoint.

    Raises:
        EmptyIdentifierSetError: If the query has no ISSNs.
    """
    params = {
        "per_page": str(query.per_page),
        "page": str(query.page),
    }
    keywords = query.keywords.strip()
    if keywords:
        params["search"] = keywords
    params["filter"] = ",".join(build_filter_clauses(query))
    sort = query.sort.strip()
    if sort:
        params["sort"] = sort
    api_key = query.api_key.strip()
    if api_key:
        params["api_key"] = api_key
    return params


def build_search_url(query: SearchQuery, *, redact: bool = False) -> str:
    """Build the full request URL for a query, optionally with the API key masked."""
    params = build_search_params(query)
    if redact:
        params = redact_params(params)
    return f"{OPENALEX_WORKS_URL}?{urlencode(params)}"


def redact_params(params: dict[str, str]) -> dict[str, str]:
    """Return a copy of params safe for logging."""
    if "api_key" not in params:
        return params
    return {**params, "api_key": "***"}


__all__ = [
    "ISSN_FILTER_FIELD",
    "EmptyIdentifierSetError",
    "SearchQuery",
    "build_filter_clauses",
    "build_search_params",
    "build_search_url",
    "redact_params",
]
