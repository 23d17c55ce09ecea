"""Internal service layer for controller orchestration."""

from journal_search.services.openalex_api_service import fetch_page

__all__ = [
    "fetch_page",
]
