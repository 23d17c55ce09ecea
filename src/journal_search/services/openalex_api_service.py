"""Internal OpenAlex API service helpers for page fetches."""

from __future__ import annotations

import logging

import httpx

from journal_search.models import OPENALEX_WORKS_URL, WorksPage
from journal_search.parsing import parse_works_page
from journal_search.query import SearchQuery, build_search_params, build_search_url

logger = logging.getLogger(__name__)

OPENALEX_TIMEOUT = 30
OPENALEX_USER_AGENT = "openalex-journal-search/0.1"


async def fetch_page(
    *,
    client: httpx.AsyncClient | None,
    query: SearchQuery,
    timeout_seconds: int = OPENALEX_TIMEOUT,
    user_agent: str = OPENALEX_USER_AGENT,
) -> WorksPage:
    """Fetch a single page of OpenAlex works and parse it.

    Raises:
        EmptyIdentifierSetError: If the query has no ISSNs.
        httpx.HTTPStatusError: On a non-2xx response.
        httpx.HTTPError: On transport failures.
        ValueError: If the body is not a JSON object.
    """
    params = build_search_params(query)
    headers = {"User-Agent": user_agent}
    logger.debug("GET %s", build_search_url(query, redact=True))

    if client is not None:
        response = await client.get(
            OPENALEX_WORKS_URL,
            params=params,
            headers=headers,
            timeout=timeout_seconds,
        )
    else:
        async with httpx.AsyncClient() as tmp_client:
            response = await tmp_client.get(
                OPENALEX_WORKS_URL,
                params=params,
                headers=headers,
                timeout=timeout_seconds,
            )

    response.raise_for_status()
    return parse_works_page(response.json())


__all__ = [
    "OPENALEX_TIMEOUT",
    "OPENALEX_USER_AGENT",
    "fetch_page",
]
