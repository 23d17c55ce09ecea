"""Service interfaces + default adapters for app-level dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx

from journal_search.models import WorksPage
from journal_search.query import SearchQuery
from journal_search.services import openalex_api_service as _openalex


@runtime_checkable
class OpenAlexApiService(Protocol):
    """Interface for OpenAlex works API operations."""

    async def fetch_page(
        self,
        *,
        client: httpx.AsyncClient | None,
        query: SearchQuery,
    ) -> WorksPage:
        """Fetch one page of works matching a query."""
        ...


class DefaultOpenAlexApiService:
    """Default adapter that delegates to function-based OpenAlex services."""

    async def fetch_page(
        self,
        *,
        client: httpx.AsyncClient | None,
        query: SearchQuery,
    ) -> WorksPage:
        return await _openalex.fetch_page(client=client, query=query)


@dataclass(slots=True)
class AppServices:
    """Aggregated service interfaces consumed by the controller."""

    openalex: OpenAlexApiService


def build_default_app_services() -> AppServices:
    """Build default app services backed by the function-based modules."""
    return AppServices(openalex=DefaultOpenAlexApiService())


__all__ = [
    "AppServices",
    "DefaultOpenAlexApiService",
    "OpenAlexApiService",
    "build_default_app_services",
]
