"""Shared test fixtures for journal search tests."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import httpx
import pytest

from journal_search.bulk import BulkRetrievalOrchestrator
from journal_search.controller import SearchController
from journal_search.models import OPENALEX_WORKS_URL, Journal, UserConfig, Work, WorksPage
from journal_search.query import SearchQuery, build_search_params
from journal_search.services.interfaces import AppServices

# ── Config isolation ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _isolated_config_path(tmp_path, monkeypatch):
    """Point config persistence at a temp file so tests never touch the real one."""
    config_path = tmp_path / "config" / "config.json"
    monkeypatch.setattr("journal_search.config.get_config_path", lambda: config_path)
    return config_path


# ── Factories ────────────────────────────────────────────────────────────────


@pytest.fixture
def make_work():
    """Factory fixture for creating Work instances with sensible defaults."""

    def _make(
        work_id: str = "https://openalex.org/W1",
        display_name: str = "Test Work",
        **kwargs: Any,
    ) -> Work:
        return Work(id=work_id, display_name=display_name, **kwargs)

    return _make


@pytest.fixture
def make_journal():
    """Factory fixture for creating Journal rows."""

    def _make(
        title: str = "Test Journal",
        issn: str = "1234-5678",
        field: str | None = "Management",
        abs_rank: str | None = "4",
        is_ft50: bool = False,
        is_utd24: bool = False,
    ) -> Journal:
        return Journal(
            title=title,
            issn=issn,
            field=field,
            abs_rank=abs_rank,
            is_ft50=is_ft50,
            is_utd24=is_utd24,
        )

    return _make


@pytest.fixture
def sample_journals(make_journal) -> list[Journal]:
    """Small allow-list covering every filter dimension and ISSN edge case."""
    return [
        make_journal("Journal of Finance", "0022-1082", "Finance", "4*", True, True),
        make_journal("Management Science", "0025-1909", "Operations", "4*", True, True),
        make_journal("Research Policy", "0048-7333", "Innovation", "4*", True, False),
        make_journal("INFORMS Journal on Computing", "1091-9856", "Operations", "3", False, True),
        make_journal("Technovation", "0166-4972", "Innovation", "3", False, False),
        make_journal("Management Decision", "0025-1747", "Management", "2", False, False),
        make_journal("Journal of Management History", "nan", "Management", "1", False, False),
        make_journal("Asian Case Research Journal", "", "Management", "1", False, False),
        make_journal("Duplicate Finance Listing", "0022-1082", "Finance", None, False, False),
    ]


@pytest.fixture
def sample_config():
    """Factory fixture for creating UserConfig with optional overrides."""

    def _make(**kwargs: Any) -> UserConfig:
        return UserConfig(**kwargs)

    return _make


# ── OpenAlex doubles ─────────────────────────────────────────────────────────


def make_status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", OPENALEX_WORKS_URL)
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


class FakeOpenAlexService:
    """In-memory OpenAlex double serving ``total`` ordered records.

    Record ``i`` (0-based) has id ``W{i}``. Every query is recorded in
    ``calls`` and its parameters are built, so an empty ISSN set fails the
    same way the real service does.
    """

    def __init__(self, total: int = 0) -> None:
        self.total = total
        self.calls: list[SearchQuery] = []
        self.fail_pages: dict[int, BaseException] = {}
        self.gate: asyncio.Event | None = None

    async def fetch_page(self, *, client: Any, query: SearchQuery) -> WorksPage:
        build_search_params(query)
        self.calls.append(query)
        if self.gate is not None:
            await self.gate.wait()
        error = self.fail_pages.get(query.page)
        if error is not None:
            raise error
        start = (query.page - 1) * query.per_page
        end = min(start + query.per_page, self.total)
        results = [Work(id=f"W{i}", display_name=f"Work {i}") for i in range(start, end)]
        return WorksPage(results=results, count=self.total)

    @property
    def pages_requested(self) -> list[tuple[int, int]]:
        return [(query.page, query.per_page) for query in self.calls]


@pytest.fixture
def fake_openalex() -> FakeOpenAlexService:
    return FakeOpenAlexService(total=0)


async def instant_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


@pytest.fixture
def make_controller(sample_journals, fake_openalex, tmp_path):
    """Factory fixture for a controller wired to the fake service and a temp export dir."""

    def _make(
        journals: list[Journal] | None = None,
        *,
        total: int | None = None,
        **config_overrides: Any,
    ) -> SearchController:
        if total is not None:
            fake_openalex.total = total
        config_overrides.setdefault("export_dir", str(tmp_path / "exports"))
        return SearchController(
            sample_journals if journals is None else journals,
            UserConfig(**config_overrides),
            services=AppServices(openalex=fake_openalex),
            orchestrator=BulkRetrievalOrchestrator(sleep=instant_sleep),
        )

    return _make


@pytest.fixture
def export_dir(tmp_path) -> Path:
    return tmp_path / "exports"


@pytest.fixture
def status_error():
    """Factory fixture for httpx.HTTPStatusError with a given status code."""
    return make_status_error
