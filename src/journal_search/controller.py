"""Search controller: the single owner of application state.

Every presentation-facing operation lives here and mutates ``SearchState``
only through these methods. Derived values (filtered journals, ISSNs, total
pages) are recomputed from state on each call instead of being cached.

Everything runs on one asyncio loop. The selection list and the record
mapping are shared between interactive search and bulk operations with
last-writer-wins semantics.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import httpx

from journal_search.action_messages import (
    INVALID_RANGE_MESSAGE,
    NO_RESULTS_MESSAGE,
    describe_fetch_error,
)
from journal_search.bulk import (
    BulkKind,
    BulkRetrievalOrchestrator,
    FetchRemotePage,
    OutcomeStatus,
    PageRangeError,
    RemotePagePlan,
    max_export_pages,
    parse_page_number,
    plan_page_range,
    plan_select_all,
    total_pages,
)
from journal_search.config import save_config
from journal_search.export import (
    SELECTED_EXPORT_FILENAME,
    export_works,
    get_export_dir,
    page_export_filename,
    page_range_export_filename,
    resolve_selected_works,
)
from journal_search.journals import derive_issns, filter_journals
from journal_search.models import (
    BULK_REMOTE_PAGE_SIZE,
    PAGE_SIZE_OPTIONS,
    SORT_OPTIONS,
    FilterState,
    Journal,
    SearchState,
    SearchStatus,
    UserConfig,
    Work,
)
from journal_search.query import SearchQuery
from journal_search.services.interfaces import AppServices, build_default_app_services

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class SearchController:
    """Drives filtering, paged search, selection, bulk retrieval and export."""

    def __init__(
        self,
        journals: list[Journal],
        config: UserConfig | None = None,
        *,
        services: AppServices | None = None,
        client: httpx.AsyncClient | None = None,
        orchestrator: BulkRetrievalOrchestrator | None = None,
    ) -> None:
        self.journals = journals
        self.config = config or UserConfig()
        self.services = services or build_default_app_services()
        self.client = client
        self.orchestrator = orchestrator or BulkRetrievalOrchestrator()
        self.state = SearchState(
            sort=self.config.sort,
            page_size=self.config.page_size,
            api_key=self.config.api_key,
        )
        self._listeners: list[Listener] = []
        self._request_token = 0

    # ── Observation ──────────────────────────────────────────────────────

    def add_listener(self, listener: Listener) -> None:
        """Register a callback run after every state change."""
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener()

    # ── Derived values ───────────────────────────────────────────────────

    def filtered_journals(self) -> list[Journal]:
        return filter_journals(self.journals, self.state.filter)

    def issns(self) -> list[str]:
        return derive_issns(self.filtered_journals())

    def total_pages(self) -> int:
        return total_pages(self.state.total_count, self.state.page_size)

    def max_export_pages(self) -> int:
        return max_export_pages(self.state.page_size)

    def _build_query(self, page: int, per_page: int | None = None) -> SearchQuery:
        state = self.state
        return SearchQuery(
            issns=tuple(self.issns()),
            keywords=state.keywords,
            year_from=state.year_from,
            year_to=state.year_to,
            sort=state.sort,
            page=page,
            per_page=per_page or state.page_size,
            api_key=state.api_key,
        )

    # ── Filter and inputs ────────────────────────────────────────────────

    def apply_filter(
        self,
        *,
        fields: set[str] | None = None,
        ranks: set[str] | None = None,
        ft50: bool | None = None,
        utd24: bool | None = None,
    ) -> list[Journal]:
        """Update the journal filter and return the journals that pass it."""
        current = self.state.filter
        self.state.filter = FilterState(
            fields=set(fields) if fields is not None else current.fields,
            ranks=set(ranks) if ranks is not None else current.ranks,
            ft50=current.ft50 if ft50 is None else ft50,
            utd24=current.utd24 if utd24 is None else utd24,
        )
        self._changed()
        return self.filtered_journals()

    def set_search_inputs(
        self,
        *,
        keywords: str | None = None,
        year_from: str | None = None,
        year_to: str | None = None,
        api_key: str | None = None,
    ) -> None:
        """Record the free-text form inputs used by the next request."""
        if keywords is not None:
            self.state.keywords = keywords
        if year_from is not None:
            self.state.year_from = year_from
        if year_to is not None:
            self.state.year_to = year_to
        if api_key is not None:
            self.state.api_key = api_key

    def save_credential(self, api_key: str) -> bool:
        """Persist the API key to the user config. Returns save success."""
        key = api_key.strip()
        self.state.api_key = key
        self.config.api_key = key
        return save_config(self.config)

    # ── Interactive search ───────────────────────────────────────────────

    async def run_search(self) -> None:
        """Start a fresh search at page 1."""
        state = self.state
        if not self.issns():
            state.status = SearchStatus.ERROR
            state.error_message = NO_RESULTS_MESSAGE
            state.works = []
            state.total_count = 0
            state.selected_ids = []
            self._changed()
            return
        state.current_page = 1
        state.has_searched = True
        state.selected_works = {}
        state.selected_ids = []
        await self._fetch(1, replace_mapping=True)

    async def change_page(self, page: int) -> None:
        """Navigate to another page of the current search."""
        if not self.state.has_searched:
            return
        page = max(1, min(page, self.total_pages()))
        self.state.current_page = page
        await self._fetch(page, replace_mapping=False)

    async def change_sort(self, sort: str) -> None:
        """Change the sort order; re-fetches page 1 once a search has run."""
        if sort not in SORT_OPTIONS:
            raise ValueError(f"Unknown sort option: {sort!r}")
        self.state.sort = sort
        await self._refetch_first_page()

    async def change_page_size(self, page_size: int) -> None:
        """Change the page size; re-fetches page 1 once a search has run."""
        if page_size not in PAGE_SIZE_OPTIONS:
            raise ValueError(f"Unsupported page size: {page_size!r}")
        self.state.page_size = page_size
        await self._refetch_first_page()

    async def _refetch_first_page(self) -> None:
        if not self.state.has_searched:
            self._changed()
            return
        self.state.current_page = 1
        await self._fetch(1, replace_mapping=True)

    async def _fetch(self, page: int, *, replace_mapping: bool) -> None:
        state = self.state
        self._request_token += 1
        request_token = self._request_token
        state.status = SearchStatus.SEARCHING
        state.error_message = ""
        self._changed()

        try:
            result = await self.services.openalex.fetch_page(
                client=self.client,
                query=self._build_query(page),
            )
        except (httpx.HTTPError, OSError, ValueError) as exc:
            if request_token != self._request_token:
                return
            logger.warning("OpenAlex search failed: %s", exc, exc_info=True)
            state.status = SearchStatus.ERROR
            state.error_message = describe_fetch_error(exc)
            state.works = []
            state.total_count = 0
            self._changed()
            return

        # Ignore stale responses superseded by a newer request.
        if request_token != self._request_token:
            return

        state.works = result.results
        state.total_count = result.count
        if replace_mapping:
            state.selected_works = {}
        self._remember(result.results)
        state.status = SearchStatus.READY
        logger.debug("Loaded page %d: %d of %d results", page, len(result.results), result.count)
        self._changed()

    def _remember(self, works: list[Work]) -> None:
        for work in works:
            if work.id:
                self.state.selected_works[work.id] = work

    # ── Selection ────────────────────────────────────────────────────────

    def toggle_selection(self, work_id: str) -> None:
        selected = self.state.selected_ids
        if work_id in selected:
            selected.remove(work_id)
        else:
            selected.append(work_id)
        self._changed()

    def select_current_page(self) -> None:
        """Replace the selection with the works on the current page."""
        self.state.selected_ids = [work.id for work in self.state.works if work.id]
        self._changed()

    def clear_selection(self) -> None:
        self.state.selected_ids = []
        self._changed()

    def _fetch_remote_page(self) -> FetchRemotePage:
        """Return a fetcher bound to the query as it stands now.

        Later edits to the filter or form do not reach pages of a running
        bulk operation.
        """
        query = self._build_query(1, per_page=BULK_REMOTE_PAGE_SIZE)

        async def fetch(page: int) -> list[Work]:
            result = await self.services.openalex.fetch_page(
                client=self.client,
                query=query.for_page(page),
            )
            return result.results

        return fetch

    async def select_all_results(self) -> None:
        """Select every result of the current search, up to the record cap."""
        state = self.state
        if not state.has_searched:
            return
        state.select_all_loading = True
        state.error_message = ""
        self._changed()

        outcome = await self.orchestrator.run(
            BulkKind.SELECT_ALL,
            plan_select_all(state.total_count),
            self._fetch_remote_page(),
            on_countdown=self._set_select_all_countdown,
        )

        if outcome.status is OutcomeStatus.COMPLETED:
            state.selected_works = {work.id: work for work in outcome.works if work.id}
            state.selected_ids = [work.id for work in outcome.works if work.id]
        elif outcome.status is OutcomeStatus.FAILED:
            state.error_message = outcome.error_message
        if not self.orchestrator.is_running(BulkKind.SELECT_ALL):
            state.select_all_loading = False
            state.select_all_countdown = 0
        self._changed()

    def cancel_select_all(self) -> None:
        self.orchestrator.cancel(BulkKind.SELECT_ALL)
        self.state.select_all_loading = False
        self.state.select_all_countdown = 0
        self._changed()

    def _set_select_all_countdown(self, seconds: int) -> None:
        self.state.select_all_countdown = seconds
        self._changed()

    # ── Export ───────────────────────────────────────────────────────────

    def _export_dir(self) -> Path:
        return get_export_dir(self.config)

    def export_selected(self) -> Path | None:
        """Export selected works whose records were captured."""
        works = resolve_selected_works(self.state.selected_ids, self.state.selected_works)
        self.state.last_export_count = len(works)
        return export_works(
            works,
            export_dir=self._export_dir(),
            filename=SELECTED_EXPORT_FILENAME,
        )

    def export_current_page(self) -> Path | None:
        self.state.last_export_count = len(self.state.works)
        return export_works(
            self.state.works,
            export_dir=self._export_dir(),
            filename=page_export_filename(self.state.current_page),
        )

    async def export_page_range(self, start: str | int, end: str | int) -> Path | None:
        """Fetch an inclusive range of logical pages and export it.

        Returns the written path, or None on a rejected range, failure or
        cancellation. Rejections and failures set ``state.export_error``.
        """
        state = self.state
        try:
            start_page = parse_page_number(start)
            end_page = parse_page_number(end)
            plan: RemotePagePlan = plan_page_range(
                start_page,
                end_page,
                page_size=state.page_size,
                total_count=state.total_count,
            )
        except PageRangeError as exc:
            logger.info("Rejected page range export: %s", exc)
            state.export_error = INVALID_RANGE_MESSAGE
            self._changed()
            return None

        state.export_error = ""
        state.export_loading = True
        state.export_countdown = 0
        self._changed()

        outcome = await self.orchestrator.run(
            BulkKind.EXPORT_RANGE,
            plan,
            self._fetch_remote_page(),
            on_countdown=self._set_export_countdown,
        )

        path: Path | None = None
        if outcome.status is OutcomeStatus.COMPLETED:
            state.last_export_count = len(outcome.works)
            try:
                path = export_works(
                    outcome.works,
                    export_dir=self._export_dir(),
                    filename=page_range_export_filename(start_page, end_page),
                )
            except OSError as exc:
                logger.error("Failed to write RIS export: %s", exc)
                state.export_error = f"Could not write export: {exc}"
        elif outcome.status is OutcomeStatus.FAILED:
            state.export_error = outcome.error_message
        if not self.orchestrator.is_running(BulkKind.EXPORT_RANGE):
            state.export_loading = False
            state.export_countdown = 0
        self._changed()
        return path

    def cancel_export(self) -> None:
        self.orchestrator.cancel(BulkKind.EXPORT_RANGE)
        self.state.export_loading = False
        self.state.export_countdown = 0
        self._changed()

    def _set_export_countdown(self, seconds: int) -> None:
        self.state.export_countdown = seconds
        self._changed()


__all__ = [
    "SearchController",
]
