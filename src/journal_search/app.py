"""Textual front end for journal-scoped OpenAlex search."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import httpx
from textual import on
from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.css.query import NoMatches
from textual.widgets import (
    Button,
    Checkbox,
    DataTable,
    Footer,
    Header,
    Input,
    Label,
    Select,
    SelectionList,
)

from journal_search.action_messages import (
    CREDENTIAL_SAVED_MESSAGE,
    build_actionable_error,
    build_countdown_label,
    build_export_success,
)
from journal_search.bulk import BulkRetrievalOrchestrator
from journal_search.controller import SearchController
from journal_search.journals import unique_fields
from journal_search.modals import PageRangeModal, WorkDetailModal
from journal_search.models import (
    ABS_RANKS,
    PAGE_SIZE_OPTIONS,
    SORT_OPTIONS,
    FilterState,
    Journal,
    SearchStatus,
    UserConfig,
    Work,
)
from journal_search.services.interfaces import AppServices, build_default_app_services
from journal_search.ui_constants import APP_BINDINGS, APP_CSS

logger = logging.getLogger(__name__)

SELECTED_MARK = "●"


class JournalSearchApp(App):
    """A TUI for searching OpenAlex within a filtered set of journals."""

    TITLE = "OpenAlex Journal Search"

    CSS = APP_CSS

    BINDINGS = APP_BINDINGS

    def __init__(
        self,
        journals: list[Journal],
        config: UserConfig | None = None,
        *,
        initial_filter: FilterState | None = None,
        services: AppServices | None = None,
        orchestrator: BulkRetrievalOrchestrator | None = None,
    ) -> None:
        super().__init__()
        self._config = config or UserConfig()
        self._services: AppServices = services or build_default_app_services()
        self.controller = SearchController(
            journals,
            self._config,
            services=self._services,
            orchestrator=orchestrator,
        )
        if initial_filter is not None:
            self.controller.apply_filter(
                fields=initial_filter.fields,
                ranks=initial_filter.ranks,
                ft50=initial_filter.ft50,
                utd24=initial_filter.utd24,
            )
        self._fields = unique_fields(journals)
        self._background_tasks: set[asyncio.Task[None]] = set()
        self._http_client: httpx.AsyncClient | None = None
        self._results_signature: tuple[Any, ...] | None = None

    def compose(self) -> ComposeResult:
        state = self.controller.state
        yield Header()
        with Horizontal(id="main-container"):
            with VerticalScroll(id="filter-pane"):
                yield Label("Special Collections", classes="section-title")
                with Horizontal(id="special-collections"):
                    yield Checkbox("FT50", value=state.filter.ft50, id="ft50-checkbox")
                    yield Checkbox("UTD24", value=state.filter.utd24, id="utd24-checkbox")
                yield Label("ABS Ranking (2024)", classes="section-title")
                yield SelectionList[str](
                    *[(rank, rank, rank in state.filter.ranks) for rank in ABS_RANKS],
                    id="rank-list",
                )
                yield Label("Research Fields", classes="section-title")
                yield SelectionList[str](
                    *[(name, name, name in state.filter.fields) for name in self._fields],
                    id="field-list",
                )
                yield Label("", id="journal-count")
                yield DataTable(id="journal-table", cursor_type="row", zebra_stripes=True)
            with Vertical(id="search-pane"):
                with Horizontal(classes="form-row"):
                    yield Input(
                        value=state.api_key,
                        placeholder="OpenAlex API key (optional)",
                        password=True,
                        id="api-key",
                    )
                    yield Input(placeholder="Keywords (title and abstract)", id="keywords")
                with Horizontal(classes="form-row"):
                    yield Input(
                        placeholder="From year",
                        restrict=r"[0-9]*",
                        max_length=4,
                        id="year-from",
                    )
                    yield Input(
                        placeholder="To year",
                        restrict=r"[0-9]*",
                        max_length=4,
                        id="year-to",
                    )
                    yield Select(
                        [(label, value) for value, label in SORT_OPTIONS.items()],
                        value=state.sort,
                        allow_blank=False,
                        id="sort-select",
                    )
                    yield Select(
                        [(f"{size} / page", size) for size in PAGE_SIZE_OPTIONS],
                        value=state.page_size,
                        allow_blank=False,
                        id="page-size-select",
                    )
                with Horizontal(id="form-buttons", classes="form-row"):
                    yield Button("Save key", id="save-key")
                    yield Button("Search (Ctrl+R)", variant="primary", id="search-button")
                yield Label("", id="search-error")
                yield Label(" Results", id="results-header")
                yield DataTable(id="results-table", cursor_type="row")
                yield Label("", id="bulk-status")
                yield Label("", id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Create the shared HTTP client and render initial state."""
        self._http_client = httpx.AsyncClient()
        self.controller.client = self._http_client

        if self._config.config_defaulted:
            self.notify(
                "Config file was corrupt or unreadable. Using defaults.",
                severity="warning",
                timeout=8,
            )

        journal_table = self.query_one("#journal-table", DataTable)
        journal_table.add_columns("Title", "ISSN", "Field", "ABS", "FT50", "UTD24")
        results_table = self.query_one("#results-table", DataTable)
        results_table.add_columns("", "Title", "Journal", "Year", "Cited by")

        self.controller.add_listener(self._refresh_view)
        self._refresh_journal_table()
        self._refresh_view()

    async def on_unmount(self) -> None:
        """Cancel in-flight work and close the shared HTTP client."""
        self.controller.orchestrator.cancel_all()

        pending = [task for task in self._background_tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            _, still_pending = await asyncio.wait(pending, timeout=0.5)
            for task in still_pending:
                logger.debug("Background task did not cancel before shutdown: %r", task)
        self._background_tasks.clear()

        client = self._http_client
        self._http_client = None
        self.controller.client = None
        if client is not None:
            try:
                await client.aclose()
            except Exception as e:
                logger.debug(
                    "Failed to close shared HTTP client during shutdown: %s", e, exc_info=True
                )

    def _track_task(self, coro: Any) -> asyncio.Task[None]:
        """Create an asyncio task and track it to prevent garbage collection."""
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        task.add_done_callback(self._on_task_done)
        return task

    @staticmethod
    def _on_task_done(task: asyncio.Task[None]) -> None:
        """Log unhandled exceptions from background tasks."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Unhandled exception in background task: %s", exc, exc_info=exc)

    # ── Rendering ────────────────────────────────────────────────────────

    def _refresh_journal_table(self) -> None:
        journals = self.controller.filtered_journals()
        try:
            table = self.query_one("#journal-table", DataTable)
            count_label = self.query_one("#journal-count", Label)
        except NoMatches:
            return
        table.clear()
        for journal in journals:
            table.add_row(
                journal.title,
                journal.issn,
                journal.field,
                journal.abs_rank,
                "✓" if journal.is_ft50 else "",
                "✓" if journal.is_utd24 else "",
            )
        issn_count = len(self.controller.issns())
        count_label.update(f"{len(journals)} journals matched, {issn_count} ISSNs")

    def _refresh_view(self) -> None:
        """Re-render everything derived from controller state."""
        state = self.controller.state
        try:
            error_label = self.query_one("#search-error", Label)
            header = self.query_one("#results-header", Label)
            bulk_label = self.query_one("#bulk-status", Label)
            status_bar = self.query_one("#status-bar", Label)
        except NoMatches:
            return

        error_label.update(state.export_error or state.error_message)

        if state.status is SearchStatus.SEARCHING:
            header.update(" Searching OpenAlex…")
        elif state.has_searched:
            header.update(f" Results ({state.total_count:,} found)")
        else:
            header.update(" Results")

        bulk_parts = []
        if state.select_all_loading:
            bulk_parts.append(
                f"Selecting all results. {build_countdown_label(state.select_all_countdown)}"
            )
        if state.export_loading:
            bulk_parts.append(
                f"Exporting page range. {build_countdown_label(state.export_countdown)}"
            )
        if bulk_parts:
            bulk_parts.append("(Esc to cancel)")
        bulk_label.update(" ".join(bulk_parts))

        status_bar.update(
            f"Page {state.current_page} of {self.controller.total_pages()}"
            f"  |  {len(state.works)} on page"
            f"  |  {len(state.selected_ids)} selected"
        )
        self._refresh_results_table()

    def _refresh_results_table(self) -> None:
        state = self.controller.state
        signature = (
            tuple(work.id for work in state.works),
            tuple(state.selected_ids),
        )
        if signature == self._results_signature:
            return
        self._results_signature = signature
        try:
            table = self.query_one("#results-table", DataTable)
        except NoMatches:
            return
        cursor_row = table.cursor_row
        selected = set(state.selected_ids)
        table.clear()
        for work in state.works:
            table.add_row(
                SELECTED_MARK if work.id in selected else "",
                work.display_name or "(untitled)",
                work.source_name,
                "" if work.publication_year is None else str(work.publication_year),
                str(work.cited_by_count),
            )
        if state.works:
            table.move_cursor(row=min(cursor_row, len(state.works) - 1))

    def _current_work(self) -> Work | None:
        try:
            table = self.query_one("#results-table", DataTable)
        except NoMatches:
            return None
        row = table.cursor_row
        works = self.controller.state.works
        if 0 <= row < len(works):
            return works[row]
        return None

    # ── Filter events ────────────────────────────────────────────────────

    @on(Checkbox.Changed, "#ft50-checkbox")
    def on_ft50_changed(self, event: Checkbox.Changed) -> None:
        self.controller.apply_filter(ft50=event.value)
        self._refresh_journal_table()

    @on(Checkbox.Changed, "#utd24-checkbox")
    def on_utd24_changed(self, event: Checkbox.Changed) -> None:
        self.controller.apply_filter(utd24=event.value)
        self._refresh_journal_table()

    @on(SelectionList.SelectedChanged, "#rank-list")
    def on_ranks_changed(self, event: SelectionList.SelectedChanged) -> None:
        self.controller.apply_filter(ranks=set(event.selection_list.selected))
        self._refresh_journal_table()

    @on(SelectionList.SelectedChanged, "#field-list")
    def on_fields_changed(self, event: SelectionList.SelectedChanged) -> None:
        self.controller.apply_filter(fields=set(event.selection_list.selected))
        self._refresh_journal_table()

    # ── Form events ──────────────────────────────────────────────────────

    @on(Input.Changed, "#keywords")
    def on_keywords_changed(self, event: Input.Changed) -> None:
        self.controller.set_search_inputs(keywords=event.value)

    @on(Input.Changed, "#year-from")
    def on_year_from_changed(self, event: Input.Changed) -> None:
        self.controller.set_search_inputs(year_from=event.value)

    @on(Input.Changed, "#year-to")
    def on_year_to_changed(self, event: Input.Changed) -> None:
        self.controller.set_search_inputs(year_to=event.value)

    @on(Input.Changed, "#api-key")
    def on_api_key_changed(self, event: Input.Changed) -> None:
        self.controller.set_search_inputs(api_key=event.value.strip())

    @on(Input.Submitted, "#keywords")
    def on_keywords_submitted(self) -> None:
        self.action_search()

    @on(Select.Changed, "#sort-select")
    def on_sort_changed(self, event: Select.Changed) -> None:
        value = event.value
        if not isinstance(value, str) or value == self.controller.state.sort:
            return
        self._track_task(self.controller.change_sort(value))

    @on(Select.Changed, "#page-size-select")
    def on_page_size_changed(self, event: Select.Changed) -> None:
        value = event.value
        if not isinstance(value, int) or value == self.controller.state.page_size:
            return
        self._track_task(self.controller.change_page_size(value))

    @on(Button.Pressed, "#save-key")
    def on_save_key_pressed(self) -> None:
        key = self.query_one("#api-key", Input).value
        if self.controller.save_credential(key):
            self.notify(CREDENTIAL_SAVED_MESSAGE, title="API key")
            return
        self.notify(
            build_actionable_error(
                "save the API key",
                why="the config file could not be written",
                next_step="check permissions on the config directory and retry",
            ),
            title="API key",
            severity="error",
        )

    @on(Button.Pressed, "#search-button")
    def on_search_pressed(self) -> None:
        self.action_search()

    @on(DataTable.RowSelected, "#results-table")
    def on_result_selected(self, event: DataTable.RowSelected) -> None:
        works = self.controller.state.works
        if 0 <= event.cursor_row < len(works):
            self.push_screen(WorkDetailModal(works[event.cursor_row]))

    # ── Actions ──────────────────────────────────────────────────────────

    def action_search(self) -> None:
        self._track_task(self.controller.run_search())

    def action_prev_page(self) -> None:
        state = self.controller.state
        if not state.has_searched or state.current_page <= 1:
            return
        self._track_task(self.controller.change_page(state.current_page - 1))

    def action_next_page(self) -> None:
        state = self.controller.state
        if not state.has_searched or state.current_page >= self.controller.total_pages():
            return
        self._track_task(self.controller.change_page(state.current_page + 1))

    def action_toggle_select(self) -> None:
        work = self._current_work()
        if work is None or not work.id:
            return
        self.controller.toggle_selection(work.id)

    def action_select_page(self) -> None:
        self.controller.select_current_page()

    def action_clear_selection(self) -> None:
        self.controller.clear_selection()

    def action_select_all_results(self) -> None:
        if not self.controller.state.has_searched:
            self.notify("Run a search first.", title="Select all", severity="warning")
            return
        self._track_task(self.controller.select_all_results())

    def action_cancel_bulk(self) -> None:
        state = self.controller.state
        if state.select_all_loading:
            self.controller.cancel_select_all()
        if state.export_loading:
            self.controller.cancel_export()

    def _notify_export(self, path: Path | None, *, empty_message: str) -> None:
        if path is None:
            self.notify(empty_message, title="Export", severity="warning")
            return
        count = self.controller.state.last_export_count
        self.notify(build_export_success(path.name, count), title="Export")

    def _notify_export_failure(self, exc: OSError) -> None:
        self.notify(
            build_actionable_error(
                "write the RIS export",
                why=str(exc),
                next_step="check export_dir in config.json and retry",
            ),
            title="Export",
            severity="error",
        )

    def action_export_selected(self) -> None:
        try:
            path = self.controller.export_selected()
        except OSError as exc:
            logger.error("Failed to export selected works: %s", exc)
            self._notify_export_failure(exc)
            return
        self._notify_export(path, empty_message="No selected records to export.")

    def action_export_page(self) -> None:
        try:
            path = self.controller.export_current_page()
        except OSError as exc:
            logger.error("Failed to export current page: %s", exc)
            self._notify_export_failure(exc)
            return
        self._notify_export(path, empty_message="No results on this page to export.")

    def action_export_range(self) -> None:
        state = self.controller.state
        if not state.has_searched or state.total_count == 0:
            self.notify("Run a search first.", title="Export", severity="warning")
            return
        self.push_screen(
            PageRangeModal(
                max_pages=self.controller.max_export_pages(),
                total_pages=self.controller.total_pages(),
                current_page=state.current_page,
            ),
            callback=self._on_range_chosen,
        )

    def _on_range_chosen(self, result: tuple[str, str] | None) -> None:
        if result is None:
            return
        start, end = result
        self._track_task(self._run_range_export(start, end))

    async def _run_range_export(self, start: str, end: str) -> None:
        path = await self.controller.export_page_range(start, end)
        if path is not None:
            self._notify_export(path, empty_message="")
            return
        error = self.controller.state.export_error
        if error:
            self.notify(error, title="Export", severity="error")


__all__ = [
    "JournalSearchApp",
]
