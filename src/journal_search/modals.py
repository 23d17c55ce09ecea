"""Page-range export and work detail modals."""

from __future__ import annotations

from textual import on
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Static

from journal_search.action_messages import build_export_range_hint
from journal_search.export import DOI_URL_PREFIX
from journal_search.models import Work
from journal_search.parsing import reconstruct_abstract


class PageRangeModal(ModalScreen[tuple[str, str] | None]):
    """Ask for an inclusive start/end page range to export.

    Dismisses with the raw ``(start, end)`` strings; validation happens in the
    controller so that every rejection produces the same message.
    """

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
    ]

    CSS = """
    PageRangeModal {
        align: center middle;
    }

    #range-dialog {
        width: 60;
        height: auto;
        background: $surface;
        border: tall $accent;
        padding: 0 2;
    }

    #range-title {
        text-style: bold;
        color: $accent;
        margin-bottom: 1;
    }

    #range-help {
        color: $text-muted;
        margin-bottom: 1;
    }

    #range-inputs Input {
        width: 1fr;
    }

    #range-buttons {
        height: auto;
        align: right middle;
    }

    #range-buttons Button {
        margin-left: 1;
    }
    """

    def __init__(self, *, max_pages: int, total_pages: int, current_page: int = 1) -> None:
        super().__init__()
        self._max_pages = max_pages
        self._total_pages = total_pages
        self._current_page = current_page

    def compose(self) -> ComposeResult:
        with Vertical(id="range-dialog"):
            yield Label("Export Page Range (RIS)", id="range-title")
            yield Label(
                build_export_range_hint(self._max_pages, self._total_pages),
                id="range-help",
            )
            with Horizontal(id="range-inputs"):
                yield Input(
                    value=str(self._current_page),
                    placeholder="Start page",
                    id="range-start",
                )
                yield Input(
                    value=str(self._current_page),
                    placeholder="End page",
                    id="range-end",
                )
            with Horizontal(id="range-buttons"):
                yield Button("Cancel (Esc)", variant="default", id="range-cancel")
                yield Button("Export", variant="primary", id="range-export")

    def on_mount(self) -> None:
        self.query_one("#range-start", Input).focus()

    def action_export(self) -> None:
        start = self.query_one("#range-start", Input).value
        end = self.query_one("#range-end", Input).value
        self.dismiss((start, end))

    def action_cancel(self) -> None:
        self.dismiss(None)

    @on(Button.Pressed, "#range-export")
    def on_export_pressed(self) -> None:
        self.action_export()

    @on(Button.Pressed, "#range-cancel")
    def on_cancel_pressed(self) -> None:
        self.action_cancel()

    @on(Input.Submitted, "#range-start")
    def on_start_submitted(self) -> None:
        self.query_one("#range-end", Input).focus()

    @on(Input.Submitted, "#range-end")
    def on_end_submitted(self) -> None:
        self.action_export()


def format_work_details(work: Work) -> str:
    """Plain-text detail view of a work, abstract included."""
    lines = [work.display_name or "(untitled)", ""]
    if work.authors:
        lines.append(f"Authors: {', '.join(work.authors)}")
    if work.source_name:
        lines.append(f"Journal: {work.source_name}")
    if work.publication_year is not None:
        lines.append(f"Year: {work.publication_year}")
    lines.append(f"Cited by: {work.cited_by_count}")
    if work.doi:
        lines.append(f"DOI: {DOI_URL_PREFIX}{work.doi.removeprefix(DOI_URL_PREFIX)}")
    abstract = reconstruct_abstract(work.abstract_inverted_index)
    lines.append("")
    lines.append(abstract or "No abstract available.")
    return "\n".join(lines)


class WorkDetailModal(ModalScreen[None]):
    """Read-only view of one work with its reconstructed abstract."""

    BINDINGS = [
        Binding("escape", "close", "Close"),
        Binding("q", "close", "Close", show=False),
    ]

    CSS = """
    WorkDetailModal {
        align: center middle;
    }

    #detail-dialog {
        width: 80%;
        height: 80%;
        background: $surface;
        border: tall $accent;
        padding: 0 2;
    }

    #detail-scroll {
        height: 1fr;
    }

    #detail-close {
        dock: bottom;
    }
    """

    def __init__(self, work: Work) -> None:
        super().__init__()
        self._work = work

    def compose(self) -> ComposeResult:
        with Vertical(id="detail-dialog"):
            with VerticalScroll(id="detail-scroll"):
                yield Static(format_work_details(self._work), id="detail-body", markup=False)
            yield Button("Close (Esc)", id="detail-close")

    def action_close(self) -> None:
        self.dismiss(None)

    @on(Button.Pressed, "#detail-close")
    def on_close_pressed(self) -> None:
        self.action_close()


__all__ = [
    "PageRangeModal",
    "WorkDetailModal",
    "format_work_details",
]
