"""Internal UI constants for the JournalSearchApp."""

from __future__ import annotations

from textual.binding import Binding, BindingType

APP_CSS = """
#main-container {
    height: 1fr;
}

#filter-pane {
    width: 2fr;
    min-width: 40;
    max-width: 70;
    height: 100%;
    border: tall $primary;
    padding: 0 1;
}

#filter-pane:focus-within {
    border: tall $accent;
}

#search-pane {
    width: 3fr;
    height: 100%;
    border: tall $primary;
    padding: 0 1;
}

#search-pane:focus-within {
    border: tall $accent;
}

.section-title {
    color: $accent;
    text-style: bold;
    margin-top: 1;
}

#special-collections {
    height: auto;
}

#rank-list {
    height: auto;
    max-height: 8;
}

#field-list {
    height: 10;
}

#journal-count {
    color: $text-muted;
    margin-top: 1;
}

#journal-table {
    height: 1fr;
    min-height: 6;
}

.form-row {
    height: auto;
}

.form-row Input {
    width: 1fr;
}

#year-from,
#year-to {
    width: 12;
}

#sort-select {
    width: 30;
}

#page-size-select {
    width: 14;
}

#form-buttons Button {
    margin-right: 1;
}

#search-error {
    color: $error;
}

#results-header {
    color: $accent;
    text-style: bold;
    margin-top: 1;
}

#results-table {
    height: 1fr;
}

#status-bar {
    padding: 0 1;
    color: $text-muted;
}

#bulk-status {
    padding: 0 1;
    color: $warning;
}
"""

APP_BINDINGS: list[BindingType] = [
    Binding("q", "quit", "Quit", show=False),
    Binding("ctrl+r", "search", "Search"),
    Binding("left_square_bracket", "prev_page", "Prev page"),
    Binding("right_square_bracket", "next_page", "Next page"),
    Binding("space", "toggle_select", "Select", show=False),
    Binding("a", "select_page", "Select page", show=False),
    Binding("A", "select_all_results", "Select all"),
    Binding("u", "clear_selection", "Clear selection", show=False),
    Binding("e", "export_selected", "Export selected"),
    Binding("E", "export_page", "Export page", show=False),
    Binding("R", "export_range", "Export range"),
    Binding("escape", "cancel_bulk", "Cancel", show=False),
]

__all__ = [
    "APP_BINDINGS",
    "APP_CSS",
]
