"""UI-facing copy builders for notifications and error messages."""

from __future__ import annotations

import httpx

NO_RESULTS_MESSAGE = "No results found. Adjust your filters or keywords."
INVALID_RANGE_MESSAGE = "Invalid page range."
CREDENTIAL_SAVED_MESSAGE = "API key saved."


def _ensure_sentence(text: str) -> str:
    """Return text with terminal sentence punctuation."""
    cleaned = text.strip()
    if not cleaned:
        return ""
    if cleaned.endswith((".", "!", "?")):
        return cleaned
    return f"{cleaned}."


def build_actionable_error(
    action: str,
    *,
    next_step: str,
    why: str | None = None,
) -> str:
    """Build a 2-3 line actionable error message."""
    lines = [f"Could not {action.strip()}."]
    if why:
        lines.append(f"Why: {_ensure_sentence(why)}")
    lines.append(build_next_step_hint(next_step))
    return "\n".join(lines)


def build_next_step_hint(next_step: str) -> str:
    """Build a canonical next-step guidance line."""
    return f"Next step: {_ensure_sentence(next_step)}"


def describe_fetch_error(exc: BaseException) -> str:
    """Turn a failed OpenAlex request into a short human-readable message."""
    if isinstance(exc, httpx.HTTPStatusError):
        return f"OpenAlex error: {exc.response.status_code}"
    detail = str(exc).strip()
    if detail:
        return f"{type(exc).__name__}: {detail}"
    return type(exc).__name__


def build_export_range_hint(max_pages: int, total_pages: int) -> str:
    """Describe the page-range export limits for the current page size."""
    return (
        f"Max per export: 2000 results (up to {max_pages} pages). "
        f"Total pages: {total_pages}"
    )


def build_export_success(path_name: str, count: int) -> str:
    """Build notification text for a finished RIS export."""
    return f"Exported {count} record{'s' if count != 1 else ''} to {path_name}"


def build_countdown_label(seconds: int) -> str:
    """Build the estimated-time-left label shown during bulk operations."""
    return f"Estimated time left: {seconds}s"


__all__ = [
    "CREDENTIAL_SAVED_MESSAGE",
    "INVALID_RANGE_MESSAGE",
    "NO_RESULTS_MESSAGE",
    "build_actionable_error",
    "build_countdown_label",
    "build_export_range_hint",
    "build_export_success",
    "build_next_step_hint",
    "describe_fetch_error",
]
