"""RIS export: record formatting, filenames and file writing."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterable, Mapping
from pathlib import Path

from journal_search.models import UserConfig, Work
from journal_search.parsing import reconstruct_abstract

# Default subdirectory in home folder
DEFAULT_EXPORT_DIR = "openalex-exports"

DOI_URL_PREFIX = "https://doi.org/"

SELECTED_EXPORT_FILENAME = "openalex_selected.ris"


def _ris_line(tag: str, value: str) -> str:
    return f"{tag}  - {value}"


def format_work_as_ris(work: Work) -> str:
    """Format a work as a RIS journal-article entry.

    Optional tags are emitted only when their value is present, always in the
    same order, so the output is stable for identical input.
    """
    lines = [_ris_line("TY", "JOUR")]
    if work.display_name:
        lines.append(_ris_line("TI", work.display_name))
    lines.extend(_ris_line("AU", name) for name in work.authors if name)
    if work.source_name:
        lines.append(_ris_line("JO", work.source_name))
    if work.source_issns and work.source_issns[0]:
        lines.append(_ris_line("SN", work.source_issns[0]))
    if work.publication_year:
        lines.append(_ris_line("PY", str(work.publication_year)))
    if work.volume:
        lines.append(_ris_line("VL", work.volume))
    if work.issue:
        lines.append(_ris_line("IS", work.issue))
    if work.first_page:
        lines.append(_ris_line("SP", work.first_page))
    if work.last_page:
        lines.append(_ris_line("EP", work.last_page))
    if work.doi:
        lines.append(_ris_line("DO", work.doi.removeprefix(DOI_URL_PREFIX)))
    if work.id:
        lines.append(_ris_line("UR", work.id))
    abstract = reconstruct_abstract(work.abstract_inverted_index)
    if abstract:
        lines.append(_ris_line("AB", abstract))
    lines.append("ER  -")
    return "\n".join(lines)


def format_works_as_ris(works: Iterable[Work]) -> str:
    """Join RIS entries with a blank line between records."""
    return "\n\n".join(format_work_as_ris(work) for work in works)


def resolve_selected_works(
    selected_ids: Iterable[str], works_by_id: Mapping[str, Work]
) -> list[Work]:
    """Map selected ids to captured records, skipping ids never captured."""
    return [works_by_id[work_id] for work_id in selected_ids if work_id in works_by_id]


def page_export_filename(page: int) -> str:
    return f"openalex_page_{page}.ris"


def page_range_export_filename(start: int, end: int) -> str:
    return f"openalex_pages_{start}-{end}.ris"


def get_export_dir(config: UserConfig) -> Path:
    """Return the configured export directory (``~`` expanded)."""
    if config.export_dir:
        return Path(config.export_dir).expanduser()
    return Path.home() / DEFAULT_EXPORT_DIR


def write_export_file(*, content: str, export_dir: Path, filename: str) -> Path:
    """Write export content using atomic temp-file replacement."""
    filepath = export_dir / filename
    export_dir.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=export_dir, suffix=".tmp", prefix=".ris-")
    closed = False
    try:
        os.write(fd, content.encode("utf-8"))
        os.close(fd)
        closed = True
        os.replace(tmp_path, filepath)
    except BaseException:
        if not closed:
            os.close(fd)
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return filepath


def export_works(works: list[Work], *, export_dir: Path, filename: str) -> Path | None:
    """Serialize works to a RIS file. Returns None when there is nothing to export."""
    if not works:
        return None
    return write_export_file(
        content=format_works_as_ris(works),
        export_dir=export_dir,
        filename=filename,
    )


__all__ = [
    "DEFAULT_EXPORT_DIR",
    "DOI_URL_PREFIX",
    "SELECTED_EXPORT_FILENAME",
    "export_works",
    "format_work_as_ris",
    "format_works_as_ris",
    "get_export_dir",
    "page_export_filename",
    "page_range_export_filename",
    "resolve_selected_works",
    "write_export_file",
]
