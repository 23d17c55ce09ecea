"""Journal allow-list loading and filtering.

The allow-list is a static JSON array. Filtering is pure: the same
``FilterState`` over the same table always yields the same journals and
the same ISSN list, in input order.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from journal_search.models import ISSN_PLACEHOLDER, FilterState, Journal

logger = logging.getLogger(__name__)

BUNDLED_JOURNALS_PATH = Path(__file__).parent / "data" / "journals.json"


def _parse_journal(raw: dict[str, Any]) -> Journal:
    """Build a Journal from one dataset record, tolerating missing keys."""
    field_raw = raw.get("field_en", raw.get("field"))
    field = field_raw.strip() if isinstance(field_raw, str) else ""
    rank_raw = raw.get("abs_rank")
    rank = str(rank_raw).strip() if rank_raw is not None else ""
    issn_raw = raw.get("issn")
    return Journal(
        title=str(raw.get("title") or ""),
        issn=issn_raw if isinstance(issn_raw, str) else "",
        field=field or None,
        abs_rank=rank or None,
        is_ft50=bool(raw.get("is_ft50", False)),
        is_utd24=bool(raw.get("is_utd24", False)),
    )


def load_journals(path: Path | None = None) -> list[Journal]:
    """Load the journal allow-list from a JSON file.

    A failure to load is logged and yields an empty table; it never raises.
    """
    source = path or BUNDLED_JOURNALS_PATH
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.error("Journal dataset %s has invalid JSON: %s", source, e)
        return []
    except OSError as e:
        logger.error("Failed to load journal dataset %s: %s", source, e)
        return []

    if not isinstance(data, list):
        logger.error("Journal dataset %s must be a JSON array", source)
        return []

    journals = [_parse_journal(entry) for entry in data if isinstance(entry, dict)]
    skipped = len(data) - len(journals)
    if skipped:
        logger.warning("Skipped %d malformed journal entries in %s", skipped, source)
    logger.debug("Loaded %d journals from %s", len(journals), source)
    return journals


def matches_filter(journal: Journal, state: FilterState) -> bool:
    """Return True when a journal passes all three filter dimensions."""
    if state.ft50 or state.utd24:
        in_collection = (state.ft50 and journal.is_ft50) or (state.utd24 and journal.is_utd24)
        if not in_collection:
            return False

    if state.fields and journal.field not in state.fields:
        return False

    return not (state.ranks and (journal.abs_rank is None or journal.abs_rank not in state.ranks))


def filter_journals(journals: Iterable[Journal], state: FilterState) -> list[Journal]:
    """Filter journals by special collection, discipline and ABS rank."""
    return [journal for journal in journals if matches_filter(journal, state)]


def derive_issns(journals: Iterable[Journal]) -> list[str]:
    """Return the deduplicated ISSNs of journals usable as query identifiers.

    Values are trimmed; empty, short (4 characters or fewer) and placeholder
    values are dropped. First-seen order is preserved.
    """
    issns: dict[str, None] = {}
    for journal in journals:
        issn = journal.issn.strip()
        if len(issn) <= 4 or issn == ISSN_PLACEHOLDER:
            continue
        issns.setdefault(issn, None)
    return list(issns)


def unique_fields(journals: Iterable[Journal]) -> list[str]:
    """Return sorted distinct discipline labels present in the table."""
    return sorted({journal.field for journal in journals if journal.field})


__all__ = [
    "BUNDLED_JOURNALS_PATH",
    "derive_issns",
    "filter_journals",
    "load_journals",
    "matches_filter",
    "unique_fields",
]
