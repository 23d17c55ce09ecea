"""Response parsing for OpenAlex works and abstract reconstruction."""

from __future__ import annotations

import logging
from typing import Any

from journal_search.models import Work, WorksPage

logger = logging.getLogger(__name__)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def reconstruct_abstract(index: dict[str, list[int]] | None) -> str:
    """Rebuild abstract text from an OpenAlex inverted index.

    Every token is written into each slot it lists; slots no token claims stay
    empty and still contribute a separator, so ``{"x": [2], "y": [0]}`` gives
    ``"y  x"``. The output must stay byte-stable, so gaps are not compacted.
    """
    if not index:
        return ""
    max_position = -1
    for positions in index.values():
        for pos in positions:
            if _is_int(pos) and pos > max_position:
                max_position = pos
    words = [""] * (max_position + 1)
    for word, positions in index.items():
        for pos in positions:
            if _is_int(pos) and pos >= 0:
                words[pos] = word
    return " ".join(words).strip()


def _str_or_empty(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _int_or_none(value: Any) -> int | None:
    return value if _is_int(value) else None


def _parse_inverted_index(raw: Any) -> dict[str, list[int]]:
    if not isinstance(raw, dict):
        return {}
    return {
        str(word): [pos for pos in positions if _is_int(pos)]
        for word, positions in raw.items()
        if isinstance(positions, list)
    }


def parse_work(data: dict[str, Any]) -> Work:
    """Parse one OpenAlex work object. Missing or mistyped fields become empty."""
    location = data.get("primary_location")
    source = location.get("source") if isinstance(location, dict) else None
    if not isinstance(source, dict):
        source = {}
    issns_raw = source.get("issn")
    source_issns = (
        tuple(i for i in issns_raw if isinstance(i, str)) if isinstance(issns_raw, list) else ()
    )

    authors: list[str] = []
    for authorship in data.get("authorships") or []:
        if not isinstance(authorship, dict):
            continue
        author = authorship.get("author")
        if isinstance(author, dict) and isinstance(author.get("display_name"), str):
            authors.append(author["display_name"])

    biblio = data.get("biblio")
    if not isinstance(biblio, dict):
        biblio = {}

    doi = data.get("doi")
    if not doi:
        ids = data.get("ids")
        doi = ids.get("doi") if isinstance(ids, dict) else None

    return Work(
        id=_str_or_empty(data.get("id")),
        display_name=_str_or_empty(data.get("display_name")),
        publication_year=_int_or_none(data.get("publication_year")),
        cited_by_count=_int_or_none(data.get("cited_by_count")) or 0,
        doi=_str_or_empty(doi),
        source_name=_str_or_empty(source.get("display_name")),
        source_issns=source_issns,
        authors=tuple(authors),
        volume=_str_or_empty(biblio.get("volume")),
        issue=_str_or_empty(biblio.get("issue")),
        first_page=_str_or_empty(biblio.get("first_page")),
        last_page=_str_or_empty(biblio.get("last_page")),
        abstract_inverted_index=_parse_inverted_index(data.get("abstract_inverted_index")),
    )


def parse_works_page(data: Any) -> WorksPage:
    """Parse a works list response into a WorksPage.

    Raises:
        ValueError: If the payload is not a JSON object.
    """
    if not isinstance(data, dict):
        raise ValueError("OpenAlex response is not a JSON object")
    results_raw = data.get("results") or []
    if not isinstance(results_raw, list):
        results_raw = []
    results = [parse_work(item) for item in results_raw if isinstance(item, dict)]
    meta = data.get("meta")
    count = _int_or_none(meta.get("count")) if isinstance(meta, dict) else None
    if len(results) != len(results_raw):
        logger.debug("Dropped %d non-object results", len(results_raw) - len(results))
    return WorksPage(results=results, count=count or 0)


__all__ = [
    "parse_work",
    "parse_works_page",
    "reconstruct_abstract",
]
