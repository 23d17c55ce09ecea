"""Bulk retrieval: multi-page fetches for select-all and page-range export.

Bulk operations always page through the API at BULK_REMOTE_PAGE_SIZE records
per request, whatever page size the user browses with, and then slice the
requested logical range back out of the concatenated pages. Pages are fetched
strictly one at a time in increasing order; the slice arithmetic relies on it.

Each operation kind owns one cancellation token. Starting an operation cancels
any in-flight operation of the same kind. Different kinds do not exclude each
other.

The countdown shown while an operation runs is an estimate. It ticks once per
second on its own clock and is not tied to fetch progress, so it may reach zero
early or stop before reaching zero.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

import httpx

from journal_search.action_messages import describe_fetch_error
from journal_search.models import (
    BULK_MAX_COUNTDOWN_SECONDS,
    BULK_MAX_RECORDS,
    BULK_REMOTE_PAGE_SIZE,
    Work,
)

logger = logging.getLogger(__name__)

FetchRemotePage = Callable[[int], Awaitable[list[Work]]]
Sleep = Callable[[float], Awaitable[None]]


class BulkKind(str, Enum):
    """Kinds of bulk operation; each holds its own cancellation slot."""

    SELECT_ALL = "select_all"
    EXPORT_RANGE = "export_range"


class PageRangeError(ValueError):
    """Raised when a page-range export request is malformed or too large."""


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(slots=True)
class BulkOutcome:
    """Result of one bulk operation."""

    status: OutcomeStatus
    works: list[Work] = field(default_factory=list)
    error_message: str = ""


# ============================================================================
# Page arithmetic
# ============================================================================


def total_pages(total_count: int, page_size: int) -> int:
    """Number of logical pages for a result count, never less than one."""
    return max(1, math.ceil(total_count / page_size))


def max_export_pages(page_size: int) -> int:
    """Logical pages one export may span under the record cap."""
    return max(1, BULK_MAX_RECORDS // page_size)


@dataclass(frozen=True, slots=True)
class RemotePagePlan:
    """Minimal covering set of fixed-size remote pages for a record range.

    ``start_index`` is inclusive and ``end_index`` exclusive, both 0-based.
    """

    start_index: int
    end_index: int
    per_page: int = BULK_REMOTE_PAGE_SIZE

    @property
    def first_page(self) -> int:
        return self.start_index // self.per_page + 1

    @property
    def last_page(self) -> int:
        return math.ceil(self.end_index / self.per_page)

    @property
    def record_count(self) -> int:
        return max(0, self.end_index - self.start_index)

    @property
    def slice_offset(self) -> int:
        return self.start_index - (self.first_page - 1) * self.per_page

    def remote_pages(self) -> range:
        """Remote page numbers to request, in order."""
        return range(self.first_page, self.last_page + 1)

    def slice(self, fetched: list[Work]) -> list[Work]:
        """Cut the requested range out of the concatenated remote pages."""
        return fetched[self.slice_offset : self.slice_offset + self.record_count]


def plan_select_all(total_count: int) -> RemotePagePlan:
    """Plan a fetch of every result, up to the record cap."""
    return RemotePagePlan(start_index=0, end_index=min(max(total_count, 0), BULK_MAX_RECORDS))


def validate_page_range(start: int, end: int, *, page_size: int, total_count: int) -> None:
    """Check a page-range export request.

    Raises:
        PageRangeError: If the range is non-positive, inverted, beyond the last
            page, or spans more pages than one export allows.
    """
    if start < 1 or end < start:
        raise PageRangeError(f"Invalid page range {start}-{end}")
    last = total_pages(total_count, page_size)
    if end > last:
        raise PageRangeError(f"Page {end} is beyond the last page ({last})")
    limit = max_export_pages(page_size)
    if end - start + 1 > limit:
        raise PageRangeError(f"Range spans {end - start + 1} pages; the limit is {limit}")


def plan_page_range(start: int, end: int, *, page_size: int, total_count: int) -> RemotePagePlan:
    """Validate a logical page range and plan the remote fetches covering it."""
    validate_page_range(start, end, page_size=page_size, total_count=total_count)
    return RemotePagePlan(
        start_index=(start - 1) * page_size,
        end_index=min(end * page_size, total_count),
    )


def parse_page_number(raw: str | int) -> int:
    """Parse user-entered page numbers.

    Raises:
        PageRangeError: If the value is not an integer.
    """
    if isinstance(raw, int):
        return raw
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise PageRangeError(f"Not a page number: {raw!r}") from exc


def estimate_countdown_seconds(record_count: int) -> int:
    """Estimated seconds for a bulk fetch, clamped to 1..40."""
    estimate = math.ceil(record_count * BULK_MAX_COUNTDOWN_SECONDS / BULK_MAX_RECORDS)
    return max(1, min(BULK_MAX_COUNTDOWN_SECONDS, estimate))


# ============================================================================
# Countdown and cancellation
# ============================================================================


class Countdown:
    """One-second-resolution countdown running on its own task."""

    def __init__(
        self,
        seconds: int,
        *,
        on_tick: Callable[[int], None] | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.remaining = seconds
        self._on_tick = on_tick
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._on_tick is not None:
            self._on_tick(self.remaining)
        self._task = asyncio.ensure_future(self._run())

    async def _run(self) -> None:
        while self.remaining > 0:
            await self._sleep(1)
            self.remaining -= 1
            if self._on_tick is not None:
                self._on_tick(self.remaining)

    def stop(self) -> None:
        """Stop ticking. Does not report a final tick."""
        self._on_tick = None
        self.remaining = 0
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


class CancellationToken:
    """Cancellation flag for one bulk operation.

    Cancelling also aborts the bound fetch task, which interrupts an
    in-flight HTTP request.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._task: asyncio.Future[list[Work]] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def bind(self, task: asyncio.Future[list[Work]]) -> None:
        self._task = task

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise asyncio.CancelledError


# ============================================================================
# Orchestrator
# ============================================================================


class BulkRetrievalOrchestrator:
    """Runs bulk fetches with per-kind preemption, countdown and cancellation."""

    def __init__(self, *, sleep: Sleep = asyncio.sleep) -> None:
        self._sleep = sleep
        self._tokens: dict[BulkKind, CancellationToken] = {}
        self._countdowns: dict[BulkKind, Countdown] = {}

    def is_running(self, kind: BulkKind) -> bool:
        return kind in self._tokens

    def cancel(self, kind: BulkKind) -> bool:
        """Cancel the in-flight operation of a kind. Returns True if one was running."""
        token = self._tokens.pop(kind, None)
        countdown = self._countdowns.pop(kind, None)
        if countdown is not None:
            countdown.stop()
        if token is None:
            return False
        token.cancel()
        logger.info("Cancelled bulk %s operation", kind.value)
        return True

    def cancel_all(self) -> None:
        for kind in list(self._tokens):
            self.cancel(kind)

    async def _fetch_pages(
        self,
        plan: RemotePagePlan,
        fetch_page: FetchRemotePage,
        token: CancellationToken,
    ) -> list[Work]:
        fetched: list[Work] = []
        for page in plan.remote_pages():
            token.raise_if_cancelled()
            fetched.extend(await fetch_page(page))
        return fetched

    async def run(
        self,
        kind: BulkKind,
        plan: RemotePagePlan,
        fetch_page: FetchRemotePage,
        *,
        on_countdown: Callable[[int], None] | None = None,
    ) -> BulkOutcome:
        """Fetch every remote page of a plan and return the sliced works.

        Never raises for transport failures or cancellation; those come back as
        ``failed`` and ``cancelled`` outcomes. A single failed page fails the
        whole operation and discards pages already fetched.
        """
        self.cancel(kind)
        token = CancellationToken()
        self._tokens[kind] = token

        countdown = Countdown(
            estimate_countdown_seconds(plan.record_count),
            on_tick=on_countdown,
            sleep=self._sleep,
        )
        self._countdowns[kind] = countdown
        countdown.start()

        pages = plan.remote_pages()
        logger.debug(
            "Bulk %s: records %d..%d via remote pages %d..%d",
            kind.value,
            plan.start_index,
            plan.end_index,
            pages.start,
            pages.stop - 1,
        )
        task = asyncio.ensure_future(self._fetch_pages(plan, fetch_page, token))
        token.bind(task)
        try:
            fetched = await task
        except asyncio.CancelledError:
            if not token.cancelled:
                raise
            return BulkOutcome(status=OutcomeStatus.CANCELLED)
        except (httpx.HTTPError, OSError, ValueError) as exc:
            logger.warning("Bulk %s fetch failed: %s", kind.value, exc, exc_info=True)
            return BulkOutcome(
                status=OutcomeStatus.FAILED,
                error_message=describe_fetch_error(exc),
            )
        finally:
            countdown.stop()
            if self._tokens.get(kind) is token:
                del self._tokens[kind]
                self._countdowns.pop(kind, None)

        if token.cancelled:
            return BulkOutcome(status=OutcomeStatus.CANCELLED)
        return BulkOutcome(status=OutcomeStatus.COMPLETED, works=plan.slice(fetched))


__all__ = [
    "BulkKind",
    "BulkOutcome",
    "BulkRetrievalOrchestrator",
    "CancellationToken",
    "Countdown",
    "OutcomeStatus",
    "PageRangeError",
    "RemotePagePlan",
    "estimate_countdown_seconds",
    "max_export_pages",
    "parse_page_number",
    "plan_page_range",
    "plan_select_all",
    "total_pages",
    "validate_page_range",
]
