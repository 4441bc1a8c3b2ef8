"""Crawl control loop: pagination, dedup, detail enrichment and quota.

Listing pages and detail pages are uniform steps on one ``asyncio.Queue``
consumed by a bounded pool of worker tasks. Page ``n + 1`` is only enqueued
once page ``n``'s cards have been processed, so listing pages are always
requested in increasing order; detail pages complete in any order.

All shared state lives in ``CrawlState`` and every check-then-mutate on it
happens under ``CrawlState.lock``. Sinks are synchronous, so emission and the
quota check happen in the same critical section.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from propfinder.config import settings
from propfinder.schemas.crawl import SearchCriteria
from propfinder.schemas.listing import PropertyRecord
from propfinder.services.extractors.chain import ExtractorChain
from propfinder.services.fetcher import FetchResult
from propfinder.services.record_merger import merge_records
from propfinder.services.sinks import OutputSink
from propfinder.services.url_builder import build_search_url, check_criteria
from propfinder.utils.exceptions import FetchError

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    async def fetch(
        self, url: str, headers: dict[str, str] | None = None
    ) -> FetchResult: ...


class StopReason(StrEnum):
    QUOTA_REACHED = "quota_reached"
    PAGE_CAP = "page_cap"
    REPEATED_PAGE = "repeated_page"
    EXHAUSTED = "exhausted"


@dataclass
class ListingStep:
    page: int
    url: str


@dataclass
class DetailStep:
    url: str
    card: PropertyRecord


@dataclass
class CrawlState:
    quota: float
    max_pages: int
    seen_urls: set[str] = field(default_factory=set)
    enqueued_pages: set[str] = field(default_factory=set)
    saved_count: int = 0
    current_page: int = 0
    pages_visited: int = 0
    # Detail steps scheduled but not yet emitted
    pending_details: int = 0
    # Set once the quota is met; queued steps are then dropped unprocessed
    stopped: bool = False
    stop_reason: StopReason | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def quota_reached(self) -> bool:
        return self.saved_count >= self.quota

    @property
    def quota_committed(self) -> bool:
        """True when saved plus already-scheduled records cover the quota."""
        return self.saved_count + self.pending_details >= self.quota


@dataclass(frozen=True)
class CrawlSummary:
    saved_count: int
    pages_visited: int
    stop_reason: StopReason


class CrawlController:
    """Drives one crawl from page 1 to completion.

    Usage::

        async with PageFetcher() as fetcher:
            controller = CrawlController(criteria, fetcher=fetcher, sink=sink)
            summary = await controller.run()
    """

    def __init__(
        self,
        criteria: SearchCriteria,
        *,
        fetcher: Fetcher,
        sink: OutputSink,
        results_wanted: float = math.inf,
        max_pages: int = 20,
        collect_details: bool = True,
        max_concurrency: int | None = None,
        chain: ExtractorChain | None = None,
        base_url: str | None = None,
        progress_log_every: int | None = None,
    ) -> None:
        if max_concurrency is None:
            max_concurrency = settings.max_concurrency
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._criteria = criteria
        self._fetcher = fetcher
        self._sink = sink
        self._collect_details = collect_details
        self._max_concurrency = max_concurrency
        self._base_url = base_url or settings.base_url
        self._chain = chain or ExtractorChain(base_url=self._base_url)
        self._progress_every = progress_log_every or settings.progress_log_every
        self._state = CrawlState(quota=results_wanted, max_pages=max_pages)

    @property
    def state(self) -> CrawlState:
        return self._state

    # -- public API ------------------------------------------------------------

    async def run(self) -> CrawlSummary:
        """
        Crawl until the quota, the page cap or the last page is reached.

        Raises:
            InvalidCriteria: before any fetch when the criteria are unusable.
        """
        check_criteria(self._criteria)
        first_url = build_search_url(self._criteria, 1, base_url=self._base_url)

        logger.info(
            "Starting crawl: location=%s, start_url=%s, type=%s, category=%s, "
            "results_wanted=%s, max_pages=%d, collect_details=%s",
            self._criteria.location, self._criteria.start_url,
            self._criteria.property_type, self._criteria.category_type,
            self._state.quota, self._state.max_pages, self._collect_details,
        )

        queue: asyncio.Queue[ListingStep | DetailStep] = asyncio.Queue()
        self._state.enqueued_pages.add(first_url)
        queue.put_nowait(ListingStep(page=1, url=first_url))

        workers = [
            asyncio.create_task(self._worker(queue), name=f"crawl-worker-{i}")
            for i in range(self._max_concurrency)
        ]
        try:
            await queue.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        state = self._state
        summary = CrawlSummary(
            saved_count=state.saved_count,
            pages_visited=state.pages_visited,
            stop_reason=state.stop_reason or StopReason.EXHAUSTED,
        )
        logger.info(
            "Crawl completed: saved=%d, pages=%d, reason=%s",
            summary.saved_count, summary.pages_visited, summary.stop_reason,
        )
        return summary

    # -- workers ---------------------------------------------------------------

    async def _worker(self, queue: asyncio.Queue[ListingStep | DetailStep]) -> None:
        while True:
            step = await queue.get()
            try:
                if self._state.stopped:
                    logger.debug("Crawl stopped, dropping %s", step.url)
                elif isinstance(step, ListingStep):
                    await self._process_listing(step, queue)
                else:
                    await self._process_detail(step)
            except Exception:
                logger.exception("Unexpected error while processing %s", step.url)
            finally:
                queue.task_done()

    async def _process_listing(
        self,
        step: ListingStep,
        queue: asyncio.Queue[ListingStep | DetailStep],
    ) -> None:
        logger.info("Listing page %d: %s", step.page, step.url)
        try:
            page = await self._fetcher.fetch(step.url)
        except FetchError as e:
            logger.warning(
                "Listing page %d failed, continuing without its cards: %s",
                step.page, e,
            )
            cards: list[PropertyRecord] = []
        else:
            try:
                cards = self._chain.extract_listings(page.body, step.url)
            except Exception:
                logger.exception(
                    "Extraction failed on listing page %d, continuing without its cards",
                    step.page,
                )
                cards = []

        if not cards:
            logger.info("No cards found on listing page %d (%s)", step.page, step.url)

        state = self._state
        async with state.lock:
            state.pages_visited += 1
            state.current_page = max(state.current_page, step.page)

            for card in cards:
                if state.stopped:
                    break
                if card.url in state.seen_urls:
                    continue
                if not self._collect_details:
                    state.seen_urls.add(card.url)
                    self._emit_locked(card)
                    continue
                if state.quota_committed:
                    break
                state.seen_urls.add(card.url)
                state.pending_details += 1
                queue.put_nowait(DetailStep(url=card.url, card=card))

            next_step = self._next_listing_step_locked(step.page)

        if next_step is not None:
            queue.put_nowait(next_step)

    async def _process_detail(self, step: DetailStep) -> None:
        record = step.card
        try:
            page = await self._fetcher.fetch(step.url)
            detail = self._chain.extract_detail(page.body, step.url)
            if detail is not None:
                record = merge_records(step.card, detail, url=step.url)
        except FetchError as e:
            logger.warning(
                "Detail page failed, saving the listing card only: %s", e
            )
        except Exception:
            logger.exception(
                "Detail extraction failed on %s, saving the listing card only", step.url
            )
        finally:
            # The card is saved whatever happened to its detail page
            async with self._state.lock:
                self._state.pending_details -= 1
                self._emit_locked(record)

    # -- state transitions (caller holds the lock) -----------------------------

    def _emit_locked(self, record: PropertyRecord) -> bool:
        state = self._state
        if state.quota_reached:
            logger.debug("Quota already met, not saving %s", record.url)
            return False

        self._sink.emit(record.finalized(self._criteria.property_type))
        state.saved_count += 1

        if state.saved_count % self._progress_every == 0:
            logger.info("Progress: %d records saved", state.saved_count)

        if state.quota_reached:
            logger.info("Reached desired results (%d), stopping", state.saved_count)
            state.stopped = True
            state.stop_reason = StopReason.QUOTA_REACHED
        return True

    def _next_listing_step_locked(self, page: int) -> ListingStep | None:
        state = self._state
        if state.stopped:
            return None
        if state.quota_committed:
            logger.info(
                "Quota covered by %d saved and %d pending records, not paginating",
                state.saved_count, state.pending_details,
            )
            return None
        if page >= state.max_pages:
            logger.info("Reached max pages (%d)", state.max_pages)
            state.stop_reason = StopReason.PAGE_CAP
            return None

        next_page = page + 1
        next_url = build_search_url(self._criteria, next_page, base_url=self._base_url)
        if next_url in state.enqueued_pages:
            logger.warning("Page URL already enqueued, stopping pagination: %s", next_url)
            state.stop_reason = StopReason.REPEATED_PAGE
            return None

        state.enqueued_pages.add(next_url)
        logger.info("Enqueued next page %d", next_page)
        return ListingStep(page=next_page, url=next_url)
