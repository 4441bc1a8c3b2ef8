from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from propfinder.models.crawl_run import CrawlRun, CrawlStatus
from propfinder.models.listing import Listing
from propfinder.schemas.crawl import CrawlRequest
from propfinder.services.crawl_controller import CrawlController, CrawlSummary, Fetcher
from propfinder.services.fetcher import PageFetcher
from propfinder.services.sinks import DatabaseSink, OutputSink
from propfinder.services.url_builder import build_search_url
from propfinder.utils.exceptions import CrawlRunNotFoundError

logger = logging.getLogger(__name__)


async def crawl_to_sink(
    request: CrawlRequest,
    sink: OutputSink,
    *,
    fetcher: Fetcher | None = None,
) -> CrawlSummary:
    """Run one crawl into ``sink``, opening a shared PageFetcher if none is given."""
    if fetcher is not None:
        return await _run_controller(request, sink, fetcher)
    async with PageFetcher() as page_fetcher:
        return await _run_controller(request, sink, page_fetcher)


async def _run_controller(
    request: CrawlRequest, sink: OutputSink, fetcher: Fetcher
) -> CrawlSummary:
    controller = CrawlController(
        request.to_criteria(),
        fetcher=fetcher,
        sink=sink,
        results_wanted=request.quota,
        max_pages=request.page_limit,
        collect_details=request.collect_details,
    )
    return await controller.run()


def start_crawl_run(db: Session, request: CrawlRequest) -> CrawlRun:
    """Validate the request and record a pending crawl run.

    Raises InvalidCriteria before anything is written.
    """
    first_url = build_search_url(request.to_criteria(), 1)
    crawl_run = CrawlRun(
        status=CrawlStatus.PENDING.value,
        request_json=request.model_dump_json(),
        start_url=first_url,
    )
    db.add(crawl_run)
    db.commit()
    db.refresh(crawl_run)
    return crawl_run


async def run_crawl(
    db: Session,
    run_id: int,
    *,
    fetcher: Fetcher | None = None,
) -> CrawlRun:
    """Execute a recorded crawl run, persisting records as they are emitted."""
    crawl_run = _get_run_or_raise(db, run_id)
    request = CrawlRequest.model_validate_json(crawl_run.request_json)

    crawl_run.status = CrawlStatus.IN_PROGRESS.value
    crawl_run.started_at = datetime.now(timezone.utc)
    db.commit()

    sink = DatabaseSink(db, crawl_run.id)
    try:
        summary = await crawl_to_sink(request, sink, fetcher=fetcher)
        crawl_run.status = CrawlStatus.COMPLETED.value
        crawl_run.saved_count = summary.saved_count
        crawl_run.pages_visited = summary.pages_visited
        crawl_run.stopped_reason = summary.stop_reason.value
    except Exception as e:
        logger.exception("Crawl run %d failed", run_id)
        crawl_run.status = CrawlStatus.FAILED.value
        crawl_run.saved_count = sink.count
        crawl_run.error_message = str(e)
    crawl_run.completed_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(crawl_run)
    return crawl_run


async def crawl(
    db: Session,
    request: CrawlRequest,
    *,
    fetcher: Fetcher | None = None,
) -> CrawlRun:
    """Record and execute a crawl run in one call."""
    crawl_run = start_crawl_run(db, request)
    return await run_crawl(db, crawl_run.id, fetcher=fetcher)


def get_crawl_run(db: Session, run_id: int) -> CrawlRun:
    return _get_run_or_raise(db, run_id)


def list_crawl_runs(db: Session, skip: int = 0, limit: int = 20) -> list[CrawlRun]:
    return (
        db.query(CrawlRun)
        .order_by(CrawlRun.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def get_run_listings(db: Session, run_id: int) -> list[Listing]:
    _get_run_or_raise(db, run_id)
    return (
        db.query(Listing)
        .filter(Listing.crawl_run_id == run_id)
        .order_by(Listing.id)
        .all()
    )


def _get_run_or_raise(db: Session, run_id: int) -> CrawlRun:
    crawl_run = db.query(CrawlRun).filter(CrawlRun.id == run_id).first()
    if not crawl_run:
        raise CrawlRunNotFoundError(f"Crawl run {run_id} not found")
    return crawl_run
