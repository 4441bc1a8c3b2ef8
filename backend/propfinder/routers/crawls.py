from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from propfinder.database import get_db
from propfinder.schemas.crawl import CrawlRequest, CrawlRunResponse
from propfinder.schemas.listing import ListingResponse
from propfinder.services import crawl_service
from propfinder.utils.exceptions import CrawlRunNotFoundError, InvalidCriteria

router = APIRouter(prefix="/crawls")


@router.post("", response_model=CrawlRunResponse)
async def create_crawl(
    request: CrawlRequest,
    db: Session = Depends(get_db),
) -> CrawlRunResponse:
    """Run a crawl to completion and return the finished run."""
    try:
        crawl_run = await crawl_service.crawl(db, request)
    except InvalidCriteria as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return CrawlRunResponse.model_validate(crawl_run)


@router.get("", response_model=list[CrawlRunResponse])
def list_crawls(
    skip: int = 0, limit: int = 20, db: Session = Depends(get_db)
) -> list[CrawlRunResponse]:
    runs = crawl_service.list_crawl_runs(db, skip, limit)
    return [CrawlRunResponse.model_validate(r) for r in runs]


@router.get("/{run_id}", response_model=CrawlRunResponse)
def get_crawl(run_id: int, db: Session = Depends(get_db)) -> CrawlRunResponse:
    try:
        crawl_run = crawl_service.get_crawl_run(db, run_id)
        return CrawlRunResponse.model_validate(crawl_run)
    except CrawlRunNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.get("/{run_id}/listings", response_model=list[ListingResponse])
def get_crawl_listings(
    run_id: int, db: Session = Depends(get_db)
) -> list[ListingResponse]:
    try:
        listings = crawl_service.get_run_listings(db, run_id)
    except CrawlRunNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return [ListingResponse.model_validate(l) for l in listings]
