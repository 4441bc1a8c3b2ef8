from fastapi import APIRouter

from propfinder.config import settings
from propfinder.services.extractors import ExtractorChain

router = APIRouter()


@router.get("/health")
def health_check() -> dict:
    """Liveness plus the crawl target and the active listing tiers."""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "target": settings.base_url,
        "extractor_tiers": ExtractorChain.tier_names(),
    }
