from propfinder.models.crawl_run import CrawlRun, CrawlStatus
from propfinder.models.listing import Listing

__all__ = [
    "CrawlRun",
    "CrawlStatus",
    "Listing",
]
