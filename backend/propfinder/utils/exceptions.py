"""Exception hierarchy for the crawler.

Only ``ConfigurationError`` is meant to reach the process boundary; every
other error is contained per page or per record by the crawl controller.
"""

from __future__ import annotations


class CrawlerError(Exception):
    """Base exception for crawler errors."""

    pass


class ConfigurationError(CrawlerError):
    """Raised before any fetch when the run configuration is unusable."""

    pass


class InvalidCriteria(ConfigurationError):
    """Raised when search criteria cannot produce a search URL."""

    pass


class FetchError(CrawlerError):
    """Raised when a page could not be fetched after all retries."""

    def __init__(self, url: str, message: str, status: int | None = None) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status = status


class ProxyError(CrawlerError):
    """Raised when no proxy endpoint can be supplied."""

    pass


class CrawlRunNotFoundError(CrawlerError):
    pass
