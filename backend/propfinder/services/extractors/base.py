"""Base class for page extraction strategies."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from bs4 import BeautifulSoup

from propfinder.config import settings
from propfinder.schemas.listing import PropertyRecord

logger = logging.getLogger(__name__)


class BaseExtractor(ABC):
    """Abstract base class for one extraction tier.

    A tier returns None when it finds nothing on a page. That is an expected
    outcome and the chain moves on to the next tier.
    """

    # Subclasses must define this
    NAME: str = ""

    def __init__(self, base_url: str | None = None) -> None:
        """Initialize the extractor."""
        if not self.NAME:
            raise ValueError(f"{self.__class__.__name__} must define NAME")
        self._base_url = base_url or settings.base_url

    @abstractmethod
    def extract_listings(
        self, soup: BeautifulSoup, page_url: str
    ) -> list[PropertyRecord] | None:
        """
        Extract property cards from a search-result page.

        Args:
            soup: Parsed page
            page_url: URL the page was fetched from

        Returns:
            Records that carry an absolute ``url``, or None when this tier
            finds nothing.
        """
        pass

    def extract_detail(
        self, soup: BeautifulSoup, page_url: str
    ) -> PropertyRecord | None:
        """
        Extract a single record from a detail page.

        Default implementation supports listing pages only and returns None.
        """
        return None
