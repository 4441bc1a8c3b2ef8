"""Ordered extraction tiers combined by "first non-empty wins"."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bs4 import BeautifulSoup

from propfinder.schemas.listing import PropertyRecord
from propfinder.services.extractors.base import BaseExtractor
from propfinder.services.extractors.embedded_state import EmbeddedStateExtractor
from propfinder.services.extractors.html_cards import HtmlCardExtractor
from propfinder.services.extractors.json_ld import JsonLdExtractor
from propfinder.services.record_merger import merge_records

if TYPE_CHECKING:
    from typing import Type

logger = logging.getLogger(__name__)


class ExtractorChain:
    """Runs extraction tiers in priority order.

    Listing pages try every listing tier and keep the first non-empty
    result; tiers are never merged with each other. Detail pages skip the
    embedded-state tier and enrich the selector record with JSON-LD.
    """

    # Default tier order, most structured first
    _listing_tiers: list[Type[BaseExtractor]] = [
        EmbeddedStateExtractor,
        JsonLdExtractor,
        HtmlCardExtractor,
    ]
    _structured_detail_tier: Type[BaseExtractor] = JsonLdExtractor
    _fallback_detail_tier: Type[BaseExtractor] = HtmlCardExtractor

    def __init__(
        self,
        tiers: list[BaseExtractor] | None = None,
        *,
        structured_detail: BaseExtractor | None = None,
        fallback_detail: BaseExtractor | None = None,
        base_url: str | None = None,
    ) -> None:
        self.tiers = tiers or [cls(base_url) for cls in self._listing_tiers]
        self.structured_detail = structured_detail or self._structured_detail_tier(base_url)
        self.fallback_detail = fallback_detail or self._fallback_detail_tier(base_url)

    @classmethod
    def register(cls, extractor_class: Type[BaseExtractor], position: int | None = None) -> None:
        """Insert a listing tier class at ``position`` (appended by default)."""
        if not issubclass(extractor_class, BaseExtractor):
            raise TypeError(
                f"{extractor_class.__name__} must be a subclass of BaseExtractor"
            )
        tiers = list(cls._listing_tiers)
        tiers.insert(len(tiers) if position is None else position, extractor_class)
        cls._listing_tiers = tiers
        logger.info("Registered extractor tier: %s", extractor_class.__name__)

    @classmethod
    def reset(cls) -> None:
        """Restore the default tier order."""
        cls._listing_tiers = [
            EmbeddedStateExtractor,
            JsonLdExtractor,
            HtmlCardExtractor,
        ]

    @classmethod
    def tier_names(cls) -> list[str]:
        return [tier.NAME for tier in cls._listing_tiers]

    def extract_listings(self, html: str, page_url: str) -> list[PropertyRecord]:
        soup = BeautifulSoup(html, "html.parser")
        for tier in self.tiers:
            records = tier.extract_listings(soup, page_url)
            if records:
                logger.info(
                    "Extracted %d cards from %s via %s",
                    len(records), page_url, tier.NAME,
                )
                return records
            logger.debug("Tier %s found nothing on %s", tier.NAME, page_url)
        return []

    def extract_detail(self, html: str, page_url: str) -> PropertyRecord | None:
        soup = BeautifulSoup(html, "html.parser")
        structured = self.structured_detail.extract_detail(soup, page_url)
        fallback = self.fallback_detail.extract_detail(soup, page_url)
        if structured is None:
            return fallback
        if fallback is None:
            return structured
        return merge_records(fallback, structured, url=page_url)
