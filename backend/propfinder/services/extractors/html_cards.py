"""CSS-selector heuristics over the rendered DOM.

This is the most tolerant and most brittle tier. Selectors match on
``data-testid`` and class-name fragments rather than exact class names, since
the site ships hashed CSS-module classes that change with every deploy.
"""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from propfinder.schemas.listing import PropertyRecord
from propfinder.services.extractors.base import BaseExtractor
from propfinder.services.extractors.text import (
    clean_text,
    int_from_text,
    number_from_text,
    parse_area_unit,
    parse_price,
    to_absolute_url,
)

logger = logging.getLogger(__name__)

# Tried in order; the first selector that matches anything wins
CARD_SELECTORS: tuple[str, ...] = (
    'li[data-testid="list-item"]',
    "article",
    '[data-testid*="card"]',
    '[data-testid*="result"]',
    '[class*="ResultCard"]',
    '[class*="card"]',
)

CARD_LINK = 'a[href*="/en/"]'
TITLE = 'h2, h3, [class*="title"], [data-testid*="title"]'
PRICE = '[data-testid*="price"], [class*="price"]'
LOCATION = '[data-testid*="location"], [class*="location"], [class*="address"]'
BEDROOMS = '[data-testid*="bed"], [class*="bed"]'
BATHROOMS = '[data-testid*="bath"], [class*="bath"]'
AREA = '[data-testid*="area"], [class*="area"], [class*="sqft"], [class*="meter"]'
AGENT = '[data-testid*="agent"], [class*="agent"]'

DETAIL_TITLE = 'h1, [data-testid*="title"], [class*="title"]'
DETAIL_BEDROOMS = f'{BEDROOMS}, [itemprop="numberOfRooms"]'
DETAIL_BATHROOMS = f'{BATHROOMS}, [itemprop="numberOfBathroomsTotal"]'
DETAIL_AGENT = f'{AGENT}, [itemprop="seller"]'
DETAIL_POSTED = '[data-testid*="posted"], [class*="posted"], [class*="date"]'
DETAIL_DESCRIPTION = '[data-testid*="description"], [class*="description"]'


def _text(root: Tag, selector: str) -> str | None:
    """Text of the first match, or None when nothing matches."""
    element = root.select_one(selector)
    if element is None:
        return None
    return clean_text(element.get_text(" "))


def _meta(root: Tag, selector: str) -> str | None:
    element = root.select_one(selector)
    if element is None:
        return None
    return clean_text(element.get("content"))


class HtmlCardExtractor(BaseExtractor):
    """Selector-based fallback for both listing cards and detail pages."""

    NAME = "html_cards"

    def extract_listings(
        self, soup: BeautifulSoup, page_url: str
    ) -> list[PropertyRecord] | None:
        cards: list[Tag] = []
        for selector in CARD_SELECTORS:
            cards = soup.select(selector)
            if cards:
                logger.debug(
                    "Card selector %r matched %d elements on %s",
                    selector, len(cards), page_url,
                )
                break

        results: list[PropertyRecord] = []
        for card in cards:
            try:
                record = self._parse_card(card)
            except (ValueError, OverflowError, ValidationError) as e:
                logger.debug("Skipping unparsable card on %s: %s", page_url, e)
                continue
            if record is not None:
                results.append(record)
        return results or None

    def _parse_card(self, card: Tag) -> PropertyRecord | None:
        link = card.select_one(CARD_LINK)
        href = link.get("href") if link is not None else card.get("href")
        url = to_absolute_url(href, self._base_url)
        if not url:
            return None

        price, currency = parse_price(_text(card, PRICE))
        area_text = _text(card, AREA)

        return PropertyRecord(
            url=url,
            title=_text(card, TITLE),
            price=price,
            currency=currency if price is not None else None,
            location=_text(card, LOCATION),
            bedrooms=int_from_text(_text(card, BEDROOMS)),
            bathrooms=int_from_text(_text(card, BATHROOMS)),
            area=number_from_text(area_text),
            area_unit=parse_area_unit(area_text),
            agent_name=_text(card, AGENT),
        )

    def extract_detail(
        self, soup: BeautifulSoup, page_url: str
    ) -> PropertyRecord | None:
        price_text = _text(soup, PRICE) or _meta(soup, 'meta[itemprop="price"]')
        price, currency = parse_price(price_text)

        area_text = _text(soup, AREA) or _text(soup, '[itemprop="floorSize"]')

        description_parts = [
            clean_text(el.get_text(" ")) for el in soup.select(DETAIL_DESCRIPTION)
        ]
        description = clean_text(" ".join(p for p in description_parts if p))

        return PropertyRecord(
            url=page_url,
            title=_text(soup, DETAIL_TITLE),
            price=price,
            currency=currency if price is not None else None,
            location=(
                _text(soup, LOCATION) or _meta(soup, 'meta[itemprop="address"]')
            ),
            bedrooms=int_from_text(_text(soup, DETAIL_BEDROOMS)),
            bathrooms=int_from_text(_text(soup, DETAIL_BATHROOMS)),
            area=number_from_text(area_text),
            area_unit=parse_area_unit(area_text),
            agent_name=_text(soup, DETAIL_AGENT),
            posted_date=(
                _text(soup, DETAIL_POSTED)
                or _meta(soup, 'meta[itemprop="datePosted"]')
            ),
            description=(
                description or _meta(soup, 'meta[name="description"]')
            ),
        )
