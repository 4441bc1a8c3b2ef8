"""JSON-LD (schema.org) extraction for listing and detail pages."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator
from typing import Any

from bs4 import BeautifulSoup
from pydantic import ValidationError

from propfinder.config import settings
from propfinder.schemas.listing import PropertyRecord
from propfinder.services.extractors.base import BaseExtractor
from propfinder.services.extractors.text import (
    clean_text,
    int_from_text,
    number_from_text,
    parse_area_unit,
    to_absolute_url,
)

logger = logging.getLogger(__name__)

_ACCEPTED_TYPES_RE = re.compile(
    r"RealEstateListing|Offer|Residence|Apartment|House|Product", re.IGNORECASE
)


def _first(value: Any) -> Any:
    """schema.org allows most properties to be a single value or a list."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _scalar(value: Any, key: str = "value") -> Any:
    """Unwrap QuantitativeValue-style objects such as {"value": 3}."""
    value = _first(value)
    if isinstance(value, dict):
        return value.get(key)
    return value


def _type_names(obj: dict[str, Any]) -> list[str]:
    types = obj.get("@type")
    if isinstance(types, str):
        return [types]
    if isinstance(types, list):
        return [t for t in types if isinstance(t, str)]
    return []


def _iter_candidates(node: Any) -> Iterator[dict[str, Any]]:
    """Yield every object in a parsed block, descending into arrays,
    ``@graph`` and ``ItemList`` elements."""
    if isinstance(node, list):
        for item in node:
            yield from _iter_candidates(item)
        return
    if not isinstance(node, dict):
        return

    yield node

    graph = node.get("@graph")
    if isinstance(graph, list):
        yield from _iter_candidates(graph)

    elements = node.get("itemListElement")
    if isinstance(elements, list):
        for element in elements:
            if isinstance(element, dict) and isinstance(element.get("item"), dict):
                yield from _iter_candidates(element["item"])
            else:
                yield from _iter_candidates(element)


def _is_accepted(obj: dict[str, Any]) -> bool:
    return any(_ACCEPTED_TYPES_RE.search(t) for t in _type_names(obj))


class JsonLdExtractor(BaseExtractor):
    """Maps schema.org real-estate objects onto PropertyRecord."""

    NAME = "json_ld"

    def __init__(
        self,
        base_url: str | None = None,
        max_blocks: int | None = None,
    ) -> None:
        super().__init__(base_url)
        self._max_blocks = max_blocks or settings.json_ld_max_blocks

    def extract_listings(
        self, soup: BeautifulSoup, page_url: str
    ) -> list[PropertyRecord] | None:
        results: list[PropertyRecord] = []
        seen: set[str] = set()
        for candidate in self._accepted_objects(soup, page_url):
            try:
                record = self._map_object(candidate)
            except (ValueError, OverflowError, ValidationError) as e:
                logger.debug("Skipping unmappable JSON-LD object on %s: %s", page_url, e)
                continue
            if record is None or record.url in seen:
                continue
            seen.add(record.url)
            results.append(record)
        return results or None

    def extract_detail(
        self, soup: BeautifulSoup, page_url: str
    ) -> PropertyRecord | None:
        for candidate in self._accepted_objects(soup, page_url):
            try:
                return self._map_object(candidate, fallback_url=page_url)
            except (ValueError, OverflowError, ValidationError) as e:
                logger.debug("Skipping unmappable JSON-LD object on %s: %s", page_url, e)
        return None

    def _accepted_objects(
        self, soup: BeautifulSoup, page_url: str
    ) -> Iterator[dict[str, Any]]:
        scripts = soup.find_all(
            "script", type="application/ld+json", limit=self._max_blocks
        )
        for index, script in enumerate(scripts):
            content = script.string
            if not content or not content.strip():
                continue
            try:
                parsed = json.loads(content)
            except ValueError as e:
                # One bad block must not hide the others
                logger.debug(
                    "Skipping malformed JSON-LD block %d on %s: %s",
                    index, page_url, e,
                )
                continue
            for candidate in _iter_candidates(parsed):
                if _is_accepted(candidate):
                    yield candidate

    def _map_object(
        self,
        obj: dict[str, Any],
        fallback_url: str | None = None,
    ) -> PropertyRecord | None:
        """Flatten nested address/offers/floorSize/seller into a record."""
        item = _first(obj.get("itemOffered"))
        if not isinstance(item, dict):
            item = {}

        def get(key: str) -> Any:
            value = obj.get(key)
            return value if value is not None else item.get(key)

        def get_first(*keys: str) -> Any:
            # 0 bedrooms is a value, not a miss
            for key in keys:
                value = get(key)
                if value is not None:
                    return value
            return None

        url = to_absolute_url(get("url"), self._base_url) or fallback_url
        if not url:
            return None

        address = _first(get("address"))
        if isinstance(address, dict):
            location = clean_text(
                address.get("streetAddress") or address.get("addressLocality")
            )
            city = clean_text(address.get("addressRegion"))
        else:
            location = clean_text(address)
            city = None

        offers = _first(obj.get("offers"))
        if not isinstance(offers, dict):
            offers = obj if "Offer" in _type_names(obj) else {}

        floor_size = _first(get("floorSize"))
        if isinstance(floor_size, dict):
            area = number_from_text(floor_size.get("value"))
            area_unit = parse_area_unit(
                floor_size.get("unitText") or floor_size.get("unitCode")
            )
        else:
            area = number_from_text(floor_size)
            area_unit = parse_area_unit(floor_size)

        seller = _first(obj.get("seller")) or _first(obj.get("agent"))
        agent_name = seller.get("name") if isinstance(seller, dict) else seller

        currency = clean_text(offers.get("priceCurrency"))

        return PropertyRecord(
            url=url,
            title=clean_text(get("name") or get("headline")),
            description=clean_text(get("description")),
            location=location,
            city=city,
            price=number_from_text(_scalar(offers.get("price"))),
            currency=currency.upper() if currency else None,
            bedrooms=int_from_text(
                _scalar(get_first("numberOfBedrooms", "numberOfRooms"))
            ),
            bathrooms=int_from_text(
                _scalar(get_first("numberOfBathroomsTotal", "numberOfBathrooms"))
            ),
            area=area,
            area_unit=area_unit,
            posted_date=clean_text(get("datePosted") or get("datePublished")),
            agent_name=clean_text(agent_name),
        )
