"""Embedded application-state extraction.

PropertyFinder renders search results with Next.js, so the full result set is
serialized into the ``__NEXT_DATA__`` script block. When present this is the
cheapest and most complete source for listing cards.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from bs4 import BeautifulSoup
from pydantic import ValidationError

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

_SCRIPT_ID = "__NEXT_DATA__"
_LISTINGS_PATH = ("props", "pageProps", "searchResult", "listings")


def _first_not_none(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


def _walk(data: Any, path: tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _nested(value: Any, *keys: str) -> Any:
    """Return value[key] for the first key present when value is a dict,
    otherwise the value itself (for fields that are sometimes flattened)."""
    if isinstance(value, dict):
        return _first_not_none(*(value.get(k) for k in keys))
    return value


class EmbeddedStateExtractor(BaseExtractor):
    """Reads listing cards out of the Next.js page state."""

    NAME = "embedded_state"

    def extract_listings(
        self, soup: BeautifulSoup, page_url: str
    ) -> list[PropertyRecord] | None:
        script = soup.find("script", id=_SCRIPT_ID)
        if script is None:
            logger.debug("No %s block on %s", _SCRIPT_ID, page_url)
            return None

        try:
            data = json.loads(script.string or "")
        except ValueError as e:
            logger.debug("Unparsable %s block on %s: %s", _SCRIPT_ID, page_url, e)
            return None

        raw_listings = _walk(data, _LISTINGS_PATH)
        if not isinstance(raw_listings, list) or not raw_listings:
            return None

        results: list[PropertyRecord] = []
        for item in raw_listings:
            if not isinstance(item, dict):
                continue
            try:
                record = self._map_property(item.get("property") or item)
            except (ValueError, OverflowError, ValidationError) as e:
                logger.debug("Skipping unmappable listing on %s: %s", page_url, e)
                continue
            if record is not None:
                results.append(record)

        return results or None

    def _map_property(self, prop: dict[str, Any]) -> PropertyRecord | None:
        """Map one raw property object, tolerating alternate field names."""
        url = to_absolute_url(
            _first_not_none(
                prop.get("share_url"),
                prop.get("details_path"),
                prop.get("url"),
                prop.get("link"),
            ),
            self._base_url,
        )
        if not url:
            return None

        # Price is either {"value": ..., "currency": ...} or a flat number
        price_obj = _first_not_none(prop.get("price"), prop.get("price_value"))
        price = number_from_text(_nested(price_obj, "value", "amount"))
        currency = None
        if isinstance(price_obj, dict):
            currency = clean_text(price_obj.get("currency"))
        currency = currency or clean_text(prop.get("currency"))

        size_obj = _first_not_none(prop.get("size"), prop.get("area"))
        area = number_from_text(_nested(size_obj, "value"))
        area_unit = None
        if isinstance(size_obj, dict):
            area_unit = parse_area_unit(size_obj.get("unit"))
        area_unit = area_unit or parse_area_unit(prop.get("size_unit"))

        location_obj = prop.get("location")
        location = clean_text(_nested(location_obj, "full_name", "name"))
        city = None
        if isinstance(location_obj, dict):
            city = clean_text(_nested(location_obj.get("city"), "name"))

        agent = prop.get("agent") or prop.get("broker")

        return PropertyRecord(
            url=url,
            title=clean_text(_first_not_none(prop.get("title"), prop.get("name"))),
            price=price,
            currency=currency.upper() if currency else None,
            location=location,
            city=city,
            bedrooms=int_from_text(
                _first_not_none(prop.get("bedrooms"), prop.get("bedrooms_value"))
            ),
            bathrooms=int_from_text(
                _first_not_none(prop.get("bathrooms"), prop.get("bathrooms_value"))
            ),
            area=area,
            area_unit=area_unit,
            agent_name=clean_text(_nested(agent, "name")),
            posted_date=clean_text(
                _first_not_none(prop.get("listed_date"), prop.get("date_insert"))
            ),
            description=clean_text(prop.get("description")),
            property_type=clean_text(
                _nested(prop.get("property_type"), "name")
            ),
        )
