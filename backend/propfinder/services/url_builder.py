"""Search URL construction for PropertyFinder result pages."""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from propfinder.config import settings
from propfinder.schemas.crawl import CategoryType, SearchCriteria
from propfinder.utils.exceptions import InvalidCriteria

PAGE_PARAM = "page"
MIN_PRICE_PARAM = "pf"
MAX_PRICE_PARAM = "pt"

_CATEGORY_SEGMENTS = {
    CategoryType.SALE: ("buy", "for-sale"),
    CategoryType.RENT: ("rent", "for-rent"),
}


def slugify(value: str) -> str:
    """Lowercase and hyphenate a free-text value for use in a URL path.

    Examples:
        "Dubai Marina" -> "dubai-marina"
        "Jumeirah Village Circle (JVC)" -> "jumeirah-village-circle-jvc"
        "  Abu Dhabi!! " -> "abu-dhabi"
    """
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def check_criteria(criteria: SearchCriteria) -> None:
    """Raise InvalidCriteria unless the criteria can produce a search URL."""
    if criteria.category_type not in (CategoryType.SALE, CategoryType.RENT):
        raise InvalidCriteria(
            f"categoryType must be 1 (sale) or 2 (rent), got {criteria.category_type!r}"
        )

    if criteria.start_url:
        parts = urlsplit(criteria.start_url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise InvalidCriteria(
                f"startUrl must be an absolute http(s) URL, got {criteria.start_url!r}"
            )
        return

    if not criteria.location or not slugify(criteria.location):
        raise InvalidCriteria('Provide either "startUrl" or "location".')


def _with_page(url: str, page: int) -> str:
    """Overwrite the page parameter in place, appending it when absent."""
    parts = urlsplit(url)
    query: list[tuple[str, str]] = []
    replaced = False
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        if key == PAGE_PARAM:
            if not replaced:
                query.append((PAGE_PARAM, str(page)))
                replaced = True
            continue
        query.append((key, value))
    if not replaced:
        query.append((PAGE_PARAM, str(page)))
    return urlunsplit(parts._replace(query=urlencode(query)))


def build_search_url(
    criteria: SearchCriteria,
    page: int,
    *,
    base_url: str | None = None,
) -> str:
    """Build the URL of search-result page ``page`` for ``criteria``.

    A caller-supplied start URL keeps all of its own filters and sort order;
    only the page parameter changes. Otherwise the path is synthesized from
    the location, property type and category, e.g.
    ``/en/buy/apartment-for-sale-dubai-marina.html?page=2``.
    """
    check_criteria(criteria)

    if criteria.start_url:
        return _with_page(criteria.start_url, page)

    category_slug, action_slug = _CATEGORY_SEGMENTS[CategoryType(criteria.category_type)]
    type_slug = slugify(criteria.property_type or "") or "property"
    location_slug = slugify(criteria.location or "")

    root = (base_url or settings.base_url).rstrip("/")
    path = f"/en/{category_slug}/{type_slug}-{action_slug}-{location_slug}.html"

    query: list[tuple[str, str]] = []
    if criteria.min_price is not None:
        query.append((MIN_PRICE_PARAM, str(criteria.min_price)))
    if criteria.max_price is not None:
        query.append((MAX_PRICE_PARAM, str(criteria.max_price)))
    query.append((PAGE_PARAM, str(page)))

    return f"{root}{path}?{urlencode(query)}"
