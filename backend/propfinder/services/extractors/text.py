"""Shared text and number normalizers for the extractors."""

from __future__ import annotations

import math
import re
from typing import Any
from urllib.parse import urldefrag, urljoin, urlsplit

from propfinder.schemas.listing import DEFAULT_CURRENCY

_WHITESPACE_RE = re.compile(r"\s+")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
# Not inside a word, so "Abu Dhabi" is not a currency but "AED1,200" is
_CURRENCY_RE = re.compile(r"(?<![a-z])(?:AED|DHS|DH)(?![a-z])", re.IGNORECASE)

_SQFT_RE = re.compile(r"sq\.?\s?ft|sqft|ft2|ft²|square\s+feet|\bftk\b", re.IGNORECASE)
_SQM_RE = re.compile(r"sq\.?\s?m\b|sqm|m2|m²|square\s+met|\bmtk\b", re.IGNORECASE)


def clean_text(value: Any) -> str | None:
    """Collapse whitespace and trim. Empty or missing input gives None.

    Examples:
        "  2  Bedrooms\\n" -> "2 Bedrooms"
        "   " -> None
    """
    if value is None:
        return None
    cleaned = _WHITESPACE_RE.sub(" ", str(value)).strip()
    return cleaned or None


def number_from_text(value: Any) -> float | None:
    """Return the first number in a string like 'AED 1,250,000' or '850.5 sqft'.

    Thousands separators are dropped before matching. Finite numbers pass
    through; NaN and infinities give None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    match = _NUMBER_RE.search(str(value).replace(",", ""))
    if match:
        number = float(match.group())
        return number if math.isfinite(number) else None
    return None


def int_from_text(value: Any) -> int | None:
    """Bedroom/bathroom style counts: first number, truncated, never negative."""
    number = number_from_text(value)
    if number is None or number < 0:
        return None
    return int(number)


def parse_price(value: Any) -> tuple[float | None, str]:
    """Split a price string into (amount, currency).

    Examples:
        "AED 1,200,000" -> (1200000.0, "AED")
        "85,000 dhs/year" -> (85000.0, "DHS")
        "1.5M" -> (1.5, "AED")
    """
    price = number_from_text(value)
    match = _CURRENCY_RE.search(str(value)) if value is not None else None
    currency = match.group().upper() if match else DEFAULT_CURRENCY
    return price, currency


def parse_area_unit(value: Any) -> str | None:
    """Map free-text or schema.org unit codes to "sqft" or "sqm"."""
    text = clean_text(value)
    if not text:
        return None
    if _SQFT_RE.search(text):
        return "sqft"
    if _SQM_RE.search(text):
        return "sqm"
    return None


def to_absolute_url(href: Any, base_url: str) -> str | None:
    """Resolve a link against the site root and drop the fragment.

    Returns None for empty links and for non-http schemes (tel:, mailto:,
    javascript:).
    """
    href = clean_text(href)
    if not href:
        return None
    try:
        absolute = urldefrag(urljoin(base_url.rstrip("/") + "/", href)).url
        parts = urlsplit(absolute)
    except ValueError:
        # e.g. an unbalanced "[" in the host
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return absolute
