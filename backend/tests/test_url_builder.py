"""Tests for search URL construction and criteria validation."""

from __future__ import annotations

from urllib.parse import parse_qsl, urlsplit

import pytest

from propfinder.schemas.crawl import CategoryType, SearchCriteria
from propfinder.services.url_builder import build_search_url, check_criteria, slugify
from propfinder.utils.exceptions import ConfigurationError, InvalidCriteria

BASE = "https://www.propertyfinder.ae"


class TestSlugify:
    def test_simple(self):
        assert slugify("Dubai") == "dubai"

    def test_runs_collapse_to_one_hyphen(self):
        assert slugify("Jumeirah Village Circle (JVC)") == "jumeirah-village-circle-jvc"

    def test_edges_trimmed(self):
        assert slugify("  Abu Dhabi!! ") == "abu-dhabi"

    def test_nothing_left(self):
        assert slugify("!!!") == ""


class TestSynthesizedUrl:
    def test_sale(self):
        criteria = SearchCriteria(location="Dubai Marina", property_type="apartment")
        assert build_search_url(criteria, 1, base_url=BASE) == (
            "https://www.propertyfinder.ae/en/buy/apartment-for-sale-dubai-marina.html?page=1"
        )

    def test_rent(self):
        criteria = SearchCriteria(
            location="Abu Dhabi", property_type="Villa", category_type=CategoryType.RENT
        )
        assert build_search_url(criteria, 3, base_url=BASE) == (
            "https://www.propertyfinder.ae/en/rent/villa-for-rent-abu-dhabi.html?page=3"
        )

    def test_price_filters_before_page(self):
        criteria = SearchCriteria(location="dubai", min_price=500000, max_price=2000000)
        url = build_search_url(criteria, 2, base_url=BASE)
        assert url.endswith("?pf=500000&pt=2000000&page=2")

    def test_blank_property_type(self):
        criteria = SearchCriteria(location="dubai", property_type="")
        assert "/en/buy/property-for-sale-dubai.html" in build_search_url(criteria, 1, base_url=BASE)

    def test_deterministic(self):
        criteria = SearchCriteria(location="Dubai Hills Estate", min_price=1)
        first = build_search_url(criteria, 7, base_url=BASE)
        second = build_search_url(criteria, 7, base_url=BASE)
        assert first == second

    def test_pages_differ(self):
        criteria = SearchCriteria(location="dubai")
        assert build_search_url(criteria, 1, base_url=BASE) != build_search_url(
            criteria, 2, base_url=BASE
        )


class TestStartUrl:
    def test_page_overwritten_in_place(self):
        criteria = SearchCriteria(
            start_url="https://www.propertyfinder.ae/en/search?c=1&page=1&ob=mr"
        )
        url = build_search_url(criteria, 4)
        assert parse_qsl(urlsplit(url).query) == [("c", "1"), ("page", "4"), ("ob", "mr")]

    def test_page_appended_when_absent(self):
        criteria = SearchCriteria(
            start_url="https://www.propertyfinder.ae/en/search?c=2&t=1&fu=0"
        )
        url = build_search_url(criteria, 2)
        assert parse_qsl(urlsplit(url).query) == [
            ("c", "2"), ("t", "1"), ("fu", "0"), ("page", "2"),
        ]

    def test_start_url_wins_over_location(self):
        criteria = SearchCriteria(
            start_url="https://www.propertyfinder.ae/en/search?c=1",
            location="dubai",
        )
        assert build_search_url(criteria, 1).startswith(
            "https://www.propertyfinder.ae/en/search?"
        )

    def test_path_untouched(self):
        start = "https://www.propertyfinder.ae/en/rent/villas-for-rent-dubai.html"
        criteria = SearchCriteria(start_url=start)
        assert build_search_url(criteria, 5) == start + "?page=5"


class TestCheckCriteria:
    def test_missing_location_and_start_url(self):
        with pytest.raises(InvalidCriteria, match="startUrl"):
            check_criteria(SearchCriteria())

    def test_location_without_slug(self):
        with pytest.raises(InvalidCriteria):
            check_criteria(SearchCriteria(location="  ** "))

    def test_invalid_category(self):
        with pytest.raises(InvalidCriteria, match="categoryType"):
            check_criteria(SearchCriteria(location="dubai", category_type=3))

    def test_relative_start_url(self):
        with pytest.raises(InvalidCriteria):
            check_criteria(SearchCriteria(start_url="/en/search?c=1"))

    def test_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            build_search_url(SearchCriteria(), 1)

    def test_valid(self):
        check_criteria(SearchCriteria(location="dubai", category_type=2))
