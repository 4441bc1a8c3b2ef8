"""Tests for the crawl control loop."""

from __future__ import annotations

import logging
import math
from unittest.mock import patch

import pytest

from propfinder.schemas.crawl import SearchCriteria
from propfinder.services.crawl_controller import CrawlController, StopReason
from propfinder.services.extractors import ExtractorChain
from propfinder.services.sinks import MemorySink
from propfinder.services.url_builder import build_search_url
from propfinder.utils.exceptions import InvalidCriteria

BASE = "https://www.propertyfinder.ae"
CRITERIA = SearchCriteria(location="dubai", property_type="apartment", category_type=1)


def _page_url(page: int) -> str:
    return build_search_url(CRITERIA, page, base_url=BASE)


def _detail_url(slug: str) -> str:
    return f"{BASE}/en/plp/buy/{slug}.html"


def _cards_page(*slugs: str) -> str:
    cards = "".join(
        f'<li data-testid="list-item">'
        f'<a href="/en/plp/buy/{slug}.html"><h2>{slug}</h2></a>'
        f'<p data-testid="property-price">AED 1,000,000</p>'
        f"</li>"
        for slug in slugs
    )
    return f"<html><body><ul>{cards}</ul></body></html>"


def _detail_page(slug: str) -> str:
    return (
        "<html><body>"
        f"<h1>Full {slug}</h1>"
        f'<div data-testid="agent-name">Agent {slug}</div>'
        "</body></html>"
    )


def _controller(fetcher, sink, **kwargs) -> CrawlController:
    kwargs.setdefault("base_url", BASE)
    kwargs.setdefault("max_concurrency", 4)
    return CrawlController(CRITERIA, fetcher=fetcher, sink=sink, **kwargs)


class TestWithoutDetails:
    @pytest.mark.asyncio
    async def test_stops_at_quota_on_first_page(self, fake_fetcher):
        fetcher = fake_fetcher({_page_url(1): _cards_page("a", "b", "c", "d", "e")})
        sink = MemorySink()

        summary = await _controller(
            fetcher, sink, results_wanted=3, collect_details=False
        ).run()

        assert [r.url for r in sink.records] == [
            _detail_url("a"), _detail_url("b"), _detail_url("c"),
        ]
        assert summary.saved_count == 3
        assert summary.pages_visited == 1
        assert summary.stop_reason == StopReason.QUOTA_REACHED
        assert fetcher.requested == [_page_url(1)]

    @pytest.mark.asyncio
    async def test_records_are_finalized(self, fake_fetcher):
        html = (
            '<ul><li data-testid="list-item">'
            '<a href="/en/plp/buy/bare.html">link</a></li></ul>'
        )
        fetcher = fake_fetcher({_page_url(1): html})
        sink = MemorySink()

        await _controller(fetcher, sink, max_pages=1, collect_details=False).run()

        [record] = sink.records
        assert record.title == "Property"
        assert record.currency == "AED"
        assert record.property_type == "apartment"
        assert record.price is None

    @pytest.mark.asyncio
    async def test_dedup_across_pages(self, fake_fetcher):
        fetcher = fake_fetcher({
            _page_url(1): _cards_page("a", "b"),
            _page_url(2): _cards_page("b", "c"),
        })
        sink = MemorySink()

        summary = await _controller(
            fetcher, sink, max_pages=3, collect_details=False
        ).run()

        assert [r.url for r in sink.records] == [
            _detail_url("a"), _detail_url("b"), _detail_url("c"),
        ]
        # Listing pages go out strictly in order
        assert fetcher.requested == [_page_url(1), _page_url(2), _page_url(3)]
        assert summary.pages_visited == 3
        assert summary.stop_reason == StopReason.PAGE_CAP

    @pytest.mark.asyncio
    async def test_page_cap(self, fake_fetcher):
        fetcher = fake_fetcher({
            _page_url(n): _cards_page(f"p{n}-1", f"p{n}-2") for n in range(1, 6)
        })
        sink = MemorySink()

        summary = await _controller(
            fetcher, sink, max_pages=2, collect_details=False
        ).run()

        assert summary.saved_count == 4
        assert summary.pages_visited == 2
        assert summary.stop_reason == StopReason.PAGE_CAP
        assert _page_url(3) not in fetcher.requested

    @pytest.mark.asyncio
    async def test_listing_failure_continues_to_next_page(self, fake_fetcher):
        fetcher = fake_fetcher(
            {_page_url(1): "", _page_url(2): _cards_page("x", "y")},
            failures={_page_url(1)},
        )
        sink = MemorySink()

        summary = await _controller(
            fetcher, sink, max_pages=2, collect_details=False
        ).run()

        assert [r.url for r in sink.records] == [_detail_url("x"), _detail_url("y")]
        assert summary.pages_visited == 2

    @pytest.mark.asyncio
    async def test_malformed_card_link_does_not_stop_pagination(self, fake_fetcher):
        page_1 = _cards_page("a").replace(
            "</ul>",
            '<li data-testid="list-item"><a href="http://[oops/en/x"><h2>x</h2></a></li></ul>',
        )
        fetcher = fake_fetcher({_page_url(1): page_1, _page_url(2): _cards_page("b")})
        sink = MemorySink()

        summary = await _controller(
            fetcher, sink, max_pages=2, collect_details=False
        ).run()

        assert [r.url for r in sink.records] == [_detail_url("a"), _detail_url("b")]
        assert _page_url(2) in fetcher.requested
        assert summary.stop_reason == StopReason.PAGE_CAP

    @pytest.mark.asyncio
    async def test_extraction_error_counts_as_empty_page(self, fake_fetcher):
        fetcher = fake_fetcher({_page_url(1): _cards_page("a"), _page_url(2): _cards_page("b")})
        sink = MemorySink()
        chain = ExtractorChain(base_url=BASE)
        real_extract = chain.extract_listings

        def extract(html, page_url):
            if page_url == _page_url(1):
                raise KeyError("searchResult")
            return real_extract(html, page_url)

        with patch.object(chain, "extract_listings", side_effect=extract):
            summary = await _controller(
                fetcher, sink, chain=chain, max_pages=2, collect_details=False
            ).run()

        assert [r.url for r in sink.records] == [_detail_url("b")]
        assert summary.pages_visited == 2

    @pytest.mark.asyncio
    async def test_zero_results_is_a_normal_completion(self, fake_fetcher):
        fetcher = fake_fetcher({_page_url(1): "<html><body>No results</body></html>"})
        sink = MemorySink()

        summary = await _controller(
            fetcher, sink, max_pages=1, collect_details=False
        ).run()

        assert sink.records == []
        assert summary.saved_count == 0
        assert summary.pages_visited == 1

    @pytest.mark.asyncio
    async def test_empty_page_is_not_a_warning(self, fake_fetcher, caplog):
        fetcher = fake_fetcher({_page_url(1): "<html><body>No results</body></html>"})

        with caplog.at_level(logging.INFO, logger="propfinder.services.crawl_controller"):
            await _controller(
                fetcher, MemorySink(), max_pages=1, collect_details=False
            ).run()

        assert "No cards found on listing page 1" in caplog.text
        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]

    @pytest.mark.asyncio
    async def test_repeated_page_url_stops_pagination(self, fake_fetcher):
        fetcher = fake_fetcher({_page_url(1): _cards_page("a")})
        sink = MemorySink()

        with patch(
            "propfinder.services.crawl_controller.build_search_url",
            return_value=_page_url(1),
        ):
            summary = await _controller(
                fetcher, sink, max_pages=5, collect_details=False
            ).run()

        assert fetcher.requested == [_page_url(1)]
        assert summary.stop_reason == StopReason.REPEATED_PAGE


class TestWithDetails:
    @pytest.mark.asyncio
    async def test_detail_enriches_card(self, fake_fetcher):
        fetcher = fake_fetcher({
            _page_url(1): _cards_page("a"),
            _detail_url("a"): _detail_page("a"),
        })
        sink = MemorySink()

        await _controller(fetcher, sink, max_pages=1).run()

        [record] = sink.records
        assert record.url == _detail_url("a")
        assert record.title == "Full a"
        assert record.agent_name == "Agent a"
        # Not on the detail page, kept from the card
        assert record.price == 1000000.0

    @pytest.mark.asyncio
    async def test_detail_failure_saves_card(self, fake_fetcher):
        fetcher = fake_fetcher({_page_url(1): _cards_page("a", "b")})
        sink = MemorySink()

        summary = await _controller(fetcher, sink, results_wanted=2).run()

        assert sorted(r.title for r in sink.records) == ["a", "b"]
        assert summary.saved_count == 2
        assert summary.stop_reason == StopReason.QUOTA_REACHED
        # Two scheduled details already cover the quota, so no page 2
        assert _page_url(2) not in fetcher.requested

    @pytest.mark.asyncio
    async def test_detail_extraction_error_saves_card(self, fake_fetcher):
        fetcher = fake_fetcher({
            _page_url(1): _cards_page("a"),
            _detail_url("a"): _detail_page("a"),
        })
        sink = MemorySink()
        chain = ExtractorChain(base_url=BASE)

        with patch.object(chain, "extract_detail", side_effect=ValueError("bad page")):
            summary = await _controller(
                fetcher, sink, chain=chain, results_wanted=1
            ).run()

        [record] = sink.records
        assert record.title == "a"
        assert summary.saved_count == 1

    @pytest.mark.asyncio
    async def test_quota_limits_detail_fetches(self, fake_fetcher):
        slugs = ["a", "b", "c", "d", "e"]
        pages = {_page_url(1): _cards_page(*slugs)}
        pages.update({_detail_url(s): _detail_page(s) for s in slugs})
        fetcher = fake_fetcher(pages)
        sink = MemorySink()

        summary = await _controller(fetcher, sink, results_wanted=3).run()

        assert summary.saved_count == 3
        assert len(sink.records) == 3
        assert all(r.title.startswith("Full ") for r in sink.records)
        assert len(fetcher.requested) == 4
        assert fetcher.requested[0] == _page_url(1)

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, fake_fetcher):
        slugs = [f"unit-{n}" for n in range(6)]
        pages = {_page_url(1): _cards_page(*slugs)}
        pages.update({_detail_url(s): _detail_page(s) for s in slugs})
        fetcher = fake_fetcher(pages, delay=0.01)
        sink = MemorySink()

        summary = await _controller(
            fetcher, sink, max_pages=1, max_concurrency=2
        ).run()

        assert summary.saved_count == 6
        assert 1 < fetcher.max_in_flight <= 2


class TestPreflight:
    @pytest.mark.asyncio
    async def test_missing_location_fails_before_fetching(self, fake_fetcher):
        fetcher = fake_fetcher({})
        controller = CrawlController(
            SearchCriteria(), fetcher=fetcher, sink=MemorySink(), max_concurrency=1
        )

        with pytest.raises(InvalidCriteria):
            await controller.run()

        assert fetcher.requested == []

    def test_concurrency_must_be_positive(self, fake_fetcher):
        with pytest.raises(ValueError):
            _controller(fake_fetcher({}), MemorySink(), max_concurrency=0)

    def test_unbounded_quota_by_default(self, fake_fetcher):
        controller = _controller(fake_fetcher({}), MemorySink())
        assert controller.state.quota == math.inf
        assert controller.state.max_pages == 20
