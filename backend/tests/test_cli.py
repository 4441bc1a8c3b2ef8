"""Tests for the command-line entry point."""

from __future__ import annotations

import json
import math
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from propfinder.__main__ import build_parser, load_request, main
from propfinder.models import CrawlRun, Listing
from propfinder.schemas.crawl import SearchCriteria
from propfinder.services.crawl_controller import CrawlSummary, StopReason
from propfinder.services.url_builder import build_search_url
from propfinder.utils.exceptions import ConfigurationError, InvalidCriteria


def _load(*argv: str):
    return load_request(build_parser().parse_args(list(argv)))


class TestLoadRequest:
    def test_flags(self):
        request = _load(
            "--location", "Dubai Marina",
            "--category-type", "2",
            "--results-wanted", "5",
            "--no-details",
        )

        assert request.location == "Dubai Marina"
        assert request.category_type == 2
        assert request.quota == 5
        assert request.collect_details is False

    def test_defaults(self):
        request = _load("--location", "dubai")

        assert request.property_type == "apartment"
        assert request.quota == 100
        assert request.page_limit == 20
        assert request.collect_details is True

    def test_unbounded_results(self):
        assert _load("--location", "dubai", "--results-wanted", "inf").quota == math.inf

    def test_input_file_with_flag_overrides(self, tmp_path):
        path = tmp_path / "input.json"
        path.write_text(json.dumps({
            "startUrl": "https://www.propertyfinder.ae/en/search?c=1&page=1",
            "resultsWanted": 10,
            "collectDetails": True,
            "maxPages": 4,
        }))

        request = _load("--input", str(path), "--results-wanted", "3", "--collect-details", "no")

        assert request.start_url == "https://www.propertyfinder.ae/en/search?c=1&page=1"
        assert request.quota == 3
        assert request.page_limit == 4
        assert request.collect_details is False

    def test_missing_location(self):
        with pytest.raises(InvalidCriteria):
            _load("--property-type", "villa")

    def test_unreadable_input_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError, match="Cannot read input file"):
            _load("--input", str(path))

    def test_invalid_field_value(self, tmp_path):
        path = tmp_path / "input.json"
        path.write_text(json.dumps({"location": "dubai", "minPrice": "cheap"}))

        with pytest.raises(ConfigurationError):
            _load("--input", str(path))


class TestMain:
    def test_configuration_error_exits_1_without_crawling(self):
        with patch(
            "propfinder.services.crawl_service.crawl_to_sink", new_callable=AsyncMock
        ) as mock_crawl:
            assert main(["--category-type", "1"]) == 1

        mock_crawl.assert_not_called()

    def test_completed_run_exits_0(self, tmp_path):
        summary = CrawlSummary(saved_count=0, pages_visited=1, stop_reason=StopReason.PAGE_CAP)
        output = tmp_path / "results.jsonl"

        with patch(
            "propfinder.services.crawl_service.crawl_to_sink",
            new_callable=AsyncMock,
            return_value=summary,
        ) as mock_crawl:
            assert main(["--location", "dubai", "--output", str(output)]) == 0

        mock_crawl.assert_awaited_once()
        request = mock_crawl.await_args.args[0]
        assert request.location == "dubai"
        assert output.exists()

    def test_db_output(self, tmp_path, fake_fetcher):
        page_url = build_search_url(SearchCriteria(location="dubai"), 1)
        fake = fake_fetcher({
            page_url: '<li data-testid="list-item"><a href="/en/plp/buy/a.html"><h2>A</h2></a></li>'
        })
        database_url = f"sqlite:///{tmp_path / 'runs.db'}"

        with patch("propfinder.services.crawl_service.PageFetcher", return_value=fake):
            exit_code = main([
                "--location", "dubai", "--max-pages", "1", "--no-details",
                "--db", database_url,
            ])

        assert exit_code == 0
        with Session(create_engine(database_url)) as db:
            [crawl_run] = db.scalars(select(CrawlRun)).all()
            [listing] = db.scalars(select(Listing)).all()
        assert crawl_run.status == "completed"
        assert listing.title == "A"
