"""Command-line entry point.

    python -m propfinder --location "Dubai Marina" --results-wanted 50
    python -m propfinder --input input.json --output results.jsonl
    python -m propfinder --start-url "https://www.propertyfinder.ae/en/search?c=2&page=1" --db sqlite:///runs.db

Exit status is 0 whenever the crawl completes, including with zero results,
and 1 when the configuration is rejected before any fetch.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from propfinder.config import settings
from propfinder.schemas.crawl import CrawlRequest
from propfinder.services.sinks import JsonlSink
from propfinder.services.url_builder import check_criteria
from propfinder.utils.exceptions import ConfigurationError

logger = logging.getLogger("propfinder")


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "y", "on"):
        return True
    if lowered in ("0", "false", "no", "n", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="propfinder-crawl",
        description="Crawl PropertyFinder.ae search results into flat records.",
    )
    parser.add_argument("--input", type=Path, help="JSON file with run configuration")
    parser.add_argument("--start-url", help="Search URL to paginate (overrides --location)")
    parser.add_argument("--location", help='Location to search, e.g. "Dubai Marina"')
    parser.add_argument("--property-type", help="Property type slug (default: apartment)")
    parser.add_argument(
        "--category-type", type=int, help="1 = for sale (default), 2 = for rent"
    )
    parser.add_argument("--min-price", type=int)
    parser.add_argument("--max-price", type=int)
    parser.add_argument(
        "--results-wanted",
        help="Stop after this many records (default 100, 'inf' for no limit)",
    )
    parser.add_argument("--max-pages", help="Maximum search pages to visit (default 20)")
    parser.add_argument(
        "--collect-details",
        type=_parse_bool,
        help="Visit detail pages for richer records (default true)",
    )
    parser.add_argument(
        "--no-details",
        dest="collect_details",
        action="store_false",
        help="Save listing cards without visiting detail pages",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help=f"JSONL output path (default {settings.output_path})",
    )
    parser.add_argument(
        "--db",
        nargs="?",
        const=settings.database_url,
        default=None,
        metavar="URL",
        help=(
            "Record the run and its listings in a database instead of JSONL "
            f"(default URL {settings.database_url})"
        ),
    )
    parser.add_argument("--log-level", default=settings.log_level)
    parser.set_defaults(collect_details=None)
    return parser


def load_request(args: argparse.Namespace) -> CrawlRequest:
    """Merge the optional input file with command-line flags (flags win)."""
    data: dict[str, Any] = {}
    if args.input is not None:
        try:
            data.update(json.loads(args.input.read_text(encoding="utf-8")))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read input file {args.input}: {e}") from e

    # Input files use the same camelCase/snake_case keys as the API body
    aliases = {
        "startUrl": "start_url",
        "propertyType": "property_type",
        "categoryType": "category_type",
        "minPrice": "min_price",
        "maxPrice": "max_price",
        "resultsWanted": "results_wanted",
        "maxPages": "max_pages",
        "collectDetails": "collect_details",
    }
    data = {aliases.get(key, key): value for key, value in data.items()}

    for field_name in (
        "start_url",
        "location",
        "property_type",
        "category_type",
        "min_price",
        "max_price",
        "results_wanted",
        "max_pages",
        "collect_details",
    ):
        value = getattr(args, field_name)
        if value is not None:
            data[field_name] = value

    try:
        request = CrawlRequest.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e

    check_criteria(request.to_criteria())
    return request


async def _run(args: argparse.Namespace, request: CrawlRequest) -> int:
    if args.db:
        # Imported here so a plain JSONL run never touches the database
        from sqlalchemy.orm import Session

        from propfinder.database import create_tables, make_engine
        from propfinder.services import crawl_service

        engine = make_engine(args.db)
        create_tables(engine)
        with Session(engine) as db:
            crawl_run = await crawl_service.crawl(db, request)
            logger.info(
                "Crawl run %d %s with %d records", crawl_run.id, crawl_run.status,
                crawl_run.saved_count,
            )
        return 0

    from propfinder.services.crawl_service import crawl_to_sink

    output = args.output or Path(settings.output_path)
    with JsonlSink(output) as sink:
        summary = await crawl_to_sink(request, sink)
    logger.info("Scraping completed: %d records saved", summary.saved_count)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        request = load_request(args)
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    return asyncio.run(_run(args, request))


if __name__ == "__main__":
    sys.exit(main())
