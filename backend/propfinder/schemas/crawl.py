from __future__ import annotations

import math
from datetime import datetime
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, field_validator

DEFAULT_RESULTS_WANTED = 100
DEFAULT_MAX_PAGES = 20


class CategoryType(IntEnum):
    SALE = 1
    RENT = 2


class SearchCriteria(BaseModel):
    """What to search for. Built once per run and never mutated."""

    start_url: str | None = None
    location: str | None = None
    property_type: str = "apartment"
    category_type: int = CategoryType.SALE
    min_price: int | None = None
    max_price: int | None = None

    model_config = {"frozen": True}


class CrawlRequest(BaseModel):
    """Run configuration accepted from the CLI, an input file or the API."""

    start_url: str | None = None
    location: str | None = None
    property_type: str = "apartment"
    category_type: int = CategoryType.SALE
    min_price: int | None = None
    max_price: int | None = None
    results_wanted: float | None = DEFAULT_RESULTS_WANTED
    max_pages: float | None = DEFAULT_MAX_PAGES
    collect_details: bool = True

    @field_validator("results_wanted", "max_pages", mode="before")
    @classmethod
    def coerce_limit(cls, value: Any) -> Any:
        """Non-numeric limits are treated as absent rather than rejected."""
        if value is None or isinstance(value, (int, float)):
            return value
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @property
    def quota(self) -> float:
        """Result quota; ``math.inf`` when unbounded."""
        if self.results_wanted is None or not math.isfinite(self.results_wanted):
            return math.inf
        return max(1, int(self.results_wanted))

    @property
    def page_limit(self) -> int:
        if self.max_pages is None or not math.isfinite(self.max_pages):
            return DEFAULT_MAX_PAGES
        return max(1, int(self.max_pages))

    def to_criteria(self) -> SearchCriteria:
        return SearchCriteria(
            start_url=self.start_url,
            location=self.location,
            property_type=self.property_type,
            category_type=self.category_type,
            min_price=self.min_price,
            max_price=self.max_price,
        )


class CrawlRunResponse(BaseModel):
    id: int
    status: str
    start_url: str | None
    saved_count: int
    pages_visited: int
    stopped_reason: str | None
    error_message: str | None
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}
