"""Pytest configuration and fixtures for tests."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from propfinder.database import Base
from propfinder.services.fetcher import FetchResult
from propfinder.utils.exceptions import FetchError


@pytest.fixture(scope="session")
def engine():
    """Create an in-memory SQLite database for tests."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        # One connection, so API tests running in a worker thread see the same data
        poolclass=StaticPool,
    )
    # Import all models so they're registered
    import propfinder.models  # noqa: F401

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db(engine) -> Session:
    """Provide a fresh database session for each test."""
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


class FakeFetcher:
    """Serves canned HTML by URL; unknown or failing URLs raise FetchError."""

    def __init__(
        self,
        pages: dict[str, str],
        failures: set[str] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.pages = pages
        self.failures = failures or set()
        self.delay = delay
        self.requested: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __aenter__(self) -> FakeFetcher:
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def fetch(self, url: str, headers: dict[str, str] | None = None) -> FetchResult:
        self.requested.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if url in self.failures or url not in self.pages:
            raise FetchError(url, "simulated failure after retries", status=503)
        return FetchResult(url=url, status=200, body=self.pages[url])


@pytest.fixture
def fake_fetcher():
    """Factory for FakeFetcher instances."""
    return FakeFetcher
