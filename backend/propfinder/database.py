"""SQLAlchemy engine and session setup for crawl-run persistence."""

from __future__ import annotations

import logging
from collections.abc import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from propfinder.config import settings

logger = logging.getLogger(__name__)


def make_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # The API threadpool and the crawl's event loop share one session
        connect_args["check_same_thread"] = False
    return create_engine(
        database_url,
        connect_args=connect_args,
        pool_pre_ping=True,
        echo=settings.debug,
    )


engine = make_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind: Engine | None = None) -> None:
    """Create the crawl_runs and listings tables on ``bind`` if missing.

    Existing tables are left untouched; nothing is ever dropped.
    """
    # Registers the models on Base.metadata
    import propfinder.models  # noqa: F401

    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info(
        "Database tables ensured on %s (%d tables)",
        target.url.render_as_string(hide_password=True),
        len(Base.metadata.tables),
    )
