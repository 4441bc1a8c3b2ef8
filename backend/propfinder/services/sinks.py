"""Output sinks for finished property records.

Sinks are append-only and order-insensitive. ``emit`` is synchronous so the
crawl controller can call it inside its critical section.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from types import TracebackType
from typing import IO, Protocol

from sqlalchemy.orm import Session

from propfinder.models.listing import Listing
from propfinder.schemas.listing import PropertyRecord

logger = logging.getLogger(__name__)


class OutputSink(Protocol):
    def emit(self, record: PropertyRecord) -> None: ...


class MemorySink:
    """Collects records in a list."""

    def __init__(self) -> None:
        self.records: list[PropertyRecord] = []

    def emit(self, record: PropertyRecord) -> None:
        self.records.append(record)


class JsonlSink:
    """Writes one camelCase JSON object per line.

    Use as a context manager so the file is flushed and closed::

        with JsonlSink("results.jsonl") as sink:
            ...
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._file: IO[str] | None = None
        self.count = 0

    def __enter__(self) -> JsonlSink:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("a", encoding="utf-8")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
        logger.info("Wrote %d records to %s", self.count, self.path)

    def emit(self, record: PropertyRecord) -> None:
        if self._file is None:
            raise RuntimeError("JsonlSink must be used as a context manager")
        line = json.dumps(record.model_dump(by_alias=True), ensure_ascii=False)
        self._file.write(line + "\n")
        self._file.flush()
        self.count += 1


class DatabaseSink:
    """Persists records as Listing rows of one crawl run."""

    def __init__(self, db: Session, crawl_run_id: int) -> None:
        self._db = db
        self._crawl_run_id = crawl_run_id
        self.count = 0

    def emit(self, record: PropertyRecord) -> None:
        listing = Listing(crawl_run_id=self._crawl_run_id, **record.model_dump())
        self._db.add(listing)
        self._db.commit()
        self.count += 1
