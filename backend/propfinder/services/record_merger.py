"""Field-level merging of a listing card with its detail-page record."""

from __future__ import annotations

from propfinder.schemas.listing import PropertyRecord


def merge_records(
    listing: PropertyRecord,
    detail: PropertyRecord,
    *,
    url: str | None = None,
) -> PropertyRecord:
    """Overlay ``detail`` on ``listing``.

    Every field takes the detail value when it is not None and keeps the
    listing value otherwise, so a populated field never regresses to None.
    ``url`` comes from the fetch that produced ``detail`` when given.

    Examples:
        listing price=100, detail price=None -> price=100
        listing title="Card", detail title="Full title" -> "Full title"
    """
    updates = {
        name: value
        for name, value in detail.model_dump(exclude={"url"}).items()
        if value is not None
    }
    updates["url"] = url or detail.url or listing.url
    return listing.model_copy(update=updates)
