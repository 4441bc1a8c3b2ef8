from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_TITLE = "Property"
DEFAULT_CURRENCY = "AED"


class PropertyRecord(BaseModel):
    """A flat property record keyed by its absolute ``url``.

    Extractors return partial records where anything but ``url`` may be
    None; ``finalized()`` fills the defaults an emitted record must carry.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str
    title: str | None = None
    price: float | None = None
    currency: str | None = None
    location: str | None = None
    city: str | None = None
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: int | None = Field(default=None, ge=0)
    area: float | None = None
    area_unit: str | None = None
    agent_name: str | None = None
    posted_date: str | None = None
    description: str | None = None
    property_type: str | None = None

    def finalized(self, default_property_type: str | None = None) -> PropertyRecord:
        return self.model_copy(
            update={
                "title": self.title or DEFAULT_TITLE,
                "currency": self.currency or DEFAULT_CURRENCY,
                "property_type": self.property_type or default_property_type,
            }
        )


class ListingResponse(BaseModel):
    id: int
    crawl_run_id: int
    url: str
    title: str
    price: float | None = None
    currency: str | None = None
    location: str | None = None
    city: str | None = None
    bedrooms: int | None = None
    bathrooms: int | None = None
    area: float | None = None
    area_unit: str | None = None
    agent_name: str | None = None
    posted_date: str | None = None
    description: str | None = None
    property_type: str | None = None

    model_config = {"from_attributes": True}
