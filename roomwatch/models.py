"""Data models for discovered listings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Feature(BaseModel):
    """A label/value pair scraped from a listing page."""

    label: str
    value: str

    @field_validator("label", "value", mode="before")
    @classmethod
    def strip_text(cls, value):
        return str(value).strip() if value is not None else ""


class ListingRecord(BaseModel):
    """Fields shared by every site's listing record.

    ``link`` is the site-relative path of the listing and the identity used
    for deduplication across the queue and viewed stores.
    """

    model_config = ConfigDict(extra="ignore")

    site: str
    link: str = Field(min_length=1)
    description: str
    features: List[Feature] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)

    @field_validator("link")
    @classmethod
    def strip_link(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("link must not be blank")
        return value

    def feature_value(self, label: str) -> Optional[str]:
        """Return the value of the first feature called *label*."""

        for feature in self.features:
            if feature.label == label:
                return feature.value or None
        return None


class KamernetRecord(ListingRecord):
    """A Kamernet listing; ``features`` holds the landlord's ideal tenant rows."""

    site: Literal["kamernet"] = "kamernet"
    street: str
    cost_breakdown: Dict[str, float] = Field(default_factory=dict)
    floor_area: Optional[str] = None
    property_type: Optional[str] = None
    available_from: Optional[str] = None
    available_until: Optional[str] = None
    details: List[str] = Field(default_factory=list)


class HuurwoningenRecord(ListingRecord):
    """A Huurwoningen listing; ``features`` holds the listing's feature table."""

    site: Literal["huurwoningen"] = "huurwoningen"
    title: str


@dataclass(slots=True)
class ListingEntry:
    """One result row on a search page."""

    link: str
    recency: Optional[str] = None


@dataclass(slots=True)
class ListingPage:
    """Parsed view of a single search results page."""

    entries: List[ListingEntry] = field(default_factory=list)
    has_next: bool = False
    no_results: bool = False

    @property
    def links(self) -> List[str]:
        return [entry.link for entry in self.entries]


__all__ = [
    "Feature",
    "ListingRecord",
    "KamernetRecord",
    "HuurwoningenRecord",
    "ListingEntry",
    "ListingPage",
]
