"""Pydantic models for business records and their reference dimensions."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# Record selection predicates understood by the repository.
IncompletePredicate = Literal[
    "content",  # narrative text missing or shorter than 100 chars
    "missing-hours",  # no opening hours yet
    "all-incomplete",  # missing opening hours or provider reviews
    "force-incomplete",  # flagged complete but still missing hours or reviews
]


class GeographicUnit(BaseModel):
    """A city/town under a country; the atomic unit of discovery iteration."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    province_slug: Optional[str] = None
    languages: Optional[list[str]] = None


class NewBusinessRecord(BaseModel):
    """Minimal record as created by discovery."""

    unit_id: int
    slug: str
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    avg_rating: Optional[float] = None
    review_count: int = 0
    scraped_content: dict[str, Any] = {}


class BusinessRecord(BaseModel):
    """A business listing as read back from the repository."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    unit_id: int
    slug: str
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    avg_rating: Optional[float] = None
    review_count: Optional[int] = None
    opening_hours: Optional[dict[str, str]] = None
    description: Optional[str] = None
    scraped_content: dict[str, Any] = Field(default_factory=dict)
    data_quality_flags: list[str] = Field(default_factory=list)

    # Joined reference data
    unit_name: str = ""
    country_name: str = ""
    category_slug: Optional[str] = None
    category_name: Optional[str] = None

    @property
    def google_cid(self) -> Optional[str]:
        """Numeric provider correlation id, when discovery captured one."""
        value = self.scraped_content.get("cid")
        return str(value) if value else None

    @property
    def google_place_id(self) -> Optional[str]:
        value = self.scraped_content.get("googlePlaceId")
        return str(value) if value else None


class EnrichmentStats(BaseModel):
    """Read-only completeness counts for one country."""

    total: int = 0
    enriched: int = 0
    partial: int = 0
    unenriched: int = 0
    missing_hours: int = 0

    def percent(self, value: int) -> int:
        return round(value / self.total * 100) if self.total else 0
