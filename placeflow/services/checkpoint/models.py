"""Pydantic models for persisted stage progress."""

from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

StageKind = Literal["discovery", "dataset", "enrichment"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DiscoveryStats(BaseModel):
    units_total: int = 0
    units_done: int = 0
    found: int = 0
    created: int = 0
    skipped: int = 0
    errors: int = 0


class DiscoveryErrorEntry(BaseModel):
    unit: str
    message: str
    timestamp: datetime = Field(default_factory=utcnow)


class DiscoveryProgress(BaseModel):
    """Progress of one discovery run, scoped to (country, category)."""

    kind: Literal["discovery"] = "discovery"
    country: str
    category: str
    completed_units: list[str] = []
    current_unit: Optional[str] = None
    stats: DiscoveryStats = Field(default_factory=DiscoveryStats)
    errors: list[DiscoveryErrorEntry] = []
    started_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def scope(self) -> tuple[str, str, Optional[str]]:
        return (self.kind, self.country, self.category)

    @property
    def is_complete(self) -> bool:
        return self.stats.units_done >= self.stats.units_total

    def is_unit_completed(self, unit_slug: str) -> bool:
        return unit_slug in self.completed_units

    def complete_unit(
        self, unit_slug: str, found: int = 0, created: int = 0, skipped: int = 0, errors: int = 0
    ) -> None:
        """Mark a unit done and fold its counters into the totals."""
        if unit_slug not in self.completed_units:
            self.completed_units.append(unit_slug)
            self.stats.units_done += 1
        self.current_unit = None
        self.stats.found += found
        self.stats.created += created
        self.stats.skipped += skipped
        self.stats.errors += errors

    def record_error(self, unit: str, message: str) -> None:
        self.errors.append(DiscoveryErrorEntry(unit=unit, message=message))


class EnrichmentStats(BaseModel):
    to_process: int = 0
    processed: int = 0
    enriched: int = 0
    failed: int = 0
    skipped: int = 0


class EnrichmentErrorEntry(BaseModel):
    record_id: int
    record_name: str
    message: str
    timestamp: datetime = Field(default_factory=utcnow)


class EnrichmentProgress(BaseModel):
    """Progress of a per-country enrichment scan.

    ``kind`` is "enrichment" for generated content and "dataset" for the
    place-dataset stage. ``last_processed_id`` only ever moves forward.

    The dataset stage first scans records carrying a provider correlation id
    on ``correlated_cursor``, then the rest on ``last_processed_id``.
    """

    kind: Literal["enrichment", "dataset"] = "enrichment"
    country: str
    last_processed_id: int = 0
    correlated_cursor: int = 0
    correlated_done: bool = False
    stats: EnrichmentStats = Field(default_factory=EnrichmentStats)
    errors: list[EnrichmentErrorEntry] = []
    started_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def category(self) -> Optional[str]:
        return None

    @property
    def scope(self) -> tuple[str, str, Optional[str]]:
        return (self.kind, self.country, None)

    def advance_cursor(self, record_id: int) -> None:
        if record_id > self.last_processed_id:
            self.last_processed_id = record_id

    def advance_correlated_cursor(self, record_id: int) -> None:
        if record_id > self.correlated_cursor:
            self.correlated_cursor = record_id

    def record_error(self, record_id: int, record_name: str, message: str) -> None:
        self.errors.append(
            EnrichmentErrorEntry(
                record_id=record_id, record_name=record_name, message=message
            )
        )


ProgressDocument = Annotated[
    Union[DiscoveryProgress, EnrichmentProgress], Field(discriminator="kind")
]

progress_adapter: TypeAdapter[ProgressDocument] = TypeAdapter(ProgressDocument)
