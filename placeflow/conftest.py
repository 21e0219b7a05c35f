"""Pytest configuration and shared fixtures."""

import itertools
from typing import Any, Mapping, Optional

import pytest

from placeflow.services.catalog.catalog import COUNTRIES
from placeflow.services.checkpoint.store import CheckpointStore
from placeflow.services.dataset.matching import has_correlation_id
from placeflow.services.places.merging import coalesce_fields, deep_merge, merge_flags
from placeflow.services.places.models import (
    BusinessRecord,
    EnrichmentStats,
    GeographicUnit,
    IncompletePredicate,
    NewBusinessRecord,
)
from placeflow.services.places.repo import UPDATABLE_FIELDS, IRepository
from placeflow.services.providers.rate_limiter import ProviderPolicy, RateLimiter


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--online",
        action="store_true",
        default=False,
        help="Run tests that require external connectivity (live provider APIs)",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "online: mark test as requiring external connectivity"
    )


def pytest_collection_modifyitems(config, items):
    """Skip online tests if --online flag is not provided."""
    if config.getoption("--online"):
        return

    skip_online = pytest.mark.skip(reason="need --online option to run")
    for item in items:
        if "online" in item.keywords:
            item.add_marker(skip_online)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _is_missing_hours(record: dict) -> bool:
    return record.get("opening_hours") is None


def _is_missing_reviews(record: dict) -> bool:
    return record["scraped_content"].get("googleReviews") is None


def _about_length(record: dict) -> int:
    return len(record["scraped_content"].get("aboutUs") or "")


_PREDICATES = {
    "content": lambda r: _about_length(r) < 100,
    "missing-hours": _is_missing_hours,
    "all-incomplete": lambda r: _is_missing_hours(r) or _is_missing_reviews(r),
    "force-incomplete": lambda r: "ENRICHMENT_COMPLETE" in r["data_quality_flags"]
    and (_is_missing_hours(r) or _is_missing_reviews(r)),
}


class InMemoryRepository(IRepository):
    """Dict-backed IRepository with the same merge semantics as Postgres."""

    def __init__(self):
        self.units: dict[str, list[GeographicUnit]] = {}
        self.unit_country: dict[int, str] = {}
        self.records: dict[int, dict[str, Any]] = {}
        self.categories: dict[str, int] = {}
        self.links: set[tuple[int, int]] = set()
        self.writes = 0
        self._ids = itertools.count(1)
        self._unit_ids = itertools.count(1)

    # -- seeding helpers -------------------------------------------------

    def add_unit(
        self,
        country_code: str,
        name: str,
        slug: Optional[str] = None,
        languages: Optional[list[str]] = None,
    ) -> GeographicUnit:
        unit = GeographicUnit(
            id=next(self._unit_ids),
            name=name,
            slug=slug or name.lower().replace(" ", "-"),
            province_slug="test-province",
            languages=languages,
        )
        self.units.setdefault(country_code, []).append(unit)
        self.unit_country[unit.id] = country_code
        return unit

    def add_record(self, unit: GeographicUnit, name: str, **fields) -> int:
        record_id = fields.pop("id", None) or next(self._ids)
        self.records[record_id] = {
            "id": record_id,
            "unit_id": unit.id,
            "slug": fields.pop("slug", name.lower().replace(" ", "-")),
            "name": name,
            "address": None,
            "phone": None,
            "website": None,
            "lat": None,
            "lng": None,
            "avg_rating": None,
            "review_count": 0,
            "opening_hours": None,
            "description": None,
            "scraped_content": {},
            "data_quality_flags": [],
            "category_slug": None,
            "category_name": None,
            **fields,
        }
        return record_id

    def get(self, record_id: int) -> BusinessRecord:
        return self._to_model(self.records[record_id])

    def _to_model(self, record: dict) -> BusinessRecord:
        unit_id = record["unit_id"]
        country_code = self.unit_country[unit_id]
        unit = next(u for u in self.units[country_code] if u.id == unit_id)
        return BusinessRecord.model_validate(
            {
                **record,
                "unit_name": unit.name,
                "country_name": COUNTRIES[country_code].name
                if country_code in COUNTRIES
                else country_code,
            }
        )

    # -- IRepository -----------------------------------------------------

    async def list_units(self, country_code, unit_slug=None):
        units = self.units.get(country_code.upper(), [])
        if unit_slug:
            units = [u for u in units if u.slug == unit_slug]
        return list(units)

    async def ensure_category(self, slug, label, icon=None):
        if slug not in self.categories:
            self.categories[slug] = len(self.categories) + 1
        return self.categories[slug]

    async def find_by_slug_and_unit(self, slug, unit_id):
        for record in self.records.values():
            if record["unit_id"] == unit_id and record["slug"] == slug:
                return self._to_model(record)
        return None

    async def insert(self, record: NewBusinessRecord, category_id=None):
        if await self.find_by_slug_and_unit(record.slug, record.unit_id):
            return None
        self.writes += 1
        record_id = next(self._ids)
        self.records[record_id] = {
            "id": record_id,
            "opening_hours": None,
            "description": None,
            "data_quality_flags": [],
            "category_slug": None,
            "category_name": None,
            **record.model_dump(),
        }
        if category_id is not None:
            self.links.add((record_id, category_id))
            slug = next(s for s, i in self.categories.items() if i == category_id)
            self.records[record_id]["category_slug"] = slug
        return record_id

    async def update_fields(self, record_id: int, fields: Mapping[str, Any]) -> None:
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        self.writes += 1
        self.records[record_id] = coalesce_fields(self.records[record_id], fields)

    async def merge_structured_content(self, record_id, patch):
        self.writes += 1
        record = self.records[record_id]
        record["scraped_content"] = deep_merge(record["scraped_content"], patch)

    async def add_quality_flags(self, record_id, flags):
        if not flags:
            return
        self.writes += 1
        record = self.records[record_id]
        record["data_quality_flags"] = merge_flags(record["data_quality_flags"], flags)

    def _matching(self, country_code: str, predicate: IncompletePredicate) -> list[dict]:
        check = _PREDICATES[predicate]
        return [
            r
            for r in sorted(self.records.values(), key=lambda r: r["id"])
            if self.unit_country[r["unit_id"]] == country_code.upper() and check(r)
        ]

    async def select_incomplete(
        self, country_code, predicate, cursor=0, limit=50, unit_name=None, correlated=None
    ):
        selected = []
        for record in self._matching(country_code, predicate):
            if record["id"] <= cursor:
                continue
            model = self._to_model(record)
            if unit_name and model.unit_name.lower() != unit_name.lower():
                continue
            if correlated is not None and has_correlation_id(model) != correlated:
                continue
            selected.append(model)
            if len(selected) >= limit:
                break
        return selected

    async def count_incomplete(self, country_code, predicate):
        return len(self._matching(country_code, predicate))

    async def enrichment_stats(self, country_code):
        records = [
            r
            for r in self.records.values()
            if self.unit_country[r["unit_id"]] == country_code.upper()
        ]
        lengths = [_about_length(r) for r in records]
        return EnrichmentStats(
            total=len(records),
            enriched=sum(1 for n in lengths if n >= 100),
            partial=sum(1 for n in lengths if 50 <= n < 100),
            unenriched=sum(1 for n in lengths if n < 50),
            missing_hours=sum(1 for r in records if _is_missing_hours(r)),
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def limiter(fake_clock):
    """Limiter with real policies but an instant clock."""
    policy = ProviderPolicy(delay_seconds=1.0, max_retries=2)
    return RateLimiter(
        {"serp": policy, "dataset": policy, "openai": policy},
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )


@pytest.fixture
def memory_repo():
    return InMemoryRepository()


@pytest.fixture
def checkpoint_store(tmp_path):
    return CheckpointStore(tmp_path / "progress")
