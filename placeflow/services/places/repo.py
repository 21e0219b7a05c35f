"""Record repository for business listings.

Error Handling Contract:
- Database and connection errors are raised as PersistenceError. The pipeline
  must not carry on past a write it could not record.
- Missing rows are not errors: lookups return None, selections return [].
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping, Optional

import asyncpg
from loguru import logger

from placeflow.core.exceptions import PersistenceError
from placeflow.db.sql_loader import PlacesQueries, places_queries
from placeflow.services.places.merging import deep_merge, merge_flags
from placeflow.services.places.models import (
    BusinessRecord,
    EnrichmentStats,
    GeographicUnit,
    IncompletePredicate,
    NewBusinessRecord,
)

# Columns update_fields may touch; everything else goes through merges.
UPDATABLE_FIELDS = (
    "address",
    "phone",
    "website",
    "lat",
    "lng",
    "avg_rating",
    "review_count",
    "opening_hours",
    "description",
)


class IRepository(ABC):
    """Operations the pipeline needs from the record store."""

    @abstractmethod
    async def list_units(
        self, country_code: str, unit_slug: Optional[str] = None
    ) -> list[GeographicUnit]: ...

    @abstractmethod
    async def ensure_category(
        self, slug: str, label: str, icon: Optional[str] = None
    ) -> int: ...

    @abstractmethod
    async def find_by_slug_and_unit(
        self, slug: str, unit_id: int
    ) -> Optional[BusinessRecord]: ...

    @abstractmethod
    async def insert(
        self, record: NewBusinessRecord, category_id: Optional[int] = None
    ) -> Optional[int]:
        """Insert a new record; returns None when (unit, slug) already exists."""

    @abstractmethod
    async def update_fields(self, record_id: int, fields: Mapping[str, Any]) -> None:
        """Coalesce update: None values leave the stored value untouched."""

    @abstractmethod
    async def merge_structured_content(
        self, record_id: int, patch: Mapping[str, Any]
    ) -> None: ...

    @abstractmethod
    async def add_quality_flags(self, record_id: int, flags: list[str]) -> None: ...

    @abstractmethod
    async def select_incomplete(
        self,
        country_code: str,
        predicate: IncompletePredicate,
        cursor: int = 0,
        limit: int = 50,
        unit_name: Optional[str] = None,
        correlated: Optional[bool] = None,
    ) -> list[BusinessRecord]:
        """Records matching ``predicate`` with id > ``cursor``, ordered by id.

        ``correlated`` keeps only records that do (True) or do not (False)
        carry a numeric cid or a ``ChIJ`` place id.
        """

    @abstractmethod
    async def count_incomplete(
        self, country_code: str, predicate: IncompletePredicate
    ) -> int: ...

    @abstractmethod
    async def enrichment_stats(self, country_code: str) -> EnrichmentStats: ...


_SELECTS = {
    "content": "select_content_incomplete",
    "missing-hours": "select_missing_hours",
    "all-incomplete": "select_all_incomplete",
    "force-incomplete": "select_force_incomplete",
}

_COUNTS = {
    "content": "count_content_incomplete",
    "missing-hours": "count_missing_hours",
    "all-incomplete": "count_all_incomplete",
    "force-incomplete": "count_force_incomplete",
}


class PostgresRepository(IRepository):
    """IRepository backed by Postgres through asyncpg and aiosql."""

    def __init__(self, pool: asyncpg.Pool, queries: PlacesQueries = places_queries):
        self.pool = pool
        self.queries = queries

    @asynccontextmanager
    async def _connection(self, action: str) -> AsyncIterator[asyncpg.Connection]:
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.error(f"Database error while trying to {action}: {e}")
            raise PersistenceError(f"Failed to {action}: {e}") from e

    async def list_units(
        self, country_code: str, unit_slug: Optional[str] = None
    ) -> list[GeographicUnit]:
        async with self._connection(f"list units for {country_code}") as conn:
            rows = await self.queries.get_units_by_country(
                conn, country_code=country_code.upper(), unit_slug=unit_slug
            )
        return [GeographicUnit.model_validate(dict(row)) for row in rows]

    async def ensure_category(
        self, slug: str, label: str, icon: Optional[str] = None
    ) -> int:
        async with self._connection(f"ensure category {slug}") as conn:
            row = await self.queries.upsert_category(conn, slug=slug, label=label, icon=icon)
        return row["id"]

    async def find_by_slug_and_unit(
        self, slug: str, unit_id: int
    ) -> Optional[BusinessRecord]:
        async with self._connection(f"look up {slug} in unit {unit_id}") as conn:
            row = await self.queries.get_place_by_slug_and_city(
                conn, unit_id=unit_id, slug=slug
            )
        return BusinessRecord.model_validate(dict(row)) if row else None

    async def insert(
        self, record: NewBusinessRecord, category_id: Optional[int] = None
    ) -> Optional[int]:
        async with self._connection(f"insert {record.slug}") as conn:
            async with conn.transaction():
                row = await self.queries.insert_place(conn, **record.model_dump())
                if not row:
                    return None
                if category_id is not None:
                    await self.queries.link_place_category(
                        conn, place_id=row["id"], category_id=category_id
                    )
        return row["id"]

    async def update_fields(self, record_id: int, fields: Mapping[str, Any]) -> None:
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        params = {name: fields.get(name) for name in UPDATABLE_FIELDS}
        if all(value is None for value in params.values()):
            return
        async with self._connection(f"update record {record_id}") as conn:
            await self.queries.update_place_fields(conn, place_id=record_id, **params)

    async def merge_structured_content(
        self, record_id: int, patch: Mapping[str, Any]
    ) -> None:
        async with self._connection(f"merge content into record {record_id}") as conn:
            async with conn.transaction():
                row = await self.queries.lock_place(conn, place_id=record_id)
                if row is None:
                    raise PersistenceError(f"Record {record_id} does not exist")
                merged = deep_merge(row["scraped_content"], patch)
                await self.queries.set_place_content(
                    conn, place_id=record_id, scraped_content=merged
                )

    async def add_quality_flags(self, record_id: int, flags: list[str]) -> None:
        if not flags:
            return
        async with self._connection(f"flag record {record_id}") as conn:
            async with conn.transaction():
                row = await self.queries.lock_place(conn, place_id=record_id)
                if row is None:
                    raise PersistenceError(f"Record {record_id} does not exist")
                merged = merge_flags(row["data_quality_flags"], flags)
                await self.queries.set_place_flags(conn, place_id=record_id, flags=merged)

    async def select_incomplete(
        self,
        country_code: str,
        predicate: IncompletePredicate,
        cursor: int = 0,
        limit: int = 50,
        unit_name: Optional[str] = None,
        correlated: Optional[bool] = None,
    ) -> list[BusinessRecord]:
        query = getattr(self.queries, _SELECTS[predicate])
        async with self._connection(f"select {predicate} records for {country_code}") as conn:
            rows = await query(
                conn,
                country_code=country_code.upper(),
                cursor=cursor,
                limit=limit,
                unit_name=unit_name,
                correlated=correlated,
            )
        return [BusinessRecord.model_validate(dict(row)) for row in rows]

    async def count_incomplete(
        self, country_code: str, predicate: IncompletePredicate
    ) -> int:
        query = getattr(self.queries, _COUNTS[predicate])
        async with self._connection(f"count {predicate} records for {country_code}") as conn:
            count = await query(conn, country_code=country_code.upper())
        return count or 0

    async def enrichment_stats(self, country_code: str) -> EnrichmentStats:
        async with self._connection(f"compute stats for {country_code}") as conn:
            row = await self.queries.get_enrichment_stats(
                conn, country_code=country_code.upper()
            )
        return EnrichmentStats.model_validate(dict(row)) if row else EnrichmentStats()
