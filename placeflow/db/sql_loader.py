import os
from typing import Any, Dict, List, Optional, Protocol

import aiosql

# Load queries
query_dir = os.path.join(os.path.dirname(__file__), "query")


class PlacesQueries(Protocol):
    """
    Protocol for the places SQL queries.
    Note: aiosql generates functions that accept keyword arguments matching SQL :param names.
    """

    async def get_units_by_country(
        self, conn: Any, *, country_code: str, unit_slug: Optional[str] = None
    ) -> List[Any]: ...

    async def upsert_category(
        self, conn: Any, *, slug: str, label: str, icon: Optional[str] = None
    ) -> Optional[Any]: ...

    async def get_place_by_slug_and_city(
        self, conn: Any, *, unit_id: int, slug: str
    ) -> Optional[Any]: ...

    async def insert_place(
        self,
        conn: Any,
        *,
        unit_id: int,
        slug: str,
        name: str,
        address: Optional[str] = None,
        phone: Optional[str] = None,
        website: Optional[str] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        avg_rating: Optional[float] = None,
        review_count: int = 0,
        scraped_content: Optional[Dict[str, Any]] = None,
    ) -> Optional[Any]: ...

    async def link_place_category(
        self, conn: Any, *, place_id: int, category_id: int
    ) -> None: ...

    async def update_place_fields(self, conn: Any, **kwargs: Any) -> None: ...

    async def lock_place(self, conn: Any, *, place_id: int) -> Optional[Any]: ...

    async def set_place_content(
        self, conn: Any, *, place_id: int, scraped_content: Dict[str, Any]
    ) -> None: ...

    async def set_place_flags(
        self, conn: Any, *, place_id: int, flags: List[str]
    ) -> None: ...

    # Incomplete-record selection, one query per predicate
    async def select_content_incomplete(self, conn: Any, **kwargs: Any) -> List[Any]: ...

    async def select_missing_hours(self, conn: Any, **kwargs: Any) -> List[Any]: ...

    async def select_all_incomplete(self, conn: Any, **kwargs: Any) -> List[Any]: ...

    async def select_force_incomplete(self, conn: Any, **kwargs: Any) -> List[Any]: ...

    async def count_content_incomplete(self, conn: Any, *, country_code: str) -> int: ...

    async def count_missing_hours(self, conn: Any, *, country_code: str) -> int: ...

    async def count_all_incomplete(self, conn: Any, *, country_code: str) -> int: ...

    async def count_force_incomplete(self, conn: Any, *, country_code: str) -> int: ...

    async def get_enrichment_stats(
        self, conn: Any, *, country_code: str
    ) -> Optional[Any]: ...


places_queries: PlacesQueries = aiosql.from_path(query_dir, "asyncpg")  # type: ignore
