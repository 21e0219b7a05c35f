"""Discovery service: find new listings per geographic unit and insert them.

Progress is checkpointed after every unit, so a killed run resumes at the
first unit it had not finished. A unit is only marked complete after all of
its languages were searched and every result was inserted or skipped.
"""

import uuid
from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger
from pydantic import BaseModel

from placeflow.core.exceptions import ConfigurationError, ProviderError
from placeflow.core.logging import StructuredLogger, log_execution_time
from placeflow.services.catalog.catalog import (
    CategoryConfig,
    CountryConfig,
    get_category,
    get_country,
)
from placeflow.services.checkpoint.models import DiscoveryProgress, utcnow
from placeflow.services.checkpoint.store import CheckpointStore
from placeflow.services.discovery.normalize import SearchResult, normalize_results
from placeflow.services.places.merging import slugify
from placeflow.services.places.models import GeographicUnit, NewBusinessRecord
from placeflow.services.places.repo import IRepository
from placeflow.services.providers.serp_client import SerpClient


class DiscoveryResult(BaseModel):
    """Summary of one discovery invocation."""

    country: str
    category: str
    units_total: int = 0
    units_done: int = 0
    units_processed: int = 0
    found: int = 0
    created: int = 0
    skipped: int = 0
    errors: int = 0
    complete: bool = False
    dry_run: bool = False
    archived_to: Optional[str] = None

    def summary(self) -> str:
        prefix = "[dry run] " if self.dry_run else ""
        state = "complete" if self.complete else "incomplete"
        return (
            f"{prefix}discovery {self.country}/{self.category} {state}: "
            f"{self.units_done}/{self.units_total} units | found {self.found} | "
            f"created {self.created} | skipped {self.skipped} | errors {self.errors}"
        )


def resume_command(country: str, category: str) -> str:
    return f"python -m placeflow discover --country {country} --category {category} --resume"


class IService(ABC):
    """Interface for the discovery service."""

    @abstractmethod
    async def run(
        self,
        country_code: str,
        category_slug: str,
        unit_slug: Optional[str] = None,
        resume: bool = False,
        dry_run: bool = False,
    ) -> DiscoveryResult: ...


class Service(IService):
    """Discovery engine over one (country, category) scope."""

    def __init__(
        self,
        repo: IRepository,
        serp: Optional[SerpClient],
        store: CheckpointStore,
        result_limit: int = 20,
        run_id: Optional[str] = None,
    ):
        self.repo = repo
        self.serp = serp
        self.store = store
        self.result_limit = result_limit
        self.run_id = run_id or uuid.uuid4().hex[:12]

    @log_execution_time("discovery")
    async def run(
        self,
        country_code: str,
        category_slug: str,
        unit_slug: Optional[str] = None,
        resume: bool = False,
        dry_run: bool = False,
    ) -> DiscoveryResult:
        """Discover listings for every unit of a country in one category.

        Raises:
            ConfigurationError: unknown country/category or no units to search.
            PersistenceError: a checkpoint or repository write failed.
        """
        if self.serp is None:
            raise ConfigurationError("Search client not configured; is BRIGHTDATA_API_TOKEN set?")
        country = get_country(country_code)
        category = get_category(category_slug)
        log = StructuredLogger.bind(stage="discovery", country=country.code, category=category.slug)

        all_units = await self.repo.list_units(country.code)
        units = await self.repo.list_units(country.code, unit_slug) if unit_slug else all_units
        if not units:
            target = f"unit '{unit_slug}'" if unit_slug else "units"
            raise ConfigurationError(f"No {target} found for {country.code}; is the country seeded?")

        progress = self.store.load("discovery", country.code, category.slug) if resume else None
        if progress is not None:
            log.info(
                f"Resuming: {len(progress.completed_units)}/{progress.stats.units_total} units already done"
            )
        else:
            progress = DiscoveryProgress(country=country.code, category=category.slug)
        progress.stats.units_total = len(all_units)

        result = DiscoveryResult(
            country=country.code,
            category=category.slug,
            units_total=len(all_units),
            dry_run=dry_run,
        )

        category_id = None
        if not dry_run:
            category_id = await self.repo.ensure_category(category.slug, category.label, category.icon)
            self.store.save(progress)

        for unit in units:
            if progress.is_unit_completed(unit.slug):
                log.debug(f"Skipping completed unit {unit.slug}")
                continue
            await self._discover_unit(
                unit, country, category, category_id, progress, result, dry_run
            )
            result.units_processed += 1

        result.units_done = progress.stats.units_done
        result.complete = progress.is_complete

        if result.complete and not dry_run:
            archived = self.store.archive("discovery", country.code, category.slug)
            result.archived_to = str(archived) if archived else None
        elif not result.complete:
            log.info(f"Stopped incomplete. Resume with: {resume_command(country.code, category.slug)}")

        log.info(result.summary())
        return result

    async def _discover_unit(
        self,
        unit: GeographicUnit,
        country: CountryConfig,
        category: CategoryConfig,
        category_id: Optional[int],
        progress: DiscoveryProgress,
        result: DiscoveryResult,
        dry_run: bool,
    ) -> None:
        progress.current_unit = unit.slug
        if not dry_run:
            self.store.save(progress)

        languages = unit.languages or country.languages
        terms = [(lang, category.search_term(lang)) for lang in languages]
        terms = [(lang, term) for lang, term in terms if term]
        if not terms:
            logger.debug(f"No search term for {category.slug} in {languages}; marking {unit.slug} done")

        found = created = skipped = errors = 0
        seen: set[str] = set()

        for language, term in terms:
            try:
                raw = await self.serp.search(
                    term, unit.name, language, country, self.result_limit
                )
            except ProviderError as e:
                logger.warning(f"Search failed for {unit.name} ({language}): {e}")
                progress.record_error(unit.slug, str(e))
                errors += 1
                continue

            listings = normalize_results(raw)
            found += len(listings)
            for listing in listings:
                slug = slugify(listing.name)
                if not slug:
                    continue
                if slug in seen or await self.repo.find_by_slug_and_unit(slug, unit.id):
                    skipped += 1
                    seen.add(slug)
                    continue
                seen.add(slug)
                if dry_run:
                    created += 1
                    continue
                record_id = await self.repo.insert(
                    self._new_record(listing, slug, unit, country), category_id
                )
                if record_id is None:
                    skipped += 1
                else:
                    created += 1

        progress.complete_unit(
            unit.slug, found=found, created=created, skipped=skipped, errors=errors
        )
        result.found += found
        result.created += created
        result.skipped += skipped
        result.errors += errors
        if not dry_run:
            self.store.save(progress)

        logger.info(
            f"[{country.code}] {unit.name}: found {found}, created {created}, "
            f"skipped {skipped}, errors {errors}"
        )

    def _new_record(
        self,
        listing: SearchResult,
        slug: str,
        unit: GeographicUnit,
        country: CountryConfig,
    ) -> NewBusinessRecord:
        provenance = {
            "googlePlaceId": listing.place_ref,
            "cid": listing.cid,
            "googleRating": listing.rating,
            "googleReviewCount": listing.review_count,
            "category": listing.category,
            "discoveredAt": utcnow().isoformat(),
            "discoverySource": f"brightdata_serp_{country.code.lower()}",
            "runId": self.run_id,
        }
        return NewBusinessRecord(
            unit_id=unit.id,
            slug=slug,
            name=listing.name,
            address=listing.address,
            phone=listing.phone,
            website=listing.website,
            lat=listing.lat,
            lng=listing.lng,
            avg_rating=listing.rating,
            review_count=listing.review_count or 0,
            scraped_content={k: v for k, v in provenance.items() if v is not None},
        )
