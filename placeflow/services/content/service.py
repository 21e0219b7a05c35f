"""Content enrichment: generate listing copy for records with thin descriptions.

The scan walks records in id order behind a persisted cursor. The cursor
advances and the checkpoint is written after every record, whether or not
generation succeeded, so a restart never repeats paid work.
"""

from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger
from pydantic import BaseModel

from placeflow.core.exceptions import (
    ConfigurationError,
    ContentValidationError,
    ProviderError,
)
from placeflow.core.logging import StructuredLogger, log_execution_time
from placeflow.services.catalog.catalog import get_country
from placeflow.services.checkpoint.models import EnrichmentProgress, utcnow
from placeflow.services.checkpoint.store import CheckpointStore
from placeflow.services.content.prompts import build_prompt
from placeflow.services.places.models import BusinessRecord, EnrichmentStats
from placeflow.services.places.repo import IRepository
from placeflow.services.providers.content_client import ContentClient, GeneratedContent

CONTENT_SOURCE = "openai_pipeline"
DESCRIPTION_MAX_LENGTH = 500


class ContentResult(BaseModel):
    """Counters for one content enrichment invocation."""

    country: str
    batches: int = 0
    queried: int = 0
    processed: int = 0
    enriched: int = 0
    failed: int = 0
    remaining: Optional[int] = None
    complete: bool = False
    dry_run: bool = False
    archived_to: Optional[str] = None

    def summary(self) -> str:
        prefix = "[dry run] " if self.dry_run else ""
        state = "complete" if self.complete else "incomplete"
        remaining = f" | remaining {self.remaining}" if self.remaining is not None else ""
        return (
            f"{prefix}content {self.country} {state}: processed {self.processed} | "
            f"enriched {self.enriched} | failed {self.failed}{remaining}"
        )


def resume_command(country: str) -> str:
    return f"python -m placeflow enrich-content --country {country} --resume"


def format_stats(country_code: str, stats: EnrichmentStats) -> str:
    rows = [
        ("Total records", stats.total, None),
        ("Fully enriched", stats.enriched, stats.percent(stats.enriched)),
        ("Partial", stats.partial, stats.percent(stats.partial)),
        ("Not enriched", stats.unenriched, stats.percent(stats.unenriched)),
        ("Missing hours", stats.missing_hours, stats.percent(stats.missing_hours)),
    ]
    lines = [f"Enrichment statistics for {country_code}"]
    for label, value, pct in rows:
        suffix = f" ({pct}%)" if pct is not None else ""
        lines.append(f"  {label:<16}{value:>8}{suffix}")
    return "\n".join(lines)


def content_patch(content: GeneratedContent) -> dict:
    return {
        "aboutUs": content.about_us,
        "highlights": content.highlights,
        "services": content.services,
        "targetAudience": content.target_audience or None,
        "metaDescription": content.meta_description or None,
        "contentSource": CONTENT_SOURCE,
        "contentGeneratedAt": utcnow().isoformat(),
    }


class IService(ABC):
    """Interface for the content enrichment service."""

    @abstractmethod
    async def run(
        self,
        country_code: str,
        unit_name: Optional[str] = None,
        batch_size: Optional[int] = None,
        max_batches: Optional[int] = None,
        resume: bool = True,
        dry_run: bool = False,
    ) -> ContentResult: ...

    @abstractmethod
    async def validate(self, country_code: str) -> EnrichmentStats: ...


class Service(IService):
    """Cursor-driven generation of narrative content."""

    def __init__(
        self,
        repo: IRepository,
        client: Optional[ContentClient],
        store: CheckpointStore,
        batch_size: int = 20,
    ):
        self.repo = repo
        self.client = client
        self.store = store
        self.batch_size = batch_size

    @log_execution_time("enrichment")
    async def run(
        self,
        country_code: str,
        unit_name: Optional[str] = None,
        batch_size: Optional[int] = None,
        max_batches: Optional[int] = None,
        resume: bool = True,
        dry_run: bool = False,
    ) -> ContentResult:
        """Generate content for records past the cursor.

        Raises:
            ConfigurationError: unknown country or no content client.
            PersistenceError: a checkpoint or repository write failed.
        """
        if self.client is None and not dry_run:
            raise ConfigurationError("Content client not configured; is OPENAI_API_KEY set?")
        country = get_country(country_code)
        limit = batch_size or self.batch_size
        log = StructuredLogger.bind(stage="enrichment", country=country.code)
        persist = not dry_run and unit_name is None

        progress = self.store.load("enrichment", country.code) if resume and persist else None
        if progress is not None:
            log.info(
                f"Resuming after record {progress.last_processed_id} "
                f"({progress.stats.processed}/{progress.stats.to_process} processed)"
            )
        else:
            progress = EnrichmentProgress(kind="enrichment", country=country.code)
            progress.stats.to_process = await self.repo.count_incomplete(country.code, "content")

        result = ContentResult(country=country.code, dry_run=dry_run)
        if persist:
            self.store.save(progress)

        exhausted = False
        while max_batches is None or result.batches < max_batches:
            records = await self.repo.select_incomplete(
                country.code, "content", progress.last_processed_id, limit, unit_name
            )
            if not records:
                exhausted = True
                break

            result.batches += 1
            result.queried += len(records)
            if dry_run:
                for record in records:
                    log.info(f"[dry run] would generate content for #{record.id} {record.name}")
                break

            for record in records:
                await self._enrich_record(record, country.default_language, progress, result)
                progress.advance_cursor(record.id)
                progress.stats.processed += 1
                result.processed += 1
                if persist:
                    self.store.save(progress)

            log.info(
                f"Batch {result.batches}: {progress.stats.processed}/{progress.stats.to_process} "
                f"processed, {progress.stats.failed} failed"
            )

        if exhausted and not dry_run:
            result.remaining = await self.repo.count_incomplete(country.code, "content")
            result.complete = result.remaining == 0
            if result.complete and persist:
                archived = self.store.archive("enrichment", country.code)
                result.archived_to = str(archived) if archived else None
            elif not result.complete:
                log.warning(
                    f"Scan finished with {result.remaining} records still incomplete; "
                    f"rerun with --fresh to retry them"
                )
        elif persist:
            log.info(f"Stopped incomplete. Resume with: {resume_command(country.code)}")

        log.info(result.summary())
        return result

    async def _enrich_record(
        self,
        record: BusinessRecord,
        language: str,
        progress: EnrichmentProgress,
        result: ContentResult,
    ) -> None:
        try:
            content = await self.client.generate(build_prompt(record, language))
        except (ProviderError, ContentValidationError) as e:
            logger.warning(f"Content generation failed for #{record.id} {record.name}: {e}")
            progress.record_error(record.id, record.name, str(e))
            progress.stats.failed += 1
            result.failed += 1
            return

        await self.repo.merge_structured_content(record.id, content_patch(content))
        await self.repo.update_fields(
            record.id, {"description": content.about_us[:DESCRIPTION_MAX_LENGTH]}
        )
        progress.stats.enriched += 1
        result.enriched += 1
        logger.debug(f"Generated {len(content.about_us)} chars for #{record.id} {record.name}")

    @log_execution_time("validation")
    async def validate(self, country_code: str) -> EnrichmentStats:
        """Read-only completeness report for a country."""
        country = get_country(country_code)
        stats = await self.repo.enrichment_stats(country.code)
        logger.info("\n" + format_stats(country.code, stats))
        return stats
