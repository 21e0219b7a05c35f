"""Dataset enrichment: fill opening hours, ratings and reviews from the places dataset.

Each batch is one asynchronous collection job. Nothing is written until the
job's results have been downloaded and decoded, so a failed or timed-out job
leaves the repository and the checkpoint untouched and the batch can simply
be retried.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from loguru import logger
from pydantic import BaseModel

from placeflow.core.exceptions import (
    CollectionFailedError,
    CollectionTimeoutError,
    ConfigurationError,
    ContentValidationError,
    ProviderError,
)
from placeflow.core.logging import StructuredLogger, log_execution_time
from placeflow.services.catalog.catalog import get_country
from placeflow.services.checkpoint.models import EnrichmentProgress
from placeflow.services.checkpoint.store import CheckpointStore
from placeflow.services.dataset.mapping import DatasetUpdate
from placeflow.services.dataset.matching import build_input_url, match_record
from placeflow.services.places.models import BusinessRecord, IncompletePredicate
from placeflow.services.places.repo import IRepository
from placeflow.services.providers.dataset_client import (
    DatasetClient,
    EmptyResult,
    MalformedResult,
)

DATASET_MODES = ("missing-hours", "all-incomplete", "force-incomplete")


class DatasetResult(BaseModel):
    """Counters for one dataset enrichment invocation."""

    country: str
    mode: str = "missing-hours"
    batches: int = 0
    queried: int = 0
    received: int = 0
    matched: int = 0
    matched_by_cid: int = 0
    updated: int = 0
    with_hours: int = 0
    with_reviews: int = 0
    total_reviews: int = 0
    unmatched: int = 0
    failed: int = 0
    complete: bool = False
    dry_run: bool = False
    archived_to: Optional[str] = None

    def summary(self) -> str:
        prefix = "[dry run] " if self.dry_run else ""
        state = "complete" if self.complete else "incomplete"
        return (
            f"{prefix}dataset {self.country} ({self.mode}) {state}: "
            f"queried {self.queried} | received {self.received} | "
            f"matched {self.matched} ({self.matched_by_cid} via cid) | "
            f"updated {self.updated} | hours {self.with_hours} | "
            f"reviews {self.with_reviews} ({self.total_reviews} total) | "
            f"unmatched {self.unmatched} | failed {self.failed}"
        )


def resume_command(country: str, mode: str) -> str:
    return f"python -m placeflow enrich-dataset --country {country} --mode {mode} --resume"


class IService(ABC):
    """Interface for the dataset enrichment service."""

    @abstractmethod
    async def run(
        self,
        country_code: str,
        mode: IncompletePredicate = "missing-hours",
        unit_name: Optional[str] = None,
        batch_size: Optional[int] = None,
        max_batches: Optional[int] = 1,
        resume: bool = True,
        dry_run: bool = False,
    ) -> DatasetResult: ...


class Service(IService):
    """Batch enrichment of existing records through the places dataset."""

    def __init__(
        self,
        repo: IRepository,
        client: Optional[DatasetClient],
        store: CheckpointStore,
        batch_size: int = 50,
        poll_interval: float = 10.0,
        max_wait: float = 1800.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.repo = repo
        self.client = client
        self.store = store
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self._sleep = sleep

    @log_execution_time("dataset")
    async def run(
        self,
        country_code: str,
        mode: IncompletePredicate = "missing-hours",
        unit_name: Optional[str] = None,
        batch_size: Optional[int] = None,
        max_batches: Optional[int] = 1,
        resume: bool = True,
        dry_run: bool = False,
    ) -> DatasetResult:
        """Enrich up to ``max_batches`` batches of incomplete records.

        Raises:
            ConfigurationError: unknown country or selection mode.
            CollectionFailedError: the provider reported the job as failed.
            CollectionTimeoutError: the job was not ready within ``max_wait``.
            ContentValidationError: the job's results could not be decoded.
            ProviderError: the job could not be submitted or downloaded.
            PersistenceError: a checkpoint or repository write failed.
        """
        if mode not in DATASET_MODES:
            raise ConfigurationError(
                f"Unknown dataset mode '{mode}'. Available: {', '.join(DATASET_MODES)}"
            )
        if self.client is None and not dry_run:
            raise ConfigurationError("Dataset client not configured; is BRIGHTDATA_API_TOKEN set?")
        country = get_country(country_code)
        limit = batch_size or self.batch_size
        log = StructuredLogger.bind(stage="dataset", country=country.code)
        # A unit-filtered cursor would skip other units' records, so it is not persisted.
        persist = not dry_run and unit_name is None

        progress = self.store.load("dataset", country.code) if resume and persist else None
        if progress is not None:
            log.info(
                f"Resuming after record {progress.last_processed_id} "
                f"({progress.stats.processed}/{progress.stats.to_process} processed)"
            )
        else:
            progress = EnrichmentProgress(kind="dataset", country=country.code)
            progress.stats.to_process = await self.repo.count_incomplete(country.code, mode)

        result = DatasetResult(country=country.code, mode=mode, dry_run=dry_run)
        if persist:
            self.store.save(progress)

        while max_batches is None or result.batches < max_batches:
            records, correlated = await self._next_batch(
                country.code, mode, progress, limit, unit_name
            )
            if not records:
                result.complete = True
                break

            result.batches += 1
            result.queried += len(records)
            if dry_run:
                for record in records:
                    log.info(f"[dry run] #{record.id} {record.name}: {build_input_url(record)}")
                break

            await self._enrich_batch(records, progress, result, persist, correlated)

        if result.complete and persist:
            archived = self.store.archive("dataset", country.code)
            result.archived_to = str(archived) if archived else None
        elif not result.complete and persist:
            log.info(f"Stopped incomplete. Resume with: {resume_command(country.code, mode)}")

        log.info(result.summary())
        return result

    async def _next_batch(
        self,
        country_code: str,
        mode: IncompletePredicate,
        progress: EnrichmentProgress,
        limit: int,
        unit_name: Optional[str],
    ) -> tuple[list[BusinessRecord], bool]:
        """Next records to submit: correlated records first, then the rest."""
        if not progress.correlated_done:
            records = await self.repo.select_incomplete(
                country_code,
                mode,
                progress.correlated_cursor,
                limit,
                unit_name,
                correlated=True,
            )
            if records:
                return records, True
            progress.correlated_done = True

        records = await self.repo.select_incomplete(
            country_code,
            mode,
            progress.last_processed_id,
            limit,
            unit_name,
            correlated=False,
        )
        return records, False

    async def _enrich_batch(
        self,
        records: list[BusinessRecord],
        progress: EnrichmentProgress,
        result: DatasetResult,
        persist: bool = True,
        correlated: bool = False,
    ) -> None:
        inputs = {build_input_url(record): record for record in records}

        items = await self._collect([{"url": url} for url in inputs])
        result.received += len(items)

        pending = list(records)
        for item in items:
            if item.get("error"):
                failed = self._record_provider_error(item, inputs, progress, result)
                if failed is not None and failed in pending:
                    pending.remove(failed)
                continue

            record, tier = match_record(item, pending)
            if record is None:
                result.unmatched += 1
                logger.warning(
                    f"No match for dataset result '{item.get('name')}' (cid: {item.get('cid') or 'none'})"
                )
                continue

            pending.remove(record)
            result.matched += 1
            if tier == "cid":
                result.matched_by_cid += 1
            elif tier == "substring":
                logger.info(f"Matched '{item.get('name')}' to #{record.id} '{record.name}' by substring")

            await self._apply(record, DatasetUpdate(item), result)
            progress.stats.enriched += 1

        progress.stats.skipped += len(pending)
        progress.stats.processed += len(records)
        last_id = max(record.id for record in records)
        if correlated:
            progress.advance_correlated_cursor(last_id)
        else:
            progress.advance_cursor(last_id)
        if persist:
            self.store.save(progress)

    async def _collect(self, inputs: list[dict[str, str]]) -> list[dict]:
        snapshot_id = await self.client.submit(inputs)
        await self._wait_until_ready(snapshot_id)

        decoded = await self.client.fetch_results(snapshot_id)
        if isinstance(decoded, MalformedResult):
            raise ContentValidationError(
                f"Snapshot {snapshot_id} returned malformed results: {decoded.reason}"
            )
        if isinstance(decoded, EmptyResult):
            logger.warning(f"Snapshot {snapshot_id} returned no results")
            return []
        return decoded.items

    async def _wait_until_ready(self, snapshot_id: str) -> None:
        waited = 0.0
        while waited < self.max_wait:
            await self._sleep(self.poll_interval)
            waited += self.poll_interval
            try:
                status = await self.client.poll_status(snapshot_id)
            except ProviderError as e:
                logger.warning(f"Polling snapshot {snapshot_id} failed, will retry: {e}")
                continue

            if status == "ready":
                logger.info(f"Snapshot {snapshot_id} ready after {waited:.0f}s")
                return
            if status == "failed":
                raise CollectionFailedError(f"Snapshot {snapshot_id} failed")
            logger.debug(f"Snapshot {snapshot_id} pending ({waited:.0f}s)")

        raise CollectionTimeoutError(
            f"Snapshot {snapshot_id} not ready after {self.max_wait:.0f}s"
        )

    async def _apply(
        self, record: BusinessRecord, update: DatasetUpdate, result: DatasetResult
    ) -> None:
        await self.repo.update_fields(record.id, update.fields)
        await self.repo.merge_structured_content(record.id, update.content_patch)
        await self.repo.add_quality_flags(record.id, update.flags)

        result.updated += 1
        if update.opening_hours:
            result.with_hours += 1
        if update.reviews:
            result.with_reviews += 1
            result.total_reviews += len(update.reviews)
        logger.debug(
            f"Updated #{record.id} {record.name}: hours={bool(update.opening_hours)} "
            f"reviews={len(update.reviews)}"
        )

    @staticmethod
    def _record_provider_error(
        item: dict,
        inputs: dict[str, BusinessRecord],
        progress: EnrichmentProgress,
        result: DatasetResult,
    ) -> Optional[BusinessRecord]:
        url = item.get("input", {}).get("url") if isinstance(item.get("input"), dict) else None
        record = inputs.get(url) if url else None
        message = str(item.get("error"))
        result.failed += 1
        progress.stats.failed += 1
        if record is not None:
            progress.record_error(record.id, record.name, message)
        logger.warning(f"Dataset error for {url or 'unknown input'}: {message}")
        return record
