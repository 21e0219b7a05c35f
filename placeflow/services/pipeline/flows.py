"""Prefect flows for the enrichment pipeline.

Flow structure for a full run of one country:

    discover (per category) ──→ dataset ──→ content ──→ validate

Every task resumes from its own checkpoint, so a failed flow run is
recovered by running it again.
"""

from typing import Optional

from loguru import logger
from prefect import flow, task

from placeflow.core.exceptions import PipelineError
from placeflow.services.pipeline.wiring import pipeline_services


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@task(log_prints=True)
async def discover_task(country: str, category: str, resume: bool = True) -> dict:
    """Discover listings for one category."""
    async with pipeline_services() as services:
        result = await services.discovery.run(country, category, resume=resume)
        return result.model_dump()


@task(retries=1, retry_delay_seconds=300, log_prints=True)
async def enrich_dataset_task(
    country: str, mode: str = "missing-hours", max_batches: Optional[int] = None
) -> dict:
    """Fill opening hours, ratings and reviews from the places dataset."""
    async with pipeline_services() as services:
        result = await services.dataset.run(country, mode=mode, max_batches=max_batches)
        return result.model_dump()


@task(log_prints=True)
async def enrich_content_task(country: str, max_batches: Optional[int] = None) -> dict:
    """Generate descriptive content for thin records."""
    async with pipeline_services() as services:
        result = await services.content.run(country, max_batches=max_batches)
        return result.model_dump()


@task(log_prints=True)
async def validate_task(country: str) -> dict:
    async with pipeline_services() as services:
        stats = await services.content.validate(country)
        return stats.model_dump()


# ---------------------------------------------------------------------------
# Flows
# ---------------------------------------------------------------------------


@flow(name="placeflow-full", log_prints=True)
async def full_pipeline_flow(
    country: str,
    categories: list[str],
    dataset_mode: str = "missing-hours",
    dataset_max_batches: Optional[int] = None,
    content_max_batches: Optional[int] = None,
):
    """Full pipeline for one country, resuming every stage.

    Args:
        country: ISO country code
        categories: Category slugs to discover
        dataset_mode: Dataset selection predicate
        dataset_max_batches: Dataset batches to run (None = until done)
        content_max_batches: Content batches to run (None = until done)
    """
    async with pipeline_services() as services:
        report = await services.orchestrator.run_full(
            country,
            categories,
            dataset_mode=dataset_mode,
            dataset_max_batches=dataset_max_batches,
            content_max_batches=content_max_batches,
        )
    if not report.ok:
        raise PipelineError(report.summary())
    return report.model_dump()


@flow(name="placeflow-discover", log_prints=True)
async def discover_flow(country: str, categories: list[str]):
    """Discovery only, one task per category."""
    results = {}
    for category in categories:
        results[category] = await discover_task(country, category)
        logger.info(f"Discovery {country}/{category} done: {results[category]['created']} created")
    return results


@flow(name="placeflow-enrich", log_prints=True)
async def enrich_flow(
    country: str,
    dataset_mode: str = "missing-hours",
    dataset_max_batches: Optional[int] = 1,
    content_max_batches: Optional[int] = 5,
):
    """Incremental enrichment: a few dataset and content batches, then stats."""
    dataset = await enrich_dataset_task(country, mode=dataset_mode, max_batches=dataset_max_batches)
    logger.info(f"Dataset enrichment: {dataset['updated']} updated")

    content = await enrich_content_task(country, max_batches=content_max_batches)
    logger.info(f"Content enrichment: {content['enriched']} enriched, {content['failed']} failed")

    stats = await validate_task(country)
    return {"dataset": dataset, "content": content, "stats": stats}
