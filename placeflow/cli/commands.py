import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import typer

from placeflow.config import settings
from placeflow.core.exceptions import PipelineError
from placeflow.services.catalog.catalog import CATEGORIES
from placeflow.services.checkpoint.store import CheckpointStore, format_progress
from placeflow.services.content.service import format_stats
from placeflow.services.content.service import resume_command as content_resume
from placeflow.services.dataset.service import DATASET_MODES
from placeflow.services.dataset.service import resume_command as dataset_resume
from placeflow.services.discovery.service import resume_command as discovery_resume
from placeflow.services.pipeline.wiring import PipelineServices, pipeline_services

app = typer.Typer(help="Directory enrichment pipeline")

T = TypeVar("T")


def _configure(verbose: bool) -> None:
    if verbose:
        settings.log_level = "DEBUG"
        settings.configure_logging()


def _execute(action: Callable[[PipelineServices], Awaitable[T]]) -> T:
    """Run one action against freshly opened services; exit 1 on pipeline errors."""

    async def run() -> T:
        async with pipeline_services() as services:
            return await action(services)

    try:
        return asyncio.run(run())
    except PipelineError as e:
        print(f"❌ {type(e).__name__}: {e}")
        raise typer.Exit(code=1)


@app.command()
def discover(
    country: str = typer.Option(..., "--country", "-c", help="Country code (NL, BE, DE, ...)"),
    category: str = typer.Option(..., "--category", "-k", help="Category slug"),
    unit: Optional[str] = typer.Option(None, "--unit", "-t", help="Only this city/town slug"),
    resume: bool = typer.Option(False, "--resume/--fresh", help="Continue from the checkpoint"),
    dry_run: bool = typer.Option(False, "--dry-run", "-d", help="Search but write nothing"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """
    Discover new listings for a category in every city of a country.

    Examples:
        python -m placeflow discover -c BE -k veterinary
        python -m placeflow discover -c BE -k veterinary --resume
    """
    _configure(verbose)
    result = _execute(
        lambda s: s.discovery.run(
            country, category, unit_slug=unit, resume=resume, dry_run=dry_run
        )
    )
    print(result.summary())
    if not result.complete and not dry_run:
        print(f"▶ Resume with: {discovery_resume(result.country, result.category)}")


@app.command()
def enrich_dataset(
    country: str = typer.Option(..., "--country", "-c", help="Country code"),
    mode: str = typer.Option(
        "missing-hours", "--mode", help=f"Selection: {', '.join(DATASET_MODES)}"
    ),
    unit: Optional[str] = typer.Option(None, "--unit", "-t", help="Only records in this city"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Records per collection job"),
    max_batches: Optional[int] = typer.Option(
        1, "--max-batches", "-m", help="Collection jobs to run (0 = until done)"
    ),
    resume: bool = typer.Option(True, "--resume/--fresh", help="Continue from the checkpoint"),
    dry_run: bool = typer.Option(False, "--dry-run", "-d", help="List the batch, submit nothing"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Fill opening hours, ratings and reviews from the places dataset."""
    _configure(verbose)
    result = _execute(
        lambda s: s.dataset.run(
            country,
            mode=mode,
            unit_name=unit,
            batch_size=limit,
            max_batches=max_batches or None,
            resume=resume,
            dry_run=dry_run,
        )
    )
    print(result.summary())
    if not result.complete and not dry_run and unit is None:
        print(f"▶ Resume with: {dataset_resume(result.country, mode)}")


@app.command()
def enrich_content(
    country: str = typer.Option(..., "--country", "-c", help="Country code"),
    unit: Optional[str] = typer.Option(None, "--unit", "-t", help="Only records in this city"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Records per batch"),
    max_batches: Optional[int] = typer.Option(
        None, "--max-batches", "-m", help="Batches to run (default: until done)"
    ),
    resume: bool = typer.Option(True, "--resume/--fresh", help="Continue from the checkpoint"),
    dry_run: bool = typer.Option(False, "--dry-run", "-d", help="List the first batch only"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Generate descriptive content for records with thin descriptions."""
    _configure(verbose)
    result = _execute(
        lambda s: s.content.run(
            country,
            unit_name=unit,
            batch_size=batch_size,
            max_batches=max_batches,
            resume=resume,
            dry_run=dry_run,
        )
    )
    print(result.summary())
    if not result.complete and not dry_run and unit is None:
        if result.remaining:
            print(f"▶ {result.remaining} records still incomplete; retry them with --fresh")
        else:
            print(f"▶ Resume with: {content_resume(result.country)}")


@app.command()
def validate(
    country: str = typer.Option(..., "--country", "-c", help="Country code"),
):
    """Report enrichment completeness for a country (read-only)."""
    stats = _execute(lambda s: s.content.validate(country))
    print(format_stats(country.upper(), stats))


@app.command()
def run(
    country: str = typer.Option(..., "--country", "-c", help="Country code"),
    categories: Optional[list[str]] = typer.Option(
        None, "--category", "-k", help="Category slug (repeatable; default: all)"
    ),
    mode: str = typer.Option("missing-hours", "--mode", help="Dataset selection"),
    max_batches: Optional[int] = typer.Option(
        None, "--max-batches", "-m", help="Batches per enrichment stage (default: until done)"
    ),
    resume: bool = typer.Option(True, "--resume/--fresh"),
    dry_run: bool = typer.Option(False, "--dry-run", "-d"),
    skip_discovery: bool = typer.Option(False, "--skip-discovery"),
    skip_dataset: bool = typer.Option(False, "--skip-dataset"),
    skip_content: bool = typer.Option(False, "--skip-content"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """
    Full pipeline: discovery per category, dataset and content enrichment, validation.

    Examples:
        python -m placeflow run -c NL -k veterinary -k pet-store
        python -m placeflow run -c BE --skip-discovery --max-batches 2
    """
    _configure(verbose)
    report = _execute(
        lambda s: s.orchestrator.run_full(
            country,
            categories or list(CATEGORIES),
            resume=resume,
            dry_run=dry_run,
            dataset_mode=mode,
            dataset_max_batches=max_batches,
            content_max_batches=max_batches,
            skip_discovery=skip_discovery,
            skip_dataset=skip_dataset,
            skip_content=skip_content,
        )
    )
    print(report.summary())
    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def status(
    archived: bool = typer.Option(False, "--archived", "-a", help="Also list archived runs"),
):
    """Show progress of every stage with a live checkpoint."""
    store = CheckpointStore(settings.checkpoint_dir)
    try:
        documents = store.list_active()
    except PipelineError as e:
        print(f"❌ {e}")
        raise typer.Exit(code=1)

    if not documents:
        print("No runs in progress")
    for doc in documents:
        print(format_progress(doc))

    if archived:
        for path in store.list_archived():
            print(f"archived: {path.name}")
