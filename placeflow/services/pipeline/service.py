"""Full pipeline orchestration: discovery, enrichment, validation.

The orchestrator holds no state. Every stage keeps its own checkpoint, so a
killed full run is recovered by invoking it again with ``resume``.
"""

import uuid
from typing import Any, Awaitable, Callable, Literal, Optional

from loguru import logger
from pydantic import BaseModel

from placeflow.core.exceptions import PersistenceError, PipelineError
from placeflow.core.logging import log_execution_time, run_id_var
from placeflow.services.catalog.catalog import get_country
from placeflow.services.content.service import IService as ContentIService
from placeflow.services.dataset.service import IService as DatasetIService
from placeflow.services.discovery.service import IService as DiscoveryIService
from placeflow.services.places.models import EnrichmentStats, IncompletePredicate

StageStatus = Literal["completed", "incomplete", "failed", "skipped"]


class StageOutcome(BaseModel):
    stage: str
    category: Optional[str] = None
    status: StageStatus
    summary: str = ""
    error: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.stage}[{self.category}]" if self.category else self.stage


class PipelineReport(BaseModel):
    """Per-stage outcomes of one full run."""

    country: str
    outcomes: list[StageOutcome] = []
    stats: Optional[EnrichmentStats] = None
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return not self.aborted and all(o.status != "failed" for o in self.outcomes)

    def summary(self) -> str:
        lines = [f"Pipeline {self.country}: {'ok' if self.ok else 'FAILED'}"]
        for outcome in self.outcomes:
            detail = outcome.error or outcome.summary
            lines.append(f"  {outcome.label:<28} {outcome.status:<11} {detail}")
        if self.aborted:
            lines.append("  aborted: remaining stages were not run")
        return "\n".join(lines)


class Orchestrator:
    """Sequences the stages for one country over a list of categories."""

    def __init__(
        self,
        discovery: Optional[DiscoveryIService],
        dataset: Optional[DatasetIService],
        content: Optional[ContentIService],
    ):
        self.discovery = discovery
        self.dataset = dataset
        self.content = content

    @log_execution_time("pipeline")
    async def run_full(
        self,
        country_code: str,
        categories: list[str],
        resume: bool = True,
        dry_run: bool = False,
        dataset_mode: IncompletePredicate = "missing-hours",
        dataset_max_batches: Optional[int] = None,
        content_max_batches: Optional[int] = None,
        skip_discovery: bool = False,
        skip_dataset: bool = False,
        skip_content: bool = False,
        skip_validation: bool = False,
    ) -> PipelineReport:
        """Run every enabled stage in order.

        Stage failures are recorded and the run moves on; a PersistenceError
        aborts the run with the report built so far.
        """
        country = get_country(country_code)
        report = PipelineReport(country=country.code)
        token = run_id_var.set(uuid.uuid4().hex[:12])

        try:
            for category in categories:
                await self._stage(
                    report,
                    "discovery",
                    skip_discovery or self.discovery is None,
                    lambda category=category: self.discovery.run(
                        country.code, category, resume=resume, dry_run=dry_run
                    ),
                    category=category,
                )

            await self._stage(
                report,
                "dataset",
                skip_dataset or self.dataset is None,
                lambda: self.dataset.run(
                    country.code,
                    mode=dataset_mode,
                    max_batches=dataset_max_batches,
                    resume=resume,
                    dry_run=dry_run,
                ),
            )

            await self._stage(
                report,
                "content",
                skip_content or self.content is None,
                lambda: self.content.run(
                    country.code,
                    max_batches=content_max_batches,
                    resume=resume,
                    dry_run=dry_run,
                ),
            )

            report.stats = await self._stage(
                report,
                "validation",
                skip_validation or self.content is None,
                lambda: self.content.validate(country.code),
            )
        except PersistenceError:
            report.aborted = True
        finally:
            run_id_var.reset(token)

        logger.info("\n" + report.summary())
        return report

    async def _stage(
        self,
        report: PipelineReport,
        stage: str,
        skip: bool,
        run: Callable[[], Awaitable[Any]],
        category: Optional[str] = None,
    ) -> Any:
        if skip:
            report.outcomes.append(StageOutcome(stage=stage, category=category, status="skipped"))
            return None

        try:
            result = await run()
        except PersistenceError as e:
            logger.error(f"{stage} stopped on a persistence failure: {e}")
            report.outcomes.append(
                StageOutcome(stage=stage, category=category, status="failed", error=str(e))
            )
            raise
        except PipelineError as e:
            logger.error(f"{stage}{f' [{category}]' if category else ''} failed: {e}")
            report.outcomes.append(
                StageOutcome(stage=stage, category=category, status="failed", error=str(e))
            )
            return None

        complete = getattr(result, "complete", True)
        if isinstance(result, EnrichmentStats):
            summary = (
                f"{result.enriched}/{result.total} enriched, "
                f"{result.missing_hours} missing hours"
            )
        else:
            summary = result.summary()
        report.outcomes.append(
            StageOutcome(
                stage=stage,
                category=category,
                status="completed" if complete else "incomplete",
                summary=summary,
            )
        )
        return result
