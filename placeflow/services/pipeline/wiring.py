"""Construction of the stage services from settings.

Used by the CLI and the Prefect flows. A provider whose credentials are
missing is left out; the stage that needs it then fails with a
ConfigurationError when it is run.
"""

from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, TypeVar

import asyncpg
from loguru import logger

from placeflow.config import Settings, settings
from placeflow.core.exceptions import ConfigurationError, PersistenceError
from placeflow.db.db import close_pool, init_pool
from placeflow.services.checkpoint.store import CheckpointStore
from placeflow.services.content.service import Service as ContentService
from placeflow.services.dataset.service import Service as DatasetService
from placeflow.services.discovery.service import Service as DiscoveryService
from placeflow.services.pipeline.service import Orchestrator
from placeflow.services.places.repo import PostgresRepository
from placeflow.services.providers.content_client import ContentClient
from placeflow.services.providers.dataset_client import DatasetClient
from placeflow.services.providers.rate_limiter import RateLimiter
from placeflow.services.providers.serp_client import SerpClient

T = TypeVar("T")


@dataclass
class PipelineServices:
    store: CheckpointStore
    discovery: DiscoveryService
    dataset: DatasetService
    content: ContentService

    @property
    def orchestrator(self) -> Orchestrator:
        return Orchestrator(self.discovery, self.dataset, self.content)


def _optional_client(name: str, build: Callable[[], T]) -> Optional[T]:
    try:
        return build()
    except ConfigurationError as e:
        logger.warning(f"{name} client unavailable: {e}")
        return None


@asynccontextmanager
async def pipeline_services(config: Settings = settings) -> AsyncIterator[PipelineServices]:
    """Open the database pool and provider clients for one invocation."""
    try:
        pool = await init_pool()
    except (OSError, asyncpg.PostgresError) as e:
        raise PersistenceError(f"Cannot connect to the database: {e}") from e
    limiter = RateLimiter(config.provider_policies)
    store = CheckpointStore(config.checkpoint_dir)
    repo = PostgresRepository(pool)

    async with AsyncExitStack() as stack:
        stack.push_async_callback(close_pool)
        serp = _optional_client(
            "Search",
            lambda: SerpClient(config.brightdata_api_token, config.brightdata_serp_zone, limiter),
        )
        dataset = _optional_client(
            "Dataset",
            lambda: DatasetClient(
                config.brightdata_api_token, config.brightdata_dataset_id, limiter
            ),
        )
        content = _optional_client(
            "Content",
            lambda: ContentClient(config.openai_api_key, config.ai_model, limiter),
        )
        for client in (serp, dataset, content):
            if client is not None:
                await stack.enter_async_context(client)

        yield PipelineServices(
            store=store,
            discovery=DiscoveryService(
                repo, serp, store, result_limit=config.discovery_result_limit
            ),
            dataset=DatasetService(
                repo,
                dataset,
                store,
                batch_size=config.dataset_batch_size,
                poll_interval=config.dataset_poll_interval_seconds,
                max_wait=config.dataset_max_wait_seconds,
            ),
            content=ContentService(repo, content, store, batch_size=config.content_batch_size),
        )
