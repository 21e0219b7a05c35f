"""
Online tests for the provider clients - real SERP and OpenAI calls.

Run with: pytest placeflow/services/providers/providers_online_test.py --online -v -s

These tests require:
- BRIGHTDATA_API_TOKEN and BRIGHTDATA_SERP_ZONE for the search test
- OPENAI_API_KEY for the content test
"""

import pytest
from loguru import logger

from placeflow.config import settings
from placeflow.services.catalog.catalog import get_country
from placeflow.services.content.prompts import build_prompt
from placeflow.services.places.models import BusinessRecord
from placeflow.services.providers.content_client import ContentClient
from placeflow.services.providers.rate_limiter import RateLimiter
from placeflow.services.providers.serp_client import SerpClient

SAMPLE_RECORD = BusinessRecord(
    id=1,
    unit_id=1,
    slug="dierenkliniek-artevelde",
    name="Dierenkliniek Artevelde",
    address="Kortrijksesteenweg 100, 9000 Gent",
    unit_name="Gent",
    country_name="België",
    category_slug="veterinary",
    category_name="Dierenarts",
    avg_rating=4.7,
    review_count=120,
)


@pytest.mark.online
class TestSerpClientOnline:
    @pytest.mark.asyncio
    async def test_search_returns_local_results(self):
        limiter = RateLimiter(settings.provider_policies)
        async with SerpClient(
            settings.brightdata_api_token, settings.brightdata_serp_zone, limiter
        ) as client:
            results = await client.search("dierenarts", "Gent", "nl", get_country("BE"), limit=5)

        logger.info(f"SERP returned {len(results)} results")
        for result in results:
            logger.info(f"  {result.get('title') or result.get('name')} | {result.get('address')}")

        assert results
        assert all(result.get("title") or result.get("name") for result in results)


@pytest.mark.online
class TestContentClientOnline:
    @pytest.mark.asyncio
    async def test_generate_passes_structural_check(self):
        limiter = RateLimiter(settings.provider_policies)
        async with ContentClient(settings.openai_api_key, settings.ai_model, limiter) as client:
            content = await client.generate(build_prompt(SAMPLE_RECORD, "nl"))

        logger.info("=" * 60)
        logger.info(content.about_us)
        logger.info("=" * 60)

        assert len(content.about_us) >= 50
        assert len(content.highlights) >= 3
        assert len(content.services) >= 3
