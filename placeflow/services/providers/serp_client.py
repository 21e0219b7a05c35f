"""BrightData SERP API client for Google local search results.

BrightData proxies a Google search URL through a configured SERP zone and
returns the parsed page as JSON. The parsed page is sometimes wrapped in a
``body`` field, either as a JSON string or as an object.

Setup:
1. Create a SERP API zone in the BrightData dashboard
2. Set BRIGHTDATA_API_TOKEN and BRIGHTDATA_SERP_ZONE
"""

import json
import time
from typing import Any, Optional
from urllib.parse import quote, urlencode

import httpx
from loguru import logger

from placeflow.core.exceptions import ConfigurationError, TransientProviderError
from placeflow.core.logging import log_http_request
from placeflow.services.catalog.catalog import CountryConfig
from placeflow.services.providers.rate_limiter import RateLimiter

BRIGHTDATA_REQUEST_URL = "https://api.brightdata.com/request"

# Where the local results live, depending on the page layout Google served
LOCAL_RESULT_KEYS = ("snack_pack", "local_results", "local_pack", "places")


def build_search_url(
    query: str, unit_name: str, language: str, country: CountryConfig, limit: int
) -> str:
    """Google local-results search URL for ``query`` in ``unit_name``."""
    params = urlencode(
        {
            "q": f"{query} {unit_name}",
            "tbm": "lcl",
            "hl": language,
            "gl": country.google_gl,
            "num": limit,
        },
        quote_via=quote,
    )
    return f"https://www.{country.google_domain}/search?{params}"


def extract_local_results(data: Any) -> list[dict]:
    """Pull the raw local result dicts out of a parsed SERP page."""
    if not isinstance(data, dict):
        return []
    for key in LOCAL_RESULT_KEYS:
        results = data.get(key)
        if results:
            return [r for r in results if isinstance(r, dict)]
    return []


class SerpClient:
    """Client for the BrightData SERP request endpoint."""

    provider = "serp"

    def __init__(
        self,
        api_token: Optional[str],
        zone: Optional[str],
        limiter: RateLimiter,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        if not api_token or not zone:
            raise ConfigurationError(
                "BrightData credentials not configured (BRIGHTDATA_API_TOKEN, BRIGHTDATA_SERP_ZONE)"
            )
        self.api_token = api_token
        self.zone = zone
        self.limiter = limiter
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "SerpClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def search(
        self,
        query: str,
        unit_name: str,
        language: str,
        country: CountryConfig,
        limit: int = 20,
    ) -> list[dict]:
        """Run one local search and return the raw result dicts.

        Raises:
            ProviderError: when every attempt failed.
        """
        search_url = build_search_url(query, unit_name, language, country, limit)
        logger.debug(f'SERP: "{query}" in {unit_name} ({language})')
        results = await self.limiter.call(self.provider, lambda: self._request(search_url))
        logger.debug(f"Parsed {len(results)} local results for {unit_name} ({language})")
        return results

    async def _request(self, search_url: str) -> list[dict]:
        start = time.monotonic()
        response = await self._client.post(
            BRIGHTDATA_REQUEST_URL,
            headers={
                "Authorization": f"Bearer {self.api_token}",
                "Content-Type": "application/json",
            },
            json={"zone": self.zone, "url": search_url, "format": "json"},
        )
        log_http_request(
            self.provider, "POST", search_url, response.status_code, time.monotonic() - start
        )

        if not response.is_success:
            raise TransientProviderError(
                f"SERP API error {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            body = data.get("body") if isinstance(data, dict) else None
            if isinstance(body, str):
                data = json.loads(body)
            elif body:
                data = body
        except ValueError as e:
            raise TransientProviderError(f"SERP API returned invalid JSON: {e}") from e

        return extract_local_results(data)
