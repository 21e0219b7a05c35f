"""BrightData Datasets v3 client for the Google Maps places dataset.

Collection is asynchronous: ``submit`` triggers a snapshot for a list of
Google Maps URLs, ``poll_status`` reports its progress and ``fetch_results``
downloads it once ready.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Union

import httpx
from loguru import logger

from placeflow.core.exceptions import ConfigurationError, TransientProviderError
from placeflow.core.logging import log_http_request
from placeflow.services.providers.rate_limiter import RateLimiter

DATASETS_BASE_URL = "https://api.brightdata.com/datasets/v3"

JobStatus = Literal["ready", "failed", "pending"]


@dataclass
class ResultList:
    items: list[dict] = field(default_factory=list)


@dataclass
class EmptyResult:
    pass


@dataclass
class MalformedResult:
    reason: str


DecodedResults = Union[ResultList, EmptyResult, MalformedResult]


def decode_results(payload: Any) -> DecodedResults:
    """Normalize the snapshot payload shapes the API is known to return.

    * a bare JSON array of result objects
    * an object wrapping the array in ``data``
    * a single result object
    """
    if payload is None:
        return EmptyResult()

    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        if isinstance(payload.get("data"), list):
            items = payload["data"]
        elif not payload:
            return EmptyResult()
        else:
            items = [payload]
    else:
        return MalformedResult(reason=f"unexpected payload type {type(payload).__name__}")

    items = [item for item in items if isinstance(item, dict)]
    if not items:
        return EmptyResult()
    return ResultList(items=items)


class DatasetClient:
    """Client for triggering, polling and downloading dataset snapshots."""

    provider = "dataset"

    def __init__(
        self,
        api_token: Optional[str],
        dataset_id: str,
        limiter: RateLimiter,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 120.0,
    ):
        if not api_token:
            raise ConfigurationError("BRIGHTDATA_API_TOKEN not set")
        self.api_token = api_token
        self.dataset_id = dataset_id
        self.limiter = limiter
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "DatasetClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_token}"}

    async def submit(self, inputs: list[dict[str, str]]) -> str:
        """Trigger a collection job for ``[{"url": ...}, ...]``; returns the snapshot id."""

        async def _trigger() -> str:
            data = await self._send(
                "POST",
                f"{DATASETS_BASE_URL}/trigger",
                params={"dataset_id": self.dataset_id, "include_errors": "true"},
                json=inputs,
            )
            snapshot_id = data.get("snapshot_id") if isinstance(data, dict) else None
            if not snapshot_id:
                raise TransientProviderError(f"Trigger response has no snapshot_id: {data!r:.200}")
            return str(snapshot_id)

        snapshot_id = await self.limiter.call(self.provider, _trigger)
        logger.info(f"Dataset collection triggered for {len(inputs)} inputs, snapshot {snapshot_id}")
        return snapshot_id

    async def poll_status(self, snapshot_id: str) -> JobStatus:
        """Current job status; anything but ready/failed counts as pending."""

        async def _progress() -> Any:
            return await self._send("GET", f"{DATASETS_BASE_URL}/progress/{snapshot_id}")

        data = await self.limiter.call(self.provider, _progress)
        status = data.get("status") if isinstance(data, dict) else None
        if status in ("ready", "failed"):
            return status
        return "pending"

    async def fetch_results(self, snapshot_id: str) -> DecodedResults:
        async def _download() -> Any:
            return await self._send(
                "GET",
                f"{DATASETS_BASE_URL}/snapshot/{snapshot_id}",
                params={"format": "json"},
            )

        payload = await self.limiter.call(self.provider, _download)
        return decode_results(payload)

    async def _send(self, method: str, url: str, **kwargs) -> Any:
        start = time.monotonic()
        response = await self._client.request(method, url, headers=self._headers, **kwargs)
        log_http_request(
            self.provider, method, url, response.status_code, time.monotonic() - start
        )
        if not response.is_success:
            raise TransientProviderError(
                f"Dataset API error {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransientProviderError(f"Dataset API returned invalid JSON: {e}") from e
