"""OpenAI chat-completions client for generated listing content."""

import json
import re
from typing import Optional

from loguru import logger
from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from placeflow.core.exceptions import (
    ConfigurationError,
    ContentValidationError,
    TransientProviderError,
)
from placeflow.services.providers.rate_limiter import RateLimiter

SYSTEM_PROMPT = "Je bent een expert copywriter. Antwoord alleen met valid JSON."

_FENCE_RE = re.compile(r"```(?:json)?\n?")


class GeneratedContent(BaseModel):
    """Structured content returned by the generator.

    The minimum lengths are the structural check every response must pass.
    """

    model_config = ConfigDict(populate_by_name=True)

    about_us: str = Field(alias="aboutUs", min_length=50)
    highlights: list[str] = Field(min_length=3)
    services: list[str] = Field(min_length=3)
    target_audience: str = Field(default="", alias="targetAudience")
    meta_description: str = Field(default="", alias="metaDescription")


def strip_markdown_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def parse_generated_content(raw: str) -> GeneratedContent:
    """Parse and validate a raw completion.

    Raises:
        TransientProviderError: the completion is not JSON (worth another attempt).
        ContentValidationError: the JSON fails the structural check.
    """
    try:
        data = json.loads(strip_markdown_fences(raw))
    except json.JSONDecodeError as e:
        raise TransientProviderError(f"Completion is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ContentValidationError("Completion JSON is not an object")

    try:
        return GeneratedContent.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ContentValidationError(f"Generated content failed validation: {fields}") from e


class ContentClient:
    """Generates listing copy through the shared rate limiter."""

    provider = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        limiter: RateLimiter,
        client: Optional[AsyncOpenAI] = None,
        temperature: float = 0.7,
        max_tokens: int = 1200,
    ):
        if not api_key and client is None:
            raise ConfigurationError("OPENAI_API_KEY not set")
        self.model = model
        self.limiter = limiter
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client or AsyncOpenAI(api_key=api_key)

    async def __aenter__(self) -> "ContentClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.close()

    async def generate(self, prompt: str) -> GeneratedContent:
        """Generate content for one record.

        Raises:
            ProviderError: when every attempt failed.
            ContentValidationError: when the response fails the structural check.
        """
        return await self.limiter.call(self.provider, lambda: self._complete(prompt))

    async def _complete(self, prompt: str) -> GeneratedContent:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except OpenAIError as e:
            raise TransientProviderError(
                f"OpenAI request failed: {e}", status_code=getattr(e, "status_code", None)
            ) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise TransientProviderError("Empty response from OpenAI")

        if response.usage:
            logger.debug(
                f"OpenAI usage: {response.usage.prompt_tokens} prompt + "
                f"{response.usage.completion_tokens} completion tokens"
            )
        return parse_generated_content(content)
