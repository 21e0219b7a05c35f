"""Custom exceptions for the enrichment pipeline."""

from typing import Optional


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    pass


class ConfigurationError(PipelineError):
    """Raised when a stage cannot start: unknown country/category, missing credentials, unseeded data."""

    pass


class TransientProviderError(PipelineError):
    """Raised by a provider client when a single attempt fails and may be retried."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderError(PipelineError):
    """Raised when a provider call still fails after exhausting its retries."""

    def __init__(self, provider: str, message: str, attempts: int = 0):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.attempts = attempts


class CollectionFailedError(PipelineError):
    """Raised when an asynchronous dataset collection job reports failure."""

    pass


class CollectionTimeoutError(PipelineError):
    """Raised when a dataset collection job is not ready within the polling budget."""

    pass


class ContentValidationError(PipelineError):
    """Raised when generated or fetched content fails a structural check."""

    pass


class PersistenceError(PipelineError):
    """Raised when a checkpoint or repository write fails.

    Fatal: the caller must stop instead of carrying on with state it cannot record.
    """

    pass
