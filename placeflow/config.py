from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator
from typing import Optional, Literal
from loguru import logger
import sys

from placeflow.core.logging import setup_json_logging
from placeflow.services.providers.rate_limiter import ProviderPolicy


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Application environment"
    )

    database_host: str = Field(default="localhost", description="Database host")
    database_port: int = Field(
        default=5432, ge=1, le=65535, description="Database port"
    )
    database_name: str = Field(
        default="placeflow", min_length=1, description="Database name"
    )
    database_user: str = Field(default="postgres", min_length=1, description="Database username")
    database_password: Optional[str] = Field(
        default="postgres", description="Database password"
    )

    database_pool_min: int = Field(
        default=1, ge=1, le=100, description="Minimum database pool size"
    )
    database_pool_max: int = Field(
        default=10, ge=1, le=100, description="Maximum database pool size"
    )

    # BrightData (SERP + Datasets)
    brightdata_api_token: Optional[str] = Field(default=None, description="BrightData API token")
    brightdata_serp_zone: Optional[str] = Field(default=None, description="BrightData SERP zone")
    brightdata_dataset_id: str = Field(
        default="gd_m8ebnr0q2qlklc02fz",
        description="Google Maps places dataset id",
    )

    # OpenAI
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    ai_model: str = Field(default="gpt-4o-mini", description="Chat model used for content")

    # Provider pacing and retries
    serp_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        le=60,
        description="Minimum delay between SERP requests",
    )
    serp_max_retries: int = Field(default=2, ge=0, le=10)
    dataset_delay_seconds: float = Field(
        default=2.0,
        ge=0,
        le=60,
        description="Minimum delay between dataset API requests",
    )
    dataset_max_retries: int = Field(default=2, ge=0, le=10)
    openai_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        le=60,
        description="Minimum delay between generation requests",
    )
    openai_max_retries: int = Field(default=2, ge=0, le=10)

    # Batch sizes
    discovery_result_limit: int = Field(
        default=20, ge=1, le=100, description="Max results per search request"
    )
    dataset_batch_size: int = Field(
        default=50, ge=1, le=500, description="Records per dataset collection job"
    )
    content_batch_size: int = Field(
        default=50, ge=1, le=1000, description="Records per content batch"
    )

    # Dataset job polling (180 x 10s = 30 minutes)
    dataset_poll_interval_seconds: float = Field(default=10.0, gt=0, le=600)
    dataset_max_wait_seconds: float = Field(default=1800.0, gt=0)

    checkpoint_dir: str = Field(
        default=".pipeline-progress", description="Directory for progress documents"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_format: str = Field(
        default="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} - {message}",
        description="Log format string",
    )
    log_rotation: str = Field(default="100 MB", description="Log file rotation size")
    log_retention: str = Field(default="10 days", description="Log retention period")
    log_file: Optional[str] = Field(default=None, description="Log file path")

    @model_validator(mode="after")
    def validate_pool_sizes(self) -> "Settings":
        """Ensure max pool size is greater than min pool size"""
        if self.database_pool_max < self.database_pool_min:
            raise ValueError(
                "database_pool_max must be greater than or equal to database_pool_min"
            )
        return self

    @property
    def database_url(self) -> str:
        """Standard database URL for synchronous connections"""
        password = f":{self.database_password}" if self.database_password else ""
        return f"postgresql://{self.database_user}{password}@{self.database_host}:{self.database_port}/{self.database_name}"

    @property
    def provider_policies(self) -> dict[str, ProviderPolicy]:
        """Pacing/retry table for the rate limiter, keyed by provider name"""
        return {
            "serp": ProviderPolicy(
                delay_seconds=self.serp_delay_seconds,
                max_retries=self.serp_max_retries,
            ),
            "dataset": ProviderPolicy(
                delay_seconds=self.dataset_delay_seconds,
                max_retries=self.dataset_max_retries,
            ),
            "openai": ProviderPolicy(
                delay_seconds=self.openai_delay_seconds,
                max_retries=self.openai_max_retries,
            ),
        }

    def configure_logging(self) -> None:
        """Configure loguru based on settings"""
        if self.environment == "production":
            setup_json_logging(self.log_level)
        else:
            logger.remove()
            logger.add(
                sys.stderr, format=self.log_format, level=self.log_level, colorize=True
            )

        if self.log_file:
            logger.add(
                self.log_file,
                format=self.log_format,
                level=self.log_level,
                rotation=self.log_rotation,
                retention=self.log_retention,
                compression="zip",
            )

        logger.debug(f"Logging configured for {self.environment} environment")


def get_settings() -> Settings:
    """Get cached settings instance"""
    settings = Settings()
    settings.configure_logging()
    return settings


settings = get_settings()
