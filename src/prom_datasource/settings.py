"""Process-wide configuration helpers."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, PositiveFloat, PositiveInt
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Typed settings leveraging environment variables for overrides."""

    environment: Literal["local", "dev", "prod"] = Field(
        default="local", description="Deployment environment descriptor."
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    metric_name_cache_ttl_seconds: PositiveInt = Field(
        default=60,
        description="Lifetime of cached metric-name suggestions.",
    )
    request_timeout_seconds: PositiveFloat = Field(
        default=30.0,
        description="Client-side timeout for outbound Prometheus requests.",
    )

    model_config = {
        "env_file": ".env",
        "env_prefix": "PROMDS_",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Cache Settings to avoid re-parsing env on every lookup."""

    return Settings()
