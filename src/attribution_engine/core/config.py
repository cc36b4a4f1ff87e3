"""Configuration management for the attribution engine."""

import logging
from enum import Enum
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogFormat(str, Enum):
    """Log format options."""

    JSON = "json"
    TEXT = "text"


class CacheBackendType(str, Enum):
    """Result cache backend options."""

    MEMORY = "memory"
    REDIS = "redis"


class StoreConfig(BaseModel):
    """Configuration store (REST) client configuration."""

    base_url: str = Field(
        default="http://localhost:3000/api/v1",
        description="Base URL of the attribution REST API",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Upper bound for a single request to the store",
    )
    max_request_retries: int = Field(
        default=3, ge=0, le=10, description="Retries for transient store failures"
    )
    retry_base_delay_seconds: float = Field(
        default=0.5, gt=0.0, description="Base delay for exponential retry backoff"
    )
    retry_max_delay_seconds: float = Field(
        default=10.0, gt=0.0, description="Upper bound for a single retry delay"
    )
    api_token: str | None = Field(
        default=None, description="Bearer token sent to the store, if required"
    )


class RealtimeConfig(BaseModel):
    """Realtime push channel configuration."""

    url: str = Field(
        default="ws://localhost:3000/api/v1/attribution/realtime",
        description="Push channel URL",
    )
    heartbeat_interval_seconds: float = Field(
        default=30.0, gt=0.0, description="Interval between outbound heartbeats"
    )
    reconnect_base_delay_seconds: float = Field(
        default=1.0, gt=0.0, description="Base delay for reconnect backoff"
    )
    max_reconnect_delay_seconds: float = Field(
        default=30.0, gt=0.0, description="Upper bound for a single reconnect delay"
    )
    max_reconnect_attempts: int = Field(
        default=5, ge=0, le=50, description="Reconnect attempts before giving up"
    )
    handshake_timeout_seconds: float = Field(
        default=10.0, gt=0.0, description="Timeout for establishing the connection"
    )

    @model_validator(mode="after")
    def validate_delays(self) -> "RealtimeConfig":
        """Ensure the delay cap is not below the base delay."""
        if self.max_reconnect_delay_seconds < self.reconnect_base_delay_seconds:
            raise ValueError(
                "max_reconnect_delay_seconds must be >= reconnect_base_delay_seconds"
            )
        return self


class ResultCacheConfig(BaseModel):
    """Result cache configuration."""

    backend: CacheBackendType = Field(
        default=CacheBackendType.MEMORY, description="Result cache backend"
    )
    ttl_seconds: int = Field(
        default=300, ge=1, description="Time to live for cached results (5 minutes)"
    )
    max_entries: int = Field(
        default=10_000, ge=1, description="Capacity bound for the in-memory cache"
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    key_prefix: str = Field(
        default="attribution:result", description="Prefix for cached result keys"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: LogFormat = LogFormat.JSON


class Settings(BaseSettings):
    """Application settings.

    Environment Variables:
        ATTRIBUTION_ENVIRONMENT=development
        ATTRIBUTION_STORE__BASE_URL=https://api.example.com/api/v1
        ATTRIBUTION_STORE__REQUEST_TIMEOUT_SECONDS=10
        ATTRIBUTION_REALTIME__URL=wss://api.example.com/api/v1/attribution/realtime
        ATTRIBUTION_REALTIME__MAX_RECONNECT_ATTEMPTS=5
        ATTRIBUTION_CACHE__BACKEND=memory
        ATTRIBUTION_CACHE__TTL_SECONDS=300
        ATTRIBUTION_LOGGING__LEVEL=INFO
        ATTRIBUTION_LOGGING__FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="ATTRIBUTION_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    store: StoreConfig = Field(default_factory=StoreConfig)
    realtime: RealtimeConfig = Field(default_factory=RealtimeConfig)
    cache: ResultCacheConfig = Field(default_factory=ResultCacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "Settings":
        """Load settings from the environment, reading a .env file first if present."""
        if env_file:
            load_dotenv(env_file)
        else:
            env_path = Path.cwd() / ".env"
            if env_path.exists():
                load_dotenv(env_path)
        return cls()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    try:
        return Settings.from_env()
    except (ValidationError, ValueError) as e:
        logging.error(f"Configuration error: {e}")
        raise
