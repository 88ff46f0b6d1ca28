"""
Settings Module
===============

Pydantic-based configuration with environment variable loading.

Version: 0.1.0
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CacheBackend(str, Enum):
    """Match cache implementations."""

    MEMORY = "memory"
    REDIS = "redis"
    NONE = "none"


class RedisSettings(BaseSettings):
    """Redis cache configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = "localhost"
    port: int = 6379
    password: SecretStr = SecretStr("")
    db: int = 0

    @property
    def url(self) -> str:
        """Generate Redis connection URL."""
        pwd = self.password.get_secret_value()
        if pwd:
            return f"redis://:{pwd}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class CacheSettings(BaseSettings):
    """Match cache configuration."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    backend: CacheBackend = CacheBackend.MEMORY
    ttl_seconds: int = Field(default=7200, ge=1)
    max_ttl_seconds: int = Field(default=86400, ge=1)
    max_entries: int = Field(default=10_000, ge=1)
    key_prefix: str = "applicability"

    # Scale TTL by organization headcount (larger organizations edit less often)
    size_scaled_ttl: bool = True


class MatchingSettings(BaseSettings):
    """Matching pipeline configuration."""

    model_config = SettingsConfigDict(env_prefix="MATCHING_")

    max_concurrent_locations: int = Field(default=8, ge=1)
    semantic_threshold: float = Field(default=0.75, ge=0.0, le=1.0)
    allow_stale_on_unavailable: bool = False


class SimilaritySettings(BaseSettings):
    """Similar-profile lookup configuration."""

    model_config = SettingsConfigDict(env_prefix="SIMILARITY_")

    min_similarity: float = Field(default=0.6, ge=0.0, le=1.0)
    min_cohort_size: int = Field(default=3, ge=1)


class RegulationSourceSettings(BaseSettings):
    """Where committed regulation versions are loaded from."""

    model_config = SettingsConfigDict(env_prefix="REGULATION_SOURCE_")

    path: Path | None = None
    url: str | None = None
    timeout_seconds: int = 30
    max_retries: int = 3


class CORSSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(env_prefix="CORS_")

    origins: str = "http://localhost:3000,http://localhost:5173"
    allow_credentials: bool = True

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into list."""
        return [o.strip() for o in self.origins.split(",") if o.strip()]


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables with sensible defaults.
    Use the global `settings` singleton or call `get_settings()`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # General
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True
    log_level: LogLevel = LogLevel.INFO
    port: int = Field(default=8010, alias="APPLICABILITY_PORT")

    # Project paths
    project_root: Path = Field(default_factory=lambda: Path(__file__).parent.parent.parent)

    # Backing services
    redis: RedisSettings = Field(default_factory=RedisSettings)

    # Engine
    cache: CacheSettings = Field(default_factory=CacheSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    similarity: SimilaritySettings = Field(default_factory=SimilaritySettings)
    regulation_source: RegulationSourceSettings = Field(
        default_factory=RegulationSourceSettings
    )

    # Security
    cors: CORSSettings = Field(default_factory=CORSSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Ensure log level is uppercase."""
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.environment == Environment.TESTING


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings singleton.
    """
    return Settings()
