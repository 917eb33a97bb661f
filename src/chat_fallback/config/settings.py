"""
Configuration management for the chat fallback orchestrator.

Each component reads its own settings group; groups are populated from
environment variables (and an optional ``.env`` file) using their prefix.
"""

import os
from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chat_fallback.domain.models import DegradationLevel


class Environment(str, Enum):
    """Deployment environments."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class HealthMonitorSettings(BaseSettings):
    """Sliding-window health derivation for providers."""

    model_config = SettingsConfigDict(
        env_prefix="HEALTH_", env_file=".env", extra="ignore"
    )

    window_size: int = Field(default=20, ge=1, le=10_000)
    min_samples: int = Field(default=5, ge=1)
    error_rate_threshold: float = Field(default=0.05, ge=0.0, le=1.0)
    latency_p95_threshold_ms: float = Field(default=5000.0, gt=0.0)
    down_consecutive_failures: int = Field(default=3, ge=1)
    hard_error_threshold: int = Field(default=2, ge=1)
    evaluation_interval: float = Field(default=1.0, gt=0.0)


class DegradationSettings(BaseSettings):
    """Degradation state machine settings."""

    model_config = SettingsConfigDict(
        env_prefix="DEGRADATION_", env_file=".env", extra="ignore"
    )

    recovery_cooldown: float = Field(
        default=120.0,
        ge=0.0,
        description="Seconds without active triggers before stepping one level better",
    )
    initial_level: DegradationLevel = DegradationLevel.FULL


class CacheSettings(BaseSettings):
    """Semantic cache fallback settings."""

    model_config = SettingsConfigDict(
        env_prefix="CACHE_", env_file=".env", extra="ignore"
    )

    similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    lookup_timeout_ms: float = Field(default=800.0, gt=0.0)
    max_candidates: int = Field(default=5, ge=1)


class ChainSettings(BaseSettings):
    """Backup model chain settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHAIN_", env_file=".env", extra="ignore"
    )

    failure_threshold: int = Field(
        default=3, ge=1, description="Consecutive failures before a provider cools down"
    )
    cooldown: float = Field(
        default=60.0, ge=0.0, description="Seconds a failing provider is skipped"
    )
    expected_language: str | None = "pt"
    default_timeout_ms: float = Field(default=8000.0, gt=0.0)


class RulesSettings(BaseSettings):
    """Rule-based responder settings."""

    model_config = SettingsConfigDict(
        env_prefix="RULES_", env_file=".env", extra="ignore"
    )

    confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    max_sessions: int = Field(default=10_000, ge=1)
    max_suggestions: int = Field(default=3, ge=0)


class RecoverySettings(BaseSettings):
    """Background recovery probe settings."""

    model_config = SettingsConfigDict(
        env_prefix="RECOVERY_", env_file=".env", extra="ignore"
    )

    probe_interval: float = Field(default=10.0, gt=0.0)
    probe_timeout: float = Field(default=3.0, gt=0.0)
    healthy_ticks_for_recovery: int = Field(default=3, ge=1)
    ramp_step: float = Field(default=0.1, gt=0.0, le=1.0)


class OrchestratorSettings(BaseSettings):
    """Top-level request handling settings."""

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_", env_file=".env", extra="ignore"
    )

    primary_provider_id: str = "primary"
    primary_timeout_ms: float = Field(default=10_000.0, gt=0.0)
    persist_primary_responses: bool = False


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_", env_file=".env", extra="ignore")

    level: LogLevel = LogLevel.INFO
    format: str = "json"
    file: str | None = None

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "console"):
            raise ValueError("Log format must be 'json' or 'console'")
        return v


class Settings(BaseSettings):
    """Aggregated application settings."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    app_name: str = "chat-fallback"
    environment: Environment = Environment.DEVELOPMENT

    health: HealthMonitorSettings = Field(default_factory=HealthMonitorSettings)
    degradation: DegradationSettings = Field(default_factory=DegradationSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    chain: ChainSettings = Field(default_factory=ChainSettings)
    rules: RulesSettings = Field(default_factory=RulesSettings)
    recovery: RecoverySettings = Field(default_factory=RecoverySettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION


class DevelopmentSettings(Settings):
    """Development environment settings."""

    environment: Environment = Environment.DEVELOPMENT
    logging: LoggingSettings = Field(
        default_factory=lambda: LoggingSettings(level=LogLevel.DEBUG, format="console")
    )


class TestingSettings(Settings):
    """Testing environment settings."""

    environment: Environment = Environment.TESTING
    logging: LoggingSettings = Field(
        default_factory=lambda: LoggingSettings(level=LogLevel.WARNING, format="console")
    )


class ProductionSettings(Settings):
    """Production environment settings."""

    environment: Environment = Environment.PRODUCTION
    logging: LoggingSettings = Field(
        default_factory=lambda: LoggingSettings(level=LogLevel.INFO, format="json")
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get settings for the environment named by ``ENVIRONMENT``."""
    global _settings
    if _settings is None:
        environment = os.getenv("ENVIRONMENT", "development").lower()
        if environment == "production":
            _settings = ProductionSettings()
        elif environment == "testing":
            _settings = TestingSettings()
        elif environment == "development":
            _settings = DevelopmentSettings()
        else:
            _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None


class ConfigurationValidator:
    """Validates cross-field configuration constraints."""

    @staticmethod
    def validate_settings(settings: Settings) -> list[str]:
        """Validate settings and return list of errors."""
        errors = []

        if settings.health.min_samples > settings.health.window_size:
            errors.append("health.min_samples cannot exceed health.window_size")

        if settings.recovery.probe_timeout >= settings.recovery.probe_interval:
            errors.append("recovery.probe_timeout should be below probe_interval")

        if settings.cache.similarity_threshold < 0.5:
            errors.append("cache.similarity_threshold below 0.5 reuses unrelated answers")

        if settings.is_production and settings.logging.format != "json":
            errors.append("Production logging should use the json format")

        return errors
