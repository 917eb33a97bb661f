"""Configuration settings."""

from .settings import (
    CacheSettings,
    ChainSettings,
    ConfigurationValidator,
    DegradationSettings,
    Environment,
    HealthMonitorSettings,
    LoggingSettings,
    LogLevel,
    OrchestratorSettings,
    RecoverySettings,
    RulesSettings,
    Settings,
    get_settings,
    reset_settings,
)

__all__ = [
    "CacheSettings",
    "ChainSettings",
    "ConfigurationValidator",
    "DegradationSettings",
    "Environment",
    "HealthMonitorSettings",
    "LoggingSettings",
    "LogLevel",
    "OrchestratorSettings",
    "RecoverySettings",
    "RulesSettings",
    "Settings",
    "get_settings",
    "reset_settings",
]
