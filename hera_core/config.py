"""
Centralized configuration management for the HERA core engine.

This module provides a unified configuration system with support for:
- Environment variables
- Feature flags
- Runtime configuration
- Validation using Pydantic
"""

import os
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import PLATFORM_ORGANIZATION_ID, EnvironmentVariable, Ledger, Limits, LogLevel


class QueueConfig(BaseModel):
    """Azure Storage Queue configuration for structured log shipping."""

    connection_string: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.AZURE_STORAGE_CONNECTION.value, ""),
        description="Azure Storage connection string",
    )
    log_queue_name: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.LOG_QUEUE_NAME.value, "logs-queue"),
        description="Queue receiving structured log records",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.LOG_LEVEL.value, LogLevel.INFO.value),
        description="Logging level",
        validate_default=True,
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )
    enable_queue_logs: bool = Field(
        default=False, description="Ship log records to the Azure log queue"
    )

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {level.value for level in LogLevel}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class FeatureFlags(BaseModel):
    """Feature flags for controlling engine behavior."""

    enable_operation_context: bool = Field(
        default=True, description="Enable operation context logging"
    )
    enforce_platform_guard: bool = Field(
        default=True, description="Reject business writes into the platform organization"
    )
    enforce_guardrails: bool = Field(
        default=True, description="Run policy guardrails when posting transactions"
    )


class LedgerConfig(BaseModel):
    """Transaction ledger behavior."""

    balance_tolerance: Decimal = Field(
        default_factory=lambda: Decimal(
            os.getenv(EnvironmentVariable.BALANCE_TOLERANCE.value, str(Ledger.BALANCE_TOLERANCE))
        ),
        description="Maximum debit/credit difference accepted per currency",
        validate_default=True,
    )
    default_currency: str = Field(default=Ledger.DEFAULT_CURRENCY, description="Fallback currency")
    max_lines: int = Field(
        default=Limits.MAX_TRANSACTION_LINES, description="Maximum lines per transaction"
    )

    @field_validator("balance_tolerance")
    def validate_tolerance(cls, v: Decimal) -> Decimal:
        """Tolerance must be non-negative."""
        if v < 0:
            raise ValueError("balance_tolerance must be >= 0")
        return v


class IdentityConfig(BaseModel):
    """Identity resolution settings."""

    platform_organization_id: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.PLATFORM_ORGANIZATION_ID.value, PLATFORM_ORGANIZATION_ID
        ),
        description="Organization holding global USER anchors",
    )


class AppConfig(BaseModel):
    """Main application configuration."""

    environment: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.APP_ENV.value, "development"),
        description="Application environment",
    )
    debug: bool = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.DEBUG.value, "false").lower()
        == "true",
        description="Debug mode",
    )

    # Sub-configurations
    queue: QueueConfig = Field(default_factory=QueueConfig, description="Queue configuration")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    features: FeatureFlags = Field(default_factory=FeatureFlags, description="Feature flags")
    ledger: LedgerConfig = Field(default_factory=LedgerConfig, description="Ledger configuration")
    identity: IdentityConfig = Field(
        default_factory=IdentityConfig, description="Identity configuration"
    )

    # Custom configuration
    custom: Dict[str, Any] = Field(default_factory=dict, description="Custom configuration values")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create configuration from environment variables."""
        return cls()

    def get_custom(self, key: str, default: Any = None) -> Any:
        """Get a custom configuration value."""
        return self.custom.get(key, default)

    def set_custom(self, key: str, value: Any) -> None:
        """Set a custom configuration value."""
        self.custom[key] = value


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
