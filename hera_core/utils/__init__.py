"""Utility modules for the engine."""

from .json_utils import EnhancedJSONEncoder, dumps, loads, to_jsonable
from .logger import (
    AzureQueueHandler,
    ContextAwareLogger,
    OrganizationContextFilter,
    configure_logging,
    get_logger,
    reset_logging,
)

__all__ = [
    # JSON
    "EnhancedJSONEncoder",
    "dumps",
    "loads",
    "to_jsonable",
    # Logging
    "AzureQueueHandler",
    "ContextAwareLogger",
    "OrganizationContextFilter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]
