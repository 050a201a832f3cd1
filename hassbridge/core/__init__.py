"""Core domain models, logging configuration, errors and shared helpers.

:mod:`hassbridge.core.settings` is imported directly by its users; it builds
scheduling policies and therefore depends on :mod:`hassbridge.orchestrator`.
"""

from hassbridge.core.exceptions import (
    BridgeError,
    CommandDecodeError,
    ConfigError,
    ExecutionFailure,
    ProviderAuthError,
    ProviderError,
    ProviderFetchError,
    ProviderParseError,
    PublishError,
)
from hassbridge.core.logging_config import DEVICE_ID_CTX, JsonFormatter, configure_logging
from hassbridge.core.models import PendingCommand, StoveAttribute, StoveStatus

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    "DEVICE_ID_CTX",
    # Domain models
    "PendingCommand",
    "StoveAttribute",
    "StoveStatus",
    # Exceptions
    "BridgeError",
    "ConfigError",
    "ProviderError",
    "ProviderFetchError",
    "ProviderAuthError",
    "ProviderParseError",
    "PublishError",
    "CommandDecodeError",
    "ExecutionFailure",
]
