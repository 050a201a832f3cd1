"""hassbridge exception taxonomy.

Every custom exception inherits from :class:`BridgeError`.  Exceptions are
organised by architectural layer so callers can catch at the right granularity:

    Layer hierarchy
    ---------------
    BridgeError
    ├── ConfigError
    ├── ProviderError
    │   ├── ProviderFetchError
    │   ├── ProviderAuthError
    │   └── ProviderParseError
    ├── PublishError
    ├── CommandDecodeError
    └── ExecutionFailure

Usage:

    from hassbridge.core.exceptions import ProviderFetchError

    raise ProviderFetchError("rika", "Connection refused") from exc
"""

from __future__ import annotations

import logging

from hassbridge.core.durations import humanize

__all__ = [
    "BridgeError",
    # Config
    "ConfigError",
    # Provider
    "ProviderError",
    "ProviderFetchError",
    "ProviderAuthError",
    "ProviderParseError",
    # MQTT
    "PublishError",
    "CommandDecodeError",
    # Scheduling
    "ExecutionFailure",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class BridgeError(Exception):
    """Root exception for all hassbridge errors.

    Catch this to handle any application-level error uniformly.  Prefer
    catching layer-specific subclasses wherever possible.
    """


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(BridgeError):
    """Raised when the application configuration is invalid or incomplete.

    Examples:
        - A duration string does not follow the ``<n><unit>`` grammar.
        - The broker URL has no host.
    """


# ---------------------------------------------------------------------------
# Provider layer
# ---------------------------------------------------------------------------


class ProviderError(BridgeError):
    """Base class for all remote device API errors.

    Args:
        provider: Short label of the remote API (e.g. ``"rika"``).
        message: Human-readable error description.
    """

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ProviderFetchError(ProviderError):
    """Raised when a remote call fails at the transport or HTTP status level.

    Args:
        provider: Remote API label.
        message: Human-readable error description.
        status_code: HTTP status code when a response was received.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(provider, message)


class ProviderAuthError(ProviderError):
    """Raised when the remote API rejects the credentials or the session expired."""


class ProviderParseError(ProviderError):
    """Raised when a remote payload cannot be mapped onto the status model."""


# ---------------------------------------------------------------------------
# MQTT layer
# ---------------------------------------------------------------------------


class PublishError(BridgeError):
    """Raised when a message cannot be published to the broker.

    Args:
        topic: The MQTT topic the publish targeted.
        message: Human-readable error description.
    """

    def __init__(self, topic: str, message: str) -> None:
        self.topic = topic
        super().__init__(f"Unable to publish on {topic!r}: {message}")


class CommandDecodeError(BridgeError):
    """Raised when an inbound command message is malformed.

    Decode failures are localised: the dispatcher logs and drops them, they
    never reach the coalescer.

    Args:
        topic: Topic the message arrived on.
        reason: What was wrong with it.
    """

    def __init__(self, topic: str, reason: str) -> None:
        self.topic = topic
        self.reason = reason
        super().__init__(f"Rejected command on {topic!r}: {reason}")


# ---------------------------------------------------------------------------
# Scheduling layer
# ---------------------------------------------------------------------------


class ExecutionFailure(BridgeError):
    """Raised by :meth:`~hassbridge.orchestrator.executor.RepeatableExecutor.next`
    when the bound operation failed.

    The executor has already chosen the backoff delay it will sleep before the
    next attempt; it is exposed here so the caller can log it.

    Args:
        error: The exception raised by the operation.
        next_delay: Seconds the executor will wait before the next attempt.
    """

    def __init__(self, error: BaseException, next_delay: float) -> None:
        self.error = error
        self.next_delay = next_delay
        super().__init__(
            f"postponing next retry in {humanize(next_delay)} "
            f"due to last error: {error}"
        )
