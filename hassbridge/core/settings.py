"""hassbridge application settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.  The field name is the
**lowercase** version of the env-var name (e.g. ``MQTT_BROKER_URL`` →
``mqtt_broker_url``).

Durations are written with the compact grammar of
:mod:`hassbridge.core.durations` (``"10s"``, ``"9s..11s"``, ``"7d"``) and are
exposed as ``(low, high)`` tuples of seconds.

Typical usage::

    from hassbridge.core.settings import load_settings

    settings = load_settings()
    policy = settings.rika_status_policy()
"""

from __future__ import annotations

import logging
from typing import Annotated
from urllib.parse import urlsplit

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from hassbridge.core.durations import parse_interval, parse_time_delta, parse_time_delta_range
from hassbridge.core.exceptions import ConfigError
from hassbridge.core.ids import strip_repeated_suffix
from hassbridge.orchestrator.policy import ExponentialBackoff, FixedInterval

__all__ = ["Settings", "load_settings"]

logger = logging.getLogger(__name__)

#: ``(low, high)`` seconds, parsed from ``"10s"`` or ``"9s..11s"``.
Interval = Annotated[tuple[float, float], NoDecode]


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).

    The stove integration is optional: when either Rika credential is
    missing, :attr:`rika_configured` is ``False`` and no stove task starts.

    ``LOG_LEVEL`` and ``LOG_FORMAT`` are not settings: logging is configured
    before settings load and reads them itself
    (:func:`~hassbridge.core.logging_config.configure_logging`).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # MQTT
    # ------------------------------------------------------------------
    mqtt_broker_url: str = Field(
        default="mqtt://localhost:1883",
        description="Broker URL, e.g. mqtt://broker.lan:1883.",
    )
    mqtt_username: str = Field(default="", description="Broker username.")
    mqtt_password: str = Field(default="", description="Broker password.")
    mqtt_discovery_prefix: str = Field(
        default="homeassistant",
        description="Home Assistant MQTT discovery prefix.",
    )
    mqtt_backoff: Interval = Field(
        default=(0.05, 300.0),
        description="Reconnect backoff as initial..ceiling (e.g. 50ms..5m).",
    )

    # ------------------------------------------------------------------
    # Rika Firenet
    # ------------------------------------------------------------------
    rika_baseurl: str = Field(
        default="https://www.rika-firenet.com",
        description="Rika Firenet base URL.",
    )
    rika_username: str | None = Field(default=None, description="Rika account email.")
    rika_password: str | None = Field(default=None, description="Rika account password.")
    rika_discovery_interval: Interval = Field(
        default=(604800.0, 604800.0),
        description="How often the stove list is refreshed (e.g. 7d).",
    )
    rika_status_interval: Interval = Field(
        default=(10.0, 10.0),
        description="How often each stove status is polled (e.g. 10s or 9s..11s).",
    )
    rika_backoff: Interval = Field(
        default=(1.0, 3600.0),
        description="Failure backoff as initial..ceiling (e.g. 1s..1h).",
    )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    command_grace_period: float = Field(
        default=5.0,
        ge=0.0,
        description="Quiet period before coalesced commands are applied (e.g. 5s).",
    )

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("rika_discovery_interval", "rika_status_interval", mode="before")
    @classmethod
    def _parse_interval(cls, v: str | tuple[float, float]) -> tuple[float, float]:
        """Accept ``"10s"`` / ``"9s..11s"`` **or** an already-parsed tuple."""
        if isinstance(v, str):
            return parse_interval(v)
        return v

    @field_validator("mqtt_backoff", "rika_backoff", mode="before")
    @classmethod
    def _parse_backoff(cls, v: str | tuple[float, float]) -> tuple[float, float]:
        """Accept ``"initial..ceiling"`` **or** an already-parsed tuple."""
        if isinstance(v, str):
            return parse_time_delta_range(v)
        return v

    @field_validator("command_grace_period", mode="before")
    @classmethod
    def _parse_grace_period(cls, v: str | float) -> float:
        if isinstance(v, str):
            return parse_time_delta(v)
        return v

    @field_validator("rika_baseurl")
    @classmethod
    def _strip_trailing_slashes(cls, v: str) -> str:
        return strip_repeated_suffix(v, "/")

    @field_validator("mqtt_broker_url")
    @classmethod
    def _validate_broker_url(cls, v: str) -> str:
        parts = urlsplit(v)
        if parts.scheme not in {"mqtt", "tcp"}:
            raise ValueError(f"mqtt_broker_url must use the mqtt:// scheme, got {v!r}")
        if not parts.hostname:
            raise ValueError(f"mqtt_broker_url has no host: {v!r}")
        return v

    # ------------------------------------------------------------------
    # Model validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def _validate_repeat_intervals(self) -> Settings:
        """Ensure low ≤ high for repeat intervals.

        Backoff ranges are deliberately not checked here: the backoff policy
        clamps an inverted range itself and warns about it.
        """
        for name in ("rika_discovery_interval", "rika_status_interval"):
            low, high = getattr(self, name)
            if low > high:
                raise ValueError(f"{name} lower bound ({low}) > upper bound ({high})")
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def mqtt_host(self) -> str:
        return urlsplit(self.mqtt_broker_url).hostname or "localhost"

    @property
    def mqtt_port(self) -> int:
        return urlsplit(self.mqtt_broker_url).port or 1883

    @property
    def rika_configured(self) -> bool:
        """``True`` if both Rika credentials are set."""
        return bool(self.rika_username and self.rika_password)

    def rika_discovery_policy(self) -> FixedInterval:
        return FixedInterval.between(*self.rika_discovery_interval)

    def rika_status_policy(self) -> FixedInterval:
        return FixedInterval.between(*self.rika_status_interval)

    def rika_backoff_policy(self) -> ExponentialBackoff:
        """A fresh backoff policy; every executor owns its own instance."""
        return ExponentialBackoff(*self.rika_backoff)

    def mqtt_backoff_policy(self) -> ExponentialBackoff:
        return ExponentialBackoff(*self.mqtt_backoff)


def load_settings(**overrides: object) -> Settings:
    """Build :class:`Settings`, mapping validation failures to :class:`ConfigError`."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
