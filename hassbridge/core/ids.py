"""Identifier helpers shared by the MQTT and provider layers.

Home Assistant identifies entities, devices and topics by free-form strings,
but MQTT topics and entity ids only tolerate a narrow character set.  Every
identifier that reaches the broker goes through :func:`slug` first.

Identity contract
-----------------
+-------------------+-------------------------------------+---------------------------------+
| Identifier        | Built by                            | Example                         |
+===================+=====================================+=================================+
| Device unique id  | ``slug("<oem>_<type>-<name>-<id>")``| ``RIKA_DOMO-Living_room-12345`` |
+-------------------+-------------------------------------+---------------------------------+
| MQTT client id    | :func:`client_identifier`           | ``hassbridge@nas``              |
+-------------------+-------------------------------------+---------------------------------+

Typical usage::

    from hassbridge.core.ids import slug

    unique_id = slug(f"{oem}_{model}-{name}-{stove_id}")
"""

from __future__ import annotations

import logging
import re
import socket
from typing import Any, Final

from hassbridge import __version__

__all__ = [
    "APP_NAME",
    "client_identifier",
    "hostname",
    "origin",
    "slug",
    "strip_repeated_suffix",
]

logger = logging.getLogger(__name__)

#: Distribution name, reported to Home Assistant as the discovery origin.
APP_NAME: Final[str] = "hassbridge"

#: Where Home Assistant users are sent from the device page.
SUPPORT_URL: Final[str] = "https://github.com/hassbridge/hassbridge"

_UNSAFE_CHARS: Final[re.Pattern[str]] = re.compile(r"[^a-zA-Z0-9_-]")


def slug(text: str) -> str:
    """Return *text* reduced to ``[A-Za-z0-9_-]``.

    ``%`` is spelled out as ``percent`` so ``"Power %"`` and ``"Power"`` do
    not collide; every other unsafe character becomes ``_``.

    Example::

        assert slug("RIKA_DOMO-Living room-1") == "RIKA_DOMO-Living_room-1"
        assert slug("50%") == "50percent"
    """
    return _UNSAFE_CHARS.sub("_", text.replace("%", "percent"))


def strip_repeated_suffix(text: str, suffix: str) -> str:
    """Remove every trailing occurrence of *suffix* from *text*.

    Used to normalise base URLs: ``"https://host//"`` → ``"https://host"``.
    """
    if not suffix:
        return text
    while text.endswith(suffix):
        text = text[: -len(suffix)]
    return text


def hostname() -> str:
    """Return the local host name, or ``"localhost"`` when it is unavailable."""
    return socket.gethostname() or "localhost"


def client_identifier() -> str:
    """MQTT client id: ``<app-name>@<hostname>``."""
    return f"{APP_NAME}@{hostname()}"


def origin() -> dict[str, Any]:
    """The ``origin`` block attached to every discovery payload."""
    return {
        "name": APP_NAME,
        "sw_version": __version__,
        "support_url": SUPPORT_URL,
    }
