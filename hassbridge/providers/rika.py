"""Rika Firenet provider: pellet stoves controlled through the Rika cloud.

Endpoints
~~~~~~~~~
==========================================  ====================================
``POST /web/login`` (form email, password)  session cookie; lands on /web/summary
``GET  /web/summary``                       HTML page linking ``/web/stove/<id>``
``GET  /api/client/<id>/status``            JSON status document
``POST /api/client/<id>/controls``          full controls form (incl. revision)
==========================================  ====================================

Session handling
~~~~~~~~~~~~~~~~
The first request logs in.  When a later request is answered with 401/403
or redirected back to the login page, the session has expired: the provider
logs in again and retries that request once (:mod:`tenacity`).  A second
rejection is raised as :class:`~hassbridge.core.exceptions.ProviderAuthError`.

Concurrent requests share one login: a rejection only ends the session it
was sent with, and renewals are serialised behind a lock.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Sequence
from typing import Any, ClassVar, Final

import httpx
from pydantic import ValidationError
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from hassbridge.core.exceptions import ProviderAuthError, ProviderParseError
from hassbridge.core.ids import strip_repeated_suffix
from hassbridge.core.models import PendingCommand, StoveStatus
from hassbridge.orchestrator.coalescer import merge_commands
from hassbridge.providers.base import DeviceProvider
from hassbridge.providers.http_client import ProviderHttpClient

__all__ = ["RikaFirenetProvider"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_LOGIN_PATH: Final[str] = "/web/login"
_SUMMARY_PATH: Final[str] = "/web/summary"

_STOVE_LINK: Final[re.Pattern[str]] = re.compile(r"/web/stove/([A-Za-z0-9_-]+)")

#: One request plus one retry after logging in again.
_MAX_ATTEMPTS: Final[int] = 2


class RikaFirenetProvider(DeviceProvider[StoveStatus]):
    """Rika Firenet cloud client.

    Args:
        base_url: API base URL; trailing slashes are ignored.
        username: Account email.
        password: Account password.
        transport: Optional httpx transport, for tests.
    """

    name: ClassVar[str] = "rika"

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = strip_repeated_suffix(base_url, "/")
        self._username = username
        self._password = password
        self._http = ProviderHttpClient(self.name, base_url=self.base_url, transport=transport)
        self._logged_in = False
        self._session = 0
        self._login_lock = asyncio.Lock()

    async def close(self) -> None:
        await self._http.close()
        self._logged_in = False

    # ------------------------------------------------------------------
    # DeviceProvider contract
    # ------------------------------------------------------------------

    async def list_devices(self) -> list[str]:
        response = await self._authenticated("GET", _SUMMARY_PATH)
        stove_ids = list(dict.fromkeys(_STOVE_LINK.findall(response.text)))
        logger.debug("Rika account lists %d stove(s): %s", len(stove_ids), stove_ids)
        return stove_ids

    async def status(self, device_id: str) -> StoveStatus:
        response = await self._authenticated("GET", f"/api/client/{device_id}/status")
        try:
            return StoveStatus.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ProviderParseError(
                self.name, f"Unexpected status payload for stove {device_id}: {exc}"
            ) from exc

    async def apply_commands(
        self, device_id: str, commands: Sequence[PendingCommand]
    ) -> StoveStatus:
        current = await self.status(device_id)
        controls = current.controls.with_values(merge_commands(commands))
        form = controls.model_dump(by_alias=True, mode="json")
        logger.debug("Writing controls of stove %s (revision %s).", device_id, controls.revision)
        await self._authenticated("POST", f"/api/client/{device_id}/controls", data=form)
        return await self.status(device_id)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def _ensure_session(self) -> int:
        """Log in unless a session is open; return the session generation.

        Concurrent callers wait on one login instead of each clearing the
        cookies under the others' requests.
        """
        async with self._login_lock:
            if not self._logged_in:
                await self._login()
            return self._session

    async def _login(self) -> None:
        self._http.clear_session()
        response = await self._http.post(
            _LOGIN_PATH,
            data={"email": self._username, "password": self._password},
        )
        if response.url.path != _SUMMARY_PATH:
            raise ProviderAuthError(self.name, f"Login rejected for {self._username!r}")
        self._session += 1
        self._logged_in = True
        logger.info("Logged in to Rika Firenet as %s.", self._username)

    def _expire(self, session: int) -> None:
        # A rejection from an older session must not discard a newer one.
        if session == self._session:
            self._logged_in = False

    async def _authenticated(
        self,
        method: str,
        url: str,
        *,
        data: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Run one request inside a valid session, logging in again once if needed."""

        def _before_sleep(rs: RetryCallState) -> None:
            exc = rs.outcome.exception() if rs.outcome else None
            logger.info("Rika session rejected on %s %s (%s); logging in again.", method, url, exc)

        response: httpx.Response | None = None
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(_MAX_ATTEMPTS),
            retry=retry_if_exception_type(ProviderAuthError),
            reraise=True,
            before_sleep=_before_sleep,
        ):
            with attempt:
                session = await self._ensure_session()
                response = await self._send(method, url, session, data=data)

        assert response is not None, "tenacity exited without a response or exception"
        return response

    async def _send(
        self,
        method: str,
        url: str,
        session: int,
        *,
        data: dict[str, Any] | None,
    ) -> httpx.Response:
        try:
            if method == "POST":
                response = await self._http.post(url, data=data)
            else:
                response = await self._http.get(url)
        except ProviderAuthError:
            self._expire(session)
            raise

        if response.url.path.startswith(_LOGIN_PATH):
            self._expire(session)
            raise ProviderAuthError(self.name, f"Session expired on {method} {url}")
        return response
