"""Shared async HTTP client for remote device providers.

Wraps :class:`httpx.AsyncClient` with:

* **Cookie session**: the vendor APIs authenticate with a session cookie set
  at login; the client keeps it for every later request.
* **Timeouts**: connect / read / write bounds so a hung API call surfaces as
  an error the poll executor can back off from.
* **Structured error mapping**: transport failures and non-2xx responses
  become :class:`~hassbridge.core.exceptions.ProviderFetchError`; HTTP 401
  and 403 become :class:`~hassbridge.core.exceptions.ProviderAuthError` so
  the provider can log in again.

No request is retried here.  Failure cadence belongs to the executors.

Typical usage::

    async with ProviderHttpClient("rika", base_url="https://www.rika-firenet.com") as client:
        response = await client.get("/web/summary")
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Final

import httpx

from hassbridge import __version__
from hassbridge.core.exceptions import ProviderAuthError, ProviderFetchError
from hassbridge.core.ids import APP_NAME

__all__ = ["ProviderHttpClient"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: HTTP status codes meaning the session is missing or expired.
_AUTH_STATUS: Final[frozenset[int]] = frozenset({401, 403})

_DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0
_DEFAULT_READ_TIMEOUT: Final[float] = 20.0
_DEFAULT_WRITE_TIMEOUT: Final[float] = 10.0

_USER_AGENT: Final[str] = f"{APP_NAME}/{__version__}"


# ---------------------------------------------------------------------------
# Public client
# ---------------------------------------------------------------------------


class ProviderHttpClient:
    """Async HTTP client shared by all requests of one provider.

    Each request method returns the :class:`httpx.Response` on HTTP 2xx
    (after following redirects) and raises on all other outcomes.

    Args:
        provider: Provider label used in error messages.
        base_url: Base URL prepended to relative request paths.
        headers: Additional default headers merged into every request.
        connect_timeout: TCP connection establishment timeout in seconds.
        read_timeout: Timeout for receiving the response.
        write_timeout: Timeout for uploading the request body.
        transport: Optional httpx transport (tests pass
            :class:`httpx.MockTransport`).
    """

    def __init__(
        self,
        provider: str,
        *,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        connect_timeout: float = _DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = _DEFAULT_READ_TIMEOUT,
        write_timeout: float = _DEFAULT_WRITE_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._provider = provider
        self._base_url = base_url
        self._default_headers: dict[str, str] = headers or {}
        self._transport = transport
        self._timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=write_timeout,
            pool=5.0,
        )
        self._http: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ProviderHttpClient:
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public request methods
    # ------------------------------------------------------------------

    async def get(self, url: str, *, params: dict[str, Any] | None = None) -> httpx.Response:
        """Perform an HTTP GET request.

        Raises:
            ProviderAuthError: On HTTP 401 / 403.
            ProviderFetchError: On any other HTTP or network error.
        """
        return await self._request("GET", url, params=params)

    async def post(
        self,
        url: str,
        *,
        data: dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> httpx.Response:
        """Perform an HTTP POST request with a form or JSON body.

        Raises:
            ProviderAuthError: On HTTP 401 / 403.
            ProviderFetchError: On any other HTTP or network error.
        """
        return await self._request("POST", url, data=data, json=json)

    def clear_session(self) -> None:
        """Forget every cookie, e.g. before logging in again."""
        if self._http is not None:
            self._http.cookies.clear()

    async def close(self) -> None:
        """Close the underlying HTTP client.  Safe to call more than once."""
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("%s HTTP session closed.", self._provider)
        self._http = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                # Login and session expiry both answer with redirects.
                follow_redirects=True,
                transport=self._transport,
                headers={
                    "User-Agent": _USER_AGENT,
                    "Accept": "application/json, text/html;q=0.9, */*;q=0.8",
                    **self._default_headers,
                },
            )
            logger.debug(
                "%s HTTP session opened (base_url=%r).",
                self._provider,
                self._base_url or "(none)",
            )
        return self._http

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> httpx.Response:
        client = await self._ensure_client()
        try:
            response = await client.request(method, url, params=params, data=data, json=json)
        except httpx.TransportError as exc:
            raise ProviderFetchError(
                self._provider, f"{method} {url} failed: {exc!r}"
            ) from exc

        logger.debug(
            "HTTP %s %s → %d (%d bytes)",
            method,
            url,
            response.status_code,
            len(response.content),
        )

        if response.is_success:
            return response

        if response.status_code in _AUTH_STATUS:
            raise ProviderAuthError(
                self._provider,
                f"HTTP {response.status_code} on {method} {url}: session rejected",
            )

        raise ProviderFetchError(
            self._provider,
            f"HTTP {response.status_code} on {method} {url}: {response.text[:200]}",
            status_code=response.status_code,
        )
