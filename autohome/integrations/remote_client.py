"""REST client for the remote Autohome configuration authority.

Pulls authoritative zone and device records for the periodic full refresh.
Authentication uses the opaque API key passed as the ``api_key`` query
parameter on every request.
"""

from __future__ import annotations

import logging
from contextlib import suppress
from typing import Any

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class RemoteClientError(Exception):
    """Base exception for all remote client errors."""


class RemoteConnectionError(RemoteClientError):
    """Raised when the client cannot reach the configuration authority."""


class RemoteAuthenticationError(RemoteClientError):
    """Raised on 401/403 responses."""


class RemoteNotFoundError(RemoteClientError):
    """Raised on 404 Not Found responses (unknown home / zone)."""


class RemoteResponseError(RemoteClientError):
    """Raised on other HTTP errors or undecodable bodies."""


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class RemoteConfigClient:
    """Async REST wrapper for the configuration authority.

    Usage::

        async with RemoteConfigClient("https://autohome.example", api_key="...") as client:
            zone = await client.get_zone("home-1", "zone-1")
            devices = await client.get_devices("home-1", "zone-1")
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        timeout: float = 15.0,
        verify_ssl: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    # -- async context manager ------------------------------------------------

    async def __aenter__(self) -> RemoteConfigClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.disconnect()

    # -- lifecycle ------------------------------------------------------------

    async def connect(self) -> None:
        """Initialise the ``httpx.AsyncClient``.

        No request is made here; the authority may legitimately be
        unreachable at startup and the first refresh reports that instead.
        """
        if self._client is not None:
            return

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Accept": "application/json"},
            params={"api_key": self._api_key} if self._api_key else None,
            timeout=self._timeout,
            verify=self._verify_ssl,
            transport=self._transport,
        )
        logger.info("Remote configuration client ready for %s", self._base_url)

    async def disconnect(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            with suppress(Exception):
                await self._client.aclose()
            self._client = None
            logger.info("Remote configuration client closed")

    # -- internal request helper ----------------------------------------------

    def _raise_for_status(self, response: httpx.Response, *, context: str = "") -> None:
        """Translate HTTP error codes into typed exceptions."""
        if response.is_success:
            return

        status = response.status_code
        detail = response.text[:300]
        prefix = f"[{context}] " if context else ""

        if status in (401, 403):
            raise RemoteAuthenticationError(f"{prefix}Authentication failed ({status})")
        if status == 404:
            raise RemoteNotFoundError(f"{prefix}Resource not found (404): {detail}")
        raise RemoteResponseError(f"{prefix}HTTP {status}: {detail}")

    async def _get(self, path: str, *, context: str) -> Any:
        if self._client is None:
            await self.connect()
        assert self._client is not None  # noqa: S101 - guaranteed by connect()

        logger.debug("GET %s", path)
        try:
            response = await self._client.get(path)
        except httpx.TimeoutException as exc:
            raise RemoteConnectionError(f"Request to {path} timed out ({self._timeout}s)") from exc
        except httpx.TransportError as exc:
            raise RemoteConnectionError(f"Cannot reach {self._base_url}: {exc}") from exc

        self._raise_for_status(response, context=context)
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteResponseError(f"[{context}] Response is not JSON") from exc

    # -- API ------------------------------------------------------------------

    async def get_zone(self, home_id: str, zone_id: str) -> dict[str, Any]:
        """Fetch the authoritative zone record (schedules, overrides, name)."""
        data = await self._get(
            f"/api/homes/{home_id}/zones/{zone_id}", context=f"get_zone({zone_id})"
        )
        if not isinstance(data, dict):
            raise RemoteResponseError(f"[get_zone({zone_id})] Expected an object")
        return data

    async def get_devices(self, home_id: str, zone_id: str) -> list[dict[str, Any]]:
        """Fetch the authoritative device list for a zone."""
        data = await self._get(
            f"/api/homes/{home_id}/zones/{zone_id}/devices",
            context=f"get_devices({zone_id})",
        )
        if not isinstance(data, list):
            raise RemoteResponseError(f"[get_devices({zone_id})] Expected a list")
        return [item for item in data if isinstance(item, dict)]


__all__ = [
    "RemoteAuthenticationError",
    "RemoteClientError",
    "RemoteConfigClient",
    "RemoteConnectionError",
    "RemoteNotFoundError",
    "RemoteResponseError",
]
