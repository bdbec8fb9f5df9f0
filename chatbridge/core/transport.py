"""HTTP transport shared by discovery and chat calls."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from chatbridge import __version__
from chatbridge.utils.log import get_logger

logger = get_logger()

USER_AGENT = f"chatbridge/{__version__}"


@dataclass
class HttpRequest:
    """A fully-resolved provider request, built before any I/O happens."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)
    json_body: Optional[Dict[str, Any]] = None


class HttpTransport:
    """Thin async wrapper around ``httpx.AsyncClient``.

    Pass ``client`` to inject a preconfigured client (tests use one built on
    ``httpx.MockTransport``). Otherwise a client is created lazily and owned by
    the transport.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            seconds = 5.0 if self._timeout is None else self._timeout
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(seconds))
        return self._client

    async def send(self, request: HttpRequest) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            **request.headers,
        }
        logger.debug(
            "[transport] Sending request",
            extra={"method": request.method, "url": request.url},
        )
        response = await self._get_client().request(
            request.method,
            request.url,
            headers=headers,
            params=request.params or None,
            json=request.json_body,
        )
        logger.debug(
            "[transport] Received response",
            extra={"url": request.url, "status_code": response.status_code},
        )
        return response

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
