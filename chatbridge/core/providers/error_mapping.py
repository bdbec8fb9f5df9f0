"""Translation of HTTP statuses and httpx failures into provider errors."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from chatbridge.core.providers.errors import (
    ChatRequestFailedError,
    DiscoveryFailedError,
    InvalidEndpointError,
    ProviderConnectionError,
    ProviderMappedError,
    ProviderTimeoutError,
    RateLimitedError,
)
from chatbridge.core.transport import HttpRequest, HttpTransport

RATE_LIMIT_STATUS = 429

# The connection dropped mid-exchange; sending again may succeed.
_DROPPED_CONNECTION_ERRORS = (httpx.RemoteProtocolError, httpx.ReadError, httpx.WriteError)

# Everything httpx raises while sending a request and reading its body.
# InvalidURL is not a RequestError subclass.
REQUEST_ERRORS = (httpx.RequestError, httpx.InvalidURL)


def is_success_status(status_code: int) -> bool:
    return 200 <= status_code < 300


def extract_error_message(payload: Any) -> Optional[str]:
    """Pull the provider-supplied message out of a decoded error body.

    Understands ``{"error": {"message": ...}}`` (OpenAI, Anthropic, Google),
    ``{"error": "..."}`` and ``{"message": "..."}``.
    """
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    if isinstance(error, str) and error:
        return error
    message = payload.get("message")
    if isinstance(message, str) and message:
        return message
    return None


def error_message_from_response(response: httpx.Response) -> Optional[str]:
    """Decode ``response`` and extract a provider error message if there is one."""
    try:
        payload = response.json()
    except ValueError:
        return None
    return extract_error_message(payload)


def map_discovery_status(response: httpx.Response) -> ProviderMappedError:
    """Map a non-2xx model-list response to a normalized error."""
    return DiscoveryFailedError(response.status_code, error_message_from_response(response))


def map_chat_status(response: httpx.Response) -> ProviderMappedError:
    """Map a non-2xx chat response; 429 becomes a distinct rate-limit error."""
    message = error_message_from_response(response)
    if response.status_code == RATE_LIMIT_STATUS:
        return RateLimitedError(message)
    return ChatRequestFailedError(response.status_code, message)


def map_request_error(
    exc: Exception, *, endpoint: str = "", custom_endpoint: bool = False
) -> ProviderMappedError:
    """Normalize an httpx failure raised while sending to ``endpoint``.

    Timeouts keep their own code. Any other failure on the Custom provider
    blames the user's endpoint; on fixed providers it is a connection error.
    Decoding failures and redirect loops are included, so nothing httpx
    raises reaches callers unmapped.
    """
    detail = str(exc) or type(exc).__name__
    if isinstance(exc, httpx.TimeoutException):
        return ProviderTimeoutError(f"Request timed out: {detail}")
    if isinstance(exc, (httpx.InvalidURL, httpx.UnsupportedProtocol)):
        return InvalidEndpointError(detail, endpoint)
    if custom_endpoint:
        return InvalidEndpointError(f"request to endpoint failed: {detail}", endpoint)
    return ProviderConnectionError(
        f"Connection error: {detail}",
        retryable=isinstance(exc, _DROPPED_CONNECTION_ERRORS),
    )


async def send_mapped(
    transport: HttpTransport,
    request: HttpRequest,
    *,
    endpoint: str = "",
    custom_endpoint: bool = False,
) -> httpx.Response:
    """Send ``request``, raising a ``ProviderMappedError`` for any httpx failure."""
    try:
        return await transport.send(request)
    except REQUEST_ERRORS as exc:
        raise map_request_error(exc, endpoint=endpoint, custom_endpoint=custom_endpoint) from exc
