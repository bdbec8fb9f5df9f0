"""Tests for provider error normalization helpers."""

import httpx
import pytest

from chatbridge.core.providers.error_mapping import (
    extract_error_message,
    map_chat_status,
    map_discovery_status,
    map_request_error,
    send_mapped,
)
from chatbridge.core.providers.errors import (
    ChatRequestFailedError,
    DiscoveryFailedError,
    InvalidEndpointError,
    MissingCredentialError,
    ProviderConnectionError,
    ProviderMappedError,
    ProviderTimeoutError,
    RateLimitedError,
)
from chatbridge.core.transport import HttpRequest, HttpTransport


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"error": {"message": "bad key", "type": "auth"}}, "bad key"),
        ({"error": "quota exceeded"}, "quota exceeded"),
        ({"message": "not found"}, "not found"),
        ({"error": {"code": 400}}, None),
        ({"error": ""}, None),
        ([], None),
        ("text", None),
    ],
)
def test_extract_error_message(payload, expected):
    assert extract_error_message(payload) == expected


def test_map_chat_status_distinguishes_rate_limit():
    limited = map_chat_status(httpx.Response(429, json={"error": {"message": "slow"}}))
    failed = map_chat_status(httpx.Response(503, text="Service Unavailable"))

    assert isinstance(limited, RateLimitedError)
    assert limited.provider_message == "slow"
    assert isinstance(failed, ChatRequestFailedError)
    assert failed.error_code == "chat_request_failed"
    assert failed.status_code == 503
    assert failed.provider_message is None


def test_map_discovery_status():
    error = map_discovery_status(httpx.Response(403, json={"error": {"message": "forbidden"}}))
    assert isinstance(error, DiscoveryFailedError)
    assert error.status_code == 403
    assert error.user_message == "Failed to fetch models: forbidden"
    assert "403" in str(map_discovery_status(httpx.Response(403)))


REQUEST = httpx.Request("GET", "https://api.example.com/v1/models")


def test_map_request_error_timeouts_and_endpoints():
    assert isinstance(map_request_error(httpx.ReadTimeout("slow", request=REQUEST)), ProviderTimeoutError)
    assert isinstance(map_request_error(httpx.UnsupportedProtocol("ftp")), InvalidEndpointError)
    assert isinstance(map_request_error(httpx.InvalidURL("bad host")), InvalidEndpointError)

    refused = httpx.ConnectError("refused", request=REQUEST)
    connection = map_request_error(refused)
    assert isinstance(connection, ProviderConnectionError)
    assert not connection.retryable
    custom = map_request_error(refused, endpoint="http://localhost:9", custom_endpoint=True)
    assert isinstance(custom, InvalidEndpointError)
    assert custom.endpoint == "http://localhost:9"


def test_map_request_error_dropped_connection_is_retryable():
    dropped = map_request_error(httpx.RemoteProtocolError("peer closed connection", request=REQUEST))
    assert isinstance(dropped, ProviderConnectionError)
    assert dropped.retryable


@pytest.mark.parametrize(
    "exc",
    [
        httpx.DecodingError("Error -3 while decompressing data", request=REQUEST),
        httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=REQUEST),
    ],
)
def test_map_request_error_covers_non_transport_request_errors(exc):
    assert isinstance(map_request_error(exc), ProviderConnectionError)
    assert isinstance(map_request_error(exc, custom_endpoint=True), InvalidEndpointError)


@pytest.mark.asyncio
async def test_send_mapped_translates_and_chains():
    def respond(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    transport = HttpTransport(httpx.AsyncClient(transport=httpx.MockTransport(respond)))
    with pytest.raises(ProviderTimeoutError) as exc_info:
        await send_mapped(transport, HttpRequest(method="GET", url="https://api.example.com/v1/models"))
    assert isinstance(exc_info.value.__cause__, httpx.ConnectTimeout)


@pytest.mark.asyncio
async def test_send_mapped_maps_undecodable_bodies():
    def respond(request):
        return httpx.Response(200, headers={"content-encoding": "gzip"}, content=b"not gzip at all")

    transport = HttpTransport(httpx.AsyncClient(transport=httpx.MockTransport(respond)))
    with pytest.raises(ProviderMappedError) as exc_info:
        await send_mapped(transport, HttpRequest(method="GET", url="https://api.example.com/v1/models"))
    assert exc_info.value.error_code == "connection_error"
    assert isinstance(exc_info.value.__cause__, httpx.DecodingError)


def test_user_messages():
    assert MissingCredentialError("Groq").user_message == "Please configure an API key for Groq in settings."
    assert InvalidEndpointError("bad").user_message == (
        "Please configure an endpoint URL for the custom provider."
    )
    assert ChatRequestFailedError(400, "context too long").user_message == "context too long"
