"""Pytest configuration and fixtures for all tests."""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Tuple

import httpx
import pytest

from chatbridge.core.config import api_key_env_candidates
from chatbridge.core.provider_catalog import ProviderKind
from chatbridge.core.provider_store import ProviderConfig
from chatbridge.core.transport import HttpTransport

Responder = Callable[[httpx.Request], httpx.Response]


class RecordingHandler:
    """Handler for ``httpx.MockTransport`` that counts calls and keeps every request."""

    def __init__(self, responder: Responder) -> None:
        self._responder = responder
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responder(request)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]


def json_responder(payload: Any, status_code: int = 200) -> Responder:
    def respond(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload)

    return respond


@pytest.fixture
def make_transport() -> Callable[[Responder], Tuple[HttpTransport, RecordingHandler]]:
    """Build an HttpTransport backed by a recording mock handler."""

    def factory(responder: Responder) -> Tuple[HttpTransport, RecordingHandler]:
        handler = RecordingHandler(responder)
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return HttpTransport(client), handler

    return factory


def make_config(
    kind: ProviderKind,
    *,
    api_key: str = "sk-test-key-123456",
    model: str = "",
    endpoint: str = "",
    models: Optional[List[str]] = None,
) -> ProviderConfig:
    return ProviderConfig(
        kind=kind,
        api_key=api_key,
        selected_model=model,
        custom_endpoint=endpoint,
        available_models=list(models or []),
    )


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep real credentials and the user's config directory out of tests."""
    for kind in ProviderKind:
        for env_var in api_key_env_candidates(kind):
            monkeypatch.delenv(env_var, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("CHATBRIDGE_CONFIG_DIR", str(tmp_path / "config"))
    yield
