"""Model discovery across provider protocols.

``ModelDiscoveryClient.discover_models`` never raises for provider failures;
it returns a ``DiscoveryResult`` whose ``error`` carries the normalized cause.
Callers apply ``resolve_models`` to fall back to the catalog defaults.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx

from chatbridge.core.provider_catalog import Provider, is_valid_base_url
from chatbridge.core.provider_store import ProviderConfig
from chatbridge.core.providers import get_provider_adapter
from chatbridge.core.providers.error_mapping import (
    is_success_status,
    map_discovery_status,
    send_mapped,
)
from chatbridge.core.providers.errors import (
    InvalidEndpointError,
    MalformedResponseError,
    ProviderMappedError,
)
from chatbridge.core.transport import HttpRequest, HttpTransport
from chatbridge.utils.log import get_logger

logger = get_logger()

_NOT_FOUND = 404


@dataclass
class DiscoveryResult:
    """Outcome of one discovery call."""

    config_id: str
    provider_name: str
    models: List[str] = field(default_factory=list)
    duration_ms: float = 0.0
    error: Optional[ProviderMappedError] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def error_code(self) -> Optional[str]:
        return self.error.error_code if self.error else None

    @property
    def error_message(self) -> Optional[str]:
        return self.error.user_message if self.error else None


def resolve_models(result: DiscoveryResult, provider: Provider) -> List[str]:
    """Models to show after a discovery attempt.

    Failures fall back to the provider's catalog list, which is empty for
    Custom providers.
    """
    if result.is_error:
        return list(provider.default_models)
    return list(result.models)


def _decode_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise MalformedResponseError("body is not valid JSON") from exc


class ModelDiscoveryClient:
    """Lists the chat models a credential can use."""

    def __init__(
        self,
        transport: Optional[HttpTransport] = None,
        *,
        anthropic_validation_fallback: bool = True,
    ) -> None:
        self._transport = transport or HttpTransport()
        self._anthropic_validation_fallback = anthropic_validation_fallback

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def discover_models(self, config: ProviderConfig) -> DiscoveryResult:
        """Discover models for ``config``.

        An empty API key short-circuits to an empty list without any request.
        """
        result = DiscoveryResult(config_id=config.id, provider_name=config.provider_name)
        if not config.api_key:
            logger.debug(
                "[discovery] Skipping discovery without API key",
                extra={"provider": config.provider_name},
            )
            return result

        start_time = time.time()
        try:
            result.models = await self._discover(config)
        except ProviderMappedError as exc:
            result.error = exc
            result.duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                "[discovery] Model discovery failed",
                extra={
                    "provider": config.provider_name,
                    "error_code": exc.error_code,
                    "status_code": exc.status_code,
                    "error_message": str(exc),
                    "duration_ms": round(result.duration_ms, 2),
                },
            )
            return result

        result.duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "[discovery] Discovered models",
            extra={
                "provider": config.provider_name,
                "model_count": len(result.models),
                "duration_ms": round(result.duration_ms, 2),
            },
        )
        return result

    async def discover_many(
        self, configs: Sequence[ProviderConfig]
    ) -> Dict[str, DiscoveryResult]:
        """Run discovery for several configs concurrently, keyed by config id."""
        results = await asyncio.gather(*(self.discover_models(config) for config in configs))
        return {result.config_id: result for result in results}

    async def _discover(self, config: ProviderConfig) -> List[str]:
        provider = config.provider
        base_url = config.base_url
        if provider.is_custom and not is_valid_base_url(base_url):
            raise InvalidEndpointError(
                "custom endpoint must be an http(s) URL", config.custom_endpoint
            )

        adapter = get_provider_adapter(provider)
        request = adapter.build_discovery_request(base_url, config.api_key)
        response = await self._send(request, config)

        if response.status_code == _NOT_FOUND and self._anthropic_validation_fallback:
            validation = adapter.build_validation_request(provider, config.api_key)
            if validation is not None:
                logger.debug(
                    "[discovery] Model listing unavailable; validating key instead",
                    extra={"provider": config.provider_name},
                )
                return await self._validate_key(validation, config)

        if not is_success_status(response.status_code):
            raise map_discovery_status(response)
        return adapter.normalize_models(provider, _decode_json(response))

    async def _validate_key(self, request: HttpRequest, config: ProviderConfig) -> List[str]:
        response = await self._send(request, config)
        if not is_success_status(response.status_code):
            raise map_discovery_status(response)
        return list(config.provider.default_models)

    async def _send(self, request: HttpRequest, config: ProviderConfig) -> httpx.Response:
        return await send_mapped(
            self._transport,
            request,
            endpoint=config.custom_endpoint or config.base_url,
            custom_endpoint=config.provider.is_custom,
        )


__all__ = ["DiscoveryResult", "ModelDiscoveryClient", "resolve_models"]
