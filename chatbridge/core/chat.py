"""Chat request construction and the single-attempt chat call."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from chatbridge.core.config import DEFAULT_SYSTEM_PROMPT
from chatbridge.core.messages import Attachment, ChatTurn
from chatbridge.core.provider_catalog import is_valid_base_url
from chatbridge.core.provider_store import ProviderConfig
from chatbridge.core.providers import ChatInput, get_provider_adapter
from chatbridge.core.providers.error_mapping import (
    is_success_status,
    map_chat_status,
    send_mapped,
)
from chatbridge.core.providers.errors import (
    InvalidEndpointError,
    MissingCredentialError,
    MissingModelError,
    ProviderMappedError,
    ResponseParseFailedError,
)
from chatbridge.core.transport import HttpRequest, HttpTransport
from chatbridge.utils.log import get_logger

logger = get_logger()


class ChatRequestBuilder:
    """Maps a normalized chat turn to a provider request and back.

    ``build`` checks preconditions before anything touches the network:
    missing key, missing model, then (Custom only) an unusable endpoint.
    """

    def __init__(
        self,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        code_context: Optional[str] = None,
    ) -> None:
        self.system_prompt = system_prompt
        self.code_context = code_context

    def build(
        self,
        config: ProviderConfig,
        message: str,
        attachments: Sequence[Attachment] = (),
        history: Sequence[ChatTurn] = (),
        *,
        code_context: Optional[str] = None,
    ) -> HttpRequest:
        provider = config.provider
        if not config.api_key:
            raise MissingCredentialError(provider.name)
        if not config.selected_model:
            raise MissingModelError(provider.name)
        base_url = config.base_url
        if provider.is_custom and not is_valid_base_url(base_url):
            raise InvalidEndpointError(
                "custom endpoint must be an http(s) URL", config.custom_endpoint
            )

        adapter = get_provider_adapter(provider)
        return adapter.build_chat_request(
            ChatInput(
                base_url=base_url,
                api_key=config.api_key,
                model=config.selected_model,
                message=message,
                attachments=attachments,
                history=history,
                system_prompt=self.system_prompt,
                code_context=code_context if code_context is not None else self.code_context,
            )
        )

    def parse(self, config: ProviderConfig, payload: Any) -> str:
        return get_provider_adapter(config.provider).parse_chat_response(payload)


@dataclass
class ChatResult:
    """Reply text or the normalized failure of one chat call."""

    reply: Optional[str] = None
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


class ChatClient:
    """Sends one chat request per call; never retries."""

    def __init__(
        self,
        transport: Optional[HttpTransport] = None,
        builder: Optional[ChatRequestBuilder] = None,
    ) -> None:
        self._transport = transport or HttpTransport()
        self.builder = builder or ChatRequestBuilder()

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def send_chat(
        self,
        config: ProviderConfig,
        message: str,
        attachments: Sequence[Attachment] = (),
        history: Sequence[ChatTurn] = (),
        *,
        code_context: Optional[str] = None,
    ) -> ChatResult:
        start_time = time.time()
        logger.debug(
            "[chat] Preparing request",
            extra={
                "provider": config.provider_name,
                "model": config.selected_model,
                "num_attachments": len(attachments),
                "history_length": len(history),
            },
        )
        try:
            request = self.builder.build(
                config, message, attachments, history, code_context=code_context
            )
            reply = await self._execute(config, request)
        except ProviderMappedError as exc:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "[chat] Request failed",
                extra={
                    "provider": config.provider_name,
                    "model": config.selected_model,
                    "error_code": exc.error_code,
                    "status_code": exc.status_code,
                    "error_message": str(exc),
                    "duration_ms": round(duration_ms, 2),
                },
            )
            return ChatResult(duration_ms=duration_ms, error=exc)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "[chat] Response received",
            extra={
                "provider": config.provider_name,
                "model": config.selected_model,
                "reply_length": len(reply),
                "duration_ms": round(duration_ms, 2),
            },
        )
        return ChatResult(reply=reply, duration_ms=duration_ms)

    async def _execute(self, config: ProviderConfig, request: HttpRequest) -> str:
        response = await send_mapped(
            self._transport,
            request,
            endpoint=config.custom_endpoint or config.base_url,
            custom_endpoint=config.provider.is_custom,
        )
        if not is_success_status(response.status_code):
            raise map_chat_status(response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ResponseParseFailedError("body is not valid JSON") from exc
        return self.builder.parse(config, payload)


__all__ = ["ChatClient", "ChatRequestBuilder", "ChatResult"]
