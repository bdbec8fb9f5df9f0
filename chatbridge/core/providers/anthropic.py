"""Anthropic Messages API adapter."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from chatbridge.core.config import ANTHROPIC_VERSION, MAX_OUTPUT_TOKENS
from chatbridge.core.messages import ChatRole
from chatbridge.core.provider_catalog import Provider, ProtocolFamily
from chatbridge.core.providers.base import (
    ChatInput,
    ProviderAdapter,
    history_for_request,
    system_instruction,
    validate_schema,
)
from chatbridge.core.providers.errors import MalformedResponseError, ResponseParseFailedError
from chatbridge.core.providers.multimodal import (
    ImagePart,
    MultimodalPart,
    build_user_content,
)
from chatbridge.core.transport import HttpRequest


class _ModelEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None


class _ModelList(BaseModel):
    data: List[_ModelEntry]


class _ContentBlock(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: Optional[str] = None


class _MessageResponse(BaseModel):
    content: List[_ContentBlock]


def _serialize_part(part: MultimodalPart) -> Dict[str, Any]:
    if isinstance(part, ImagePart):
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": part.media_type, "data": part.data},
        }
    return {"type": "text", "text": part.text}


class AnthropicAdapter(ProviderAdapter):
    protocol = ProtocolFamily.ANTHROPIC

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION}

    def build_discovery_request(self, base_url: str, api_key: str) -> HttpRequest:
        return HttpRequest(method="GET", url=f"{base_url}/models", headers=self.auth_headers(api_key))

    def normalize_models(self, provider: Provider, payload: Any) -> List[str]:
        listing = validate_schema(
            _ModelList, payload, MalformedResponseError, '{"data": [{"id": ...}]}'
        )
        return sorted(entry.id for entry in listing.data if entry.id)

    def build_validation_request(
        self, provider: Provider, api_key: str
    ) -> Optional[HttpRequest]:
        """A 1-token completion; any 2xx reply proves the key works."""
        if not provider.default_models:
            return None
        return HttpRequest(
            method="POST",
            url=f"{provider.base_url}/messages",
            headers=self.auth_headers(api_key),
            json_body={
                "model": provider.default_models[0],
                "max_tokens": 1,
                "messages": [{"role": "user", "content": "test"}],
            },
        )

    def build_chat_request(self, chat: ChatInput) -> HttpRequest:
        messages: List[Dict[str, Any]] = []
        for turn in history_for_request(chat.history):
            role = "user" if turn.role == ChatRole.USER else "assistant"
            messages.append({"role": role, "content": turn.content})

        content = build_user_content(chat.message, chat.attachments)
        parts: List[MultimodalPart] = [*content.images, content.text]
        messages.append({"role": "user", "content": [_serialize_part(part) for part in parts]})

        return HttpRequest(
            method="POST",
            url=f"{chat.base_url}/messages",
            headers=self.auth_headers(chat.api_key),
            json_body={
                "model": chat.model,
                "max_tokens": MAX_OUTPUT_TOKENS,
                "system": system_instruction(chat.system_prompt, chat.code_context),
                "messages": messages,
            },
        )

    def parse_chat_response(self, payload: Any) -> str:
        response = validate_schema(
            _MessageResponse, payload, ResponseParseFailedError, "content[0].text"
        )
        if not response.content or response.content[0].text is None:
            raise ResponseParseFailedError("first content block carries no text")
        return response.content[0].text
