"""Google AI (Gemini) generateContent adapter.

The API key travels as the ``key`` query parameter; no auth header is sent.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from chatbridge.core.messages import ChatRole
from chatbridge.core.provider_catalog import Provider, ProtocolFamily
from chatbridge.core.providers.base import (
    ChatInput,
    ProviderAdapter,
    code_context_block,
    history_for_request,
    validate_schema,
)
from chatbridge.core.providers.errors import MalformedResponseError, ResponseParseFailedError
from chatbridge.core.providers.multimodal import (
    ImagePart,
    MultimodalPart,
    TextPart,
    build_user_content,
)
from chatbridge.core.transport import HttpRequest

_MODEL_NAME_PREFIX = "models/"


class _ModelEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None


class _ModelList(BaseModel):
    models: List[_ModelEntry]


class _Part(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: Optional[str] = None


class _Content(BaseModel):
    parts: List[_Part]


class _Candidate(BaseModel):
    content: _Content


class _GenerateContentResponse(BaseModel):
    candidates: List[_Candidate]


def _serialize_part(part: MultimodalPart) -> Dict[str, Any]:
    if isinstance(part, ImagePart):
        return {"inlineData": {"mimeType": part.media_type, "data": part.data}}
    return {"text": part.text}


class GeminiAdapter(ProviderAdapter):
    protocol = ProtocolFamily.GOOGLE_AI

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {}

    def build_discovery_request(self, base_url: str, api_key: str) -> HttpRequest:
        return HttpRequest(method="GET", url=f"{base_url}/models", params={"key": api_key})

    def normalize_models(self, provider: Provider, payload: Any) -> List[str]:
        listing = validate_schema(
            _ModelList, payload, MalformedResponseError, '{"models": [{"name": ...}]}'
        )
        model_ids = [
            entry.name.removeprefix(_MODEL_NAME_PREFIX) for entry in listing.models if entry.name
        ]
        return sorted(model_id for model_id in model_ids if "gemini" in model_id)

    def build_chat_request(self, chat: ChatInput) -> HttpRequest:
        contents: List[Dict[str, Any]] = []
        for turn in history_for_request(chat.history):
            role = "user" if turn.role == ChatRole.USER else "model"
            contents.append({"role": role, "parts": [{"text": turn.content}]})

        content = build_user_content(chat.message, chat.attachments)
        preamble = code_context_block(chat.code_context)
        text = TextPart(f"{preamble}\n\n{content.text.text}") if preamble else content.text
        parts: List[MultimodalPart] = [*content.images, text]
        contents.append({"role": "user", "parts": [_serialize_part(part) for part in parts]})

        return HttpRequest(
            method="POST",
            url=f"{chat.base_url}/models/{chat.model}:generateContent",
            params={"key": chat.api_key},
            json_body={"contents": contents},
        )

    def parse_chat_response(self, payload: Any) -> str:
        response = validate_schema(
            _GenerateContentResponse,
            payload,
            ResponseParseFailedError,
            "candidates[0].content.parts[0].text",
        )
        if not response.candidates or not response.candidates[0].content.parts:
            raise ResponseParseFailedError("response contained no candidate parts")
        text = response.candidates[0].content.parts[0].text
        if text is None:
            raise ResponseParseFailedError("first candidate part carries no text")
        return text
