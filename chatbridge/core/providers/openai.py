"""OpenAI-compatible protocol adapter (OpenAI, Mistral, Groq, Together AI, Custom)."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from chatbridge.core.config import MAX_OUTPUT_TOKENS
from chatbridge.core.messages import ChatRole
from chatbridge.core.provider_catalog import Provider, ProtocolFamily, ProviderKind
from chatbridge.core.providers.base import (
    ChatInput,
    ProviderAdapter,
    history_for_request,
    order_by_priority,
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

OPENAI_PRIORITY = ("gpt-4o", "gpt-4-turbo", "gpt-4", "gpt-3.5-turbo")
_OPENAI_CHAT_MARKERS = ("gpt", "o1", "o3")
_TOGETHER_CHAT_MARKERS = ("chat", "instruct", "llama", "mixtral", "qwen")


class _ModelEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None


class _ModelList(BaseModel):
    data: List[_ModelEntry]


_BARE_MODEL_LIST = TypeAdapter(List[_ModelEntry])


class _ReplyMessage(BaseModel):
    content: str


class _Choice(BaseModel):
    message: _ReplyMessage


class _ChatCompletion(BaseModel):
    choices: List[_Choice]


def _is_openai_chat_model(model_id: str) -> bool:
    if "instruct" in model_id:
        return False
    return any(marker in model_id for marker in _OPENAI_CHAT_MARKERS)


def _is_together_chat_model(model_id: str) -> bool:
    lowered = model_id.lower()
    return any(marker in lowered for marker in _TOGETHER_CHAT_MARKERS)


def _serialize_part(part: MultimodalPart) -> Dict[str, Any]:
    if isinstance(part, ImagePart):
        return {"type": "image_url", "image_url": {"url": part.data_url}}
    return {"type": "text", "text": part.text}


class OpenAICompatibleAdapter(ProviderAdapter):
    protocol = ProtocolFamily.OPENAI_COMPATIBLE

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    def build_discovery_request(self, base_url: str, api_key: str) -> HttpRequest:
        return HttpRequest(method="GET", url=f"{base_url}/models", headers=self.auth_headers(api_key))

    def normalize_models(self, provider: Provider, payload: Any) -> List[str]:
        bare_list = isinstance(payload, list)
        if bare_list:
            try:
                entries = _BARE_MODEL_LIST.validate_python(payload)
            except ValidationError as exc:
                raise MalformedResponseError("expected a list of model objects") from exc
        else:
            entries = validate_schema(
                _ModelList, payload, MalformedResponseError, '{"data": [{"id": ...}]}'
            ).data

        model_ids = [entry.id for entry in entries if entry.id]
        if provider.kind == ProviderKind.OPENAI:
            return order_by_priority(
                [model_id for model_id in model_ids if _is_openai_chat_model(model_id)],
                OPENAI_PRIORITY,
            )
        if provider.kind == ProviderKind.TOGETHER_AI and bare_list:
            model_ids = [model_id for model_id in model_ids if _is_together_chat_model(model_id)]
        return sorted(model_ids)

    def build_chat_request(self, chat: ChatInput) -> HttpRequest:
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": system_instruction(chat.system_prompt, chat.code_context)}
        ]
        for turn in history_for_request(chat.history):
            role = "user" if turn.role == ChatRole.USER else "assistant"
            messages.append({"role": role, "content": turn.content})

        content = build_user_content(chat.message, chat.attachments)
        if chat.attachments:
            parts: List[MultimodalPart] = [content.text, *content.images]
            messages.append({"role": "user", "content": [_serialize_part(part) for part in parts]})
        else:
            messages.append({"role": "user", "content": content.text.text})

        return HttpRequest(
            method="POST",
            url=f"{chat.base_url}/chat/completions",
            headers=self.auth_headers(chat.api_key),
            json_body={
                "model": chat.model,
                "messages": messages,
                "max_tokens": MAX_OUTPUT_TOKENS,
            },
        )

    def parse_chat_response(self, payload: Any) -> str:
        completion = validate_schema(
            _ChatCompletion, payload, ResponseParseFailedError, "choices[0].message.content"
        )
        if not completion.choices:
            raise ResponseParseFailedError("response contained no choices")
        return completion.choices[0].message.content


__all__ = ["OPENAI_PRIORITY", "OpenAICompatibleAdapter"]
