"""Shared abstractions for provider protocol adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from chatbridge.core.config import DEFAULT_SYSTEM_PROMPT
from chatbridge.core.messages import Attachment, ChatTurn
from chatbridge.core.provider_catalog import Provider, ProtocolFamily
from chatbridge.core.providers.errors import ProviderMappedError
from chatbridge.core.transport import HttpRequest

SchemaT = TypeVar("SchemaT", bound=BaseModel)


@dataclass
class ChatInput:
    """Everything an adapter needs to build one chat request."""

    base_url: str
    api_key: str
    model: str
    message: str
    attachments: Sequence[Attachment] = ()
    history: Sequence[ChatTurn] = ()
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    code_context: Optional[str] = None


class ProviderAdapter(ABC):
    """Translates between normalized chat data and one wire protocol.

    Adapters are pure: they build requests and parse decoded bodies but never
    perform I/O.
    """

    protocol: ProtocolFamily

    @abstractmethod
    def auth_headers(self, api_key: str) -> Dict[str, str]:
        """Headers that authenticate a request."""

    @abstractmethod
    def build_discovery_request(self, base_url: str, api_key: str) -> HttpRequest:
        """Request that lists the models visible to ``api_key``."""

    @abstractmethod
    def normalize_models(self, provider: Provider, payload: Any) -> List[str]:
        """Ordered model ids from a decoded model-list body.

        Raises MalformedResponseError when the body has the wrong shape.
        """

    @abstractmethod
    def build_chat_request(self, chat: ChatInput) -> HttpRequest:
        """Provider-specific request for one chat turn."""

    @abstractmethod
    def parse_chat_response(self, payload: Any) -> str:
        """Reply text from a decoded chat body.

        Raises ResponseParseFailedError when the expected path is missing.
        """

    def build_validation_request(
        self, provider: Provider, api_key: str
    ) -> Optional[HttpRequest]:
        """Key-validation request used when the model list is unavailable."""
        return None


def validate_schema(
    schema: Type[SchemaT],
    payload: Any,
    error_cls: Type[ProviderMappedError],
    expected: str,
) -> SchemaT:
    """Validate ``payload`` against ``schema`` or raise ``error_cls``."""
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise error_cls(f"expected {expected} ({exc.error_count()} validation errors)") from exc


def order_by_priority(model_ids: Iterable[str], priority: Sequence[str]) -> List[str]:
    """Stable-sort ids by the first priority entry each one contains.

    Ids matching no entry keep their relative order at the end.
    """

    def rank(model_id: str) -> int:
        for index, marker in enumerate(priority):
            if marker in model_id:
                return index
        return len(priority)

    return sorted(model_ids, key=rank)


def history_for_request(history: Sequence[ChatTurn]) -> List[ChatTurn]:
    """Drop assistant error notices; providers never produced them."""
    return [turn for turn in history if not turn.is_error]


def code_context_block(code_context: Optional[str]) -> str:
    if not code_context:
        return ""
    return f"Current code context:\n```\n{code_context}\n```"


def system_instruction(system_prompt: str, code_context: Optional[str]) -> str:
    block = code_context_block(code_context)
    if not block:
        return system_prompt
    return f"{system_prompt}\n\n{block}"
