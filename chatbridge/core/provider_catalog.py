"""Static catalog of the providers Chatbridge knows how to talk to."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict


class ProviderKind(str, Enum):
    """Known providers, keyed by their display name."""

    OPENAI = "OpenAI"
    ANTHROPIC = "Anthropic"
    GOOGLE_AI = "Google AI"
    MISTRAL = "Mistral"
    GROQ = "Groq"
    TOGETHER_AI = "Together AI"
    CUSTOM = "Custom"

    @classmethod
    def _aliases(cls) -> Dict[str, "ProviderKind"]:
        return {
            "openai": cls.OPENAI,
            "anthropic": cls.ANTHROPIC,
            "claude": cls.ANTHROPIC,
            "google": cls.GOOGLE_AI,
            "google ai": cls.GOOGLE_AI,
            "google-ai": cls.GOOGLE_AI,
            "gemini": cls.GOOGLE_AI,
            "mistral": cls.MISTRAL,
            "groq": cls.GROQ,
            "together": cls.TOGETHER_AI,
            "together ai": cls.TOGETHER_AI,
            "together-ai": cls.TOGETHER_AI,
            "custom": cls.CUSTOM,
            "openai-compatible": cls.CUSTOM,
        }

    @classmethod
    def _missing_(cls, value: object) -> Optional["ProviderKind"]:
        """Accept case-insensitive names and common aliases."""
        if isinstance(value, str):
            return cls._aliases().get(value.strip().lower())
        return None


class ProtocolFamily(str, Enum):
    """Wire protocol spoken by a provider."""

    OPENAI_COMPATIBLE = "openai_compatible"
    ANTHROPIC = "anthropic"
    GOOGLE_AI = "google_ai"


class AuthStyle(str, Enum):
    """Where the API key travels on each request."""

    BEARER_HEADER = "bearer-header"
    API_KEY_HEADER = "api-key-header"
    QUERY_PARAM_KEY = "query-param-key"
    NONE = "none"


class Provider(BaseModel):
    """Provider metadata independent of any user configuration."""

    model_config = ConfigDict(frozen=True)

    kind: ProviderKind
    protocol: ProtocolFamily
    auth_style: AuthStyle
    base_url: str = ""
    default_models: Tuple[str, ...] = ()
    # Where the reply text lives in a chat completion response body.
    reply_path: str = ""
    website: str = ""

    @property
    def name(self) -> str:
        return self.kind.value

    @property
    def is_custom(self) -> bool:
        return self.kind == ProviderKind.CUSTOM


_OPENAI_REPLY_PATH = "choices[0].message.content"

_PRESETS: Tuple[Provider, ...] = (
    Provider(
        kind=ProviderKind.OPENAI,
        protocol=ProtocolFamily.OPENAI_COMPATIBLE,
        auth_style=AuthStyle.BEARER_HEADER,
        base_url="https://api.openai.com/v1",
        default_models=("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"),
        reply_path=_OPENAI_REPLY_PATH,
        website="https://platform.openai.com",
    ),
    Provider(
        kind=ProviderKind.ANTHROPIC,
        protocol=ProtocolFamily.ANTHROPIC,
        auth_style=AuthStyle.API_KEY_HEADER,
        base_url="https://api.anthropic.com/v1",
        default_models=(
            "claude-3-5-sonnet-20241022",
            "claude-3-5-haiku-20241022",
            "claude-3-opus-20240229",
        ),
        reply_path="content[0].text",
        website="https://console.anthropic.com",
    ),
    Provider(
        kind=ProviderKind.GOOGLE_AI,
        protocol=ProtocolFamily.GOOGLE_AI,
        auth_style=AuthStyle.QUERY_PARAM_KEY,
        base_url="https://generativelanguage.googleapis.com/v1beta",
        default_models=("gemini-2.0-flash-exp", "gemini-1.5-pro", "gemini-1.5-flash"),
        reply_path="candidates[0].content.parts[0].text",
        website="https://aistudio.google.com",
    ),
    Provider(
        kind=ProviderKind.MISTRAL,
        protocol=ProtocolFamily.OPENAI_COMPATIBLE,
        auth_style=AuthStyle.BEARER_HEADER,
        base_url="https://api.mistral.ai/v1",
        default_models=("mistral-large-latest", "mistral-small-latest", "open-mistral-nemo"),
        reply_path=_OPENAI_REPLY_PATH,
        website="https://console.mistral.ai",
    ),
    Provider(
        kind=ProviderKind.GROQ,
        protocol=ProtocolFamily.OPENAI_COMPATIBLE,
        auth_style=AuthStyle.BEARER_HEADER,
        base_url="https://api.groq.com/openai/v1",
        default_models=("llama-3.3-70b-versatile", "llama-3.1-8b-instant", "mixtral-8x7b-32768"),
        reply_path=_OPENAI_REPLY_PATH,
        website="https://console.groq.com",
    ),
    Provider(
        kind=ProviderKind.TOGETHER_AI,
        protocol=ProtocolFamily.OPENAI_COMPATIBLE,
        auth_style=AuthStyle.BEARER_HEADER,
        base_url="https://api.together.xyz/v1",
        default_models=(
            "meta-llama/Llama-3.3-70B-Instruct-Turbo",
            "mistralai/Mixtral-8x7B-Instruct-v0.1",
            "Qwen/Qwen2.5-72B-Instruct-Turbo",
        ),
        reply_path=_OPENAI_REPLY_PATH,
        website="https://api.together.xyz",
    ),
    Provider(
        kind=ProviderKind.CUSTOM,
        protocol=ProtocolFamily.OPENAI_COMPATIBLE,
        auth_style=AuthStyle.BEARER_HEADER,
        reply_path=_OPENAI_REPLY_PATH,
    ),
)

_BY_KIND: Dict[ProviderKind, Provider] = {preset.kind: preset for preset in _PRESETS}

_COMPLETIONS_SUFFIX = "/chat/completions"


def presets_for_all_providers() -> List[Provider]:
    """Return every known provider in display order."""
    return list(_PRESETS)


def get_provider(kind: ProviderKind | str) -> Provider:
    """Look up a provider preset by kind or (alias-tolerant) name.

    Raises ValueError for names that match no provider.
    """
    return _BY_KIND[ProviderKind(kind)]


def resolve_provider_kind(name: str) -> Optional[ProviderKind]:
    """Return the provider kind for a display name or alias, or None."""
    try:
        return ProviderKind(name)
    except ValueError:
        return None


def normalize_base_url(raw: str) -> str:
    """Reduce a user-entered endpoint to its API root.

    Users commonly paste the full completions URL; that suffix and any trailing
    slash are dropped so operation paths can be appended.
    """
    value = (raw or "").strip().rstrip("/")
    if value.endswith(_COMPLETIONS_SUFFIX):
        value = value[: -len(_COMPLETIONS_SUFFIX)].rstrip("/")
    return value


def is_valid_base_url(value: str) -> bool:
    """True when ``value`` is an absolute http(s) URL with a host."""
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


__all__ = [
    "AuthStyle",
    "ProtocolFamily",
    "Provider",
    "ProviderKind",
    "get_provider",
    "is_valid_base_url",
    "normalize_base_url",
    "presets_for_all_providers",
    "resolve_provider_kind",
]
