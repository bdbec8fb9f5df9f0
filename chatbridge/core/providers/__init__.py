"""Protocol adapter registry."""

from __future__ import annotations

from typing import Dict

from chatbridge.core.provider_catalog import Provider, ProtocolFamily
from chatbridge.core.providers.anthropic import AnthropicAdapter
from chatbridge.core.providers.base import ChatInput, ProviderAdapter
from chatbridge.core.providers.gemini import GeminiAdapter
from chatbridge.core.providers.openai import OpenAICompatibleAdapter

_ADAPTERS: Dict[ProtocolFamily, ProviderAdapter] = {
    ProtocolFamily.OPENAI_COMPATIBLE: OpenAICompatibleAdapter(),
    ProtocolFamily.ANTHROPIC: AnthropicAdapter(),
    ProtocolFamily.GOOGLE_AI: GeminiAdapter(),
}


def get_provider_adapter(provider: Provider | ProtocolFamily) -> ProviderAdapter:
    """Return the adapter that speaks the given provider's protocol."""
    protocol = provider.protocol if isinstance(provider, Provider) else provider
    return _ADAPTERS[protocol]


__all__ = ["ChatInput", "ProviderAdapter", "get_provider_adapter"]
