"""Consumer-facing entry point that sequences discovery and chat.

Failures never escape as exceptions. A failed ``send`` still yields an
assistant turn, flagged ``is_error``, so the conversation stays linear, and
the structured error travels alongside it for callers that treat rate limits
differently from other failures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from chatbridge.core.chat import ChatClient
from chatbridge.core.discovery import DiscoveryResult, ModelDiscoveryClient, resolve_models
from chatbridge.core.messages import (
    Attachment,
    ChatSession,
    ChatTurn,
    create_assistant_turn,
    create_error_turn,
    create_user_turn,
)
from chatbridge.core.provider_catalog import ProviderKind, presets_for_all_providers
from chatbridge.core.provider_store import ProviderConfig, ProviderConfigStore
from chatbridge.core.providers.errors import (
    NoActiveProviderError,
    OrchestratorBusyError,
    ProviderMappedError,
)
from chatbridge.utils.log import get_logger

logger = get_logger()


@dataclass
class ChatOutcome:
    turn: ChatTurn
    error: Optional[ProviderMappedError] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def error_code(self) -> Optional[str]:
        return self.error.error_code if self.error else None


@dataclass
class DiscoveryOutcome:
    provider_name: str
    models: List[str] = field(default_factory=list)
    error: Optional[ProviderMappedError] = None
    # True when ``models`` came from the catalog because discovery failed.
    used_fallback: bool = False


def _failure(error: ProviderMappedError) -> ChatOutcome:
    return ChatOutcome(turn=create_error_turn(error.user_message, error.error_code), error=error)


class ChatOrchestrator:
    """Routes sends to the active provider and keeps model lists fresh."""

    def __init__(
        self,
        store: ProviderConfigStore,
        chat_client: Optional[ChatClient] = None,
        discovery_client: Optional[ModelDiscoveryClient] = None,
    ) -> None:
        self.store = store
        self.chat_client = chat_client or ChatClient()
        self.discovery_client = discovery_client or ModelDiscoveryClient()
        self._busy = False

    @property
    def is_busy(self) -> bool:
        return self._busy

    async def aclose(self) -> None:
        await self.chat_client.aclose()
        await self.discovery_client.aclose()

    def activate(self, provider_name: ProviderKind | str) -> ProviderConfig:
        """Make a provider the active one, creating its config if needed."""
        config = self.store.get(provider_name)
        self.store.set_active(config.id)
        logger.info("[orchestrator] Activated provider", extra={"provider": config.provider_name})
        return config

    async def send(
        self,
        message: str,
        attachments: Sequence[Attachment] = (),
        history: Sequence[ChatTurn] = (),
        *,
        code_context: Optional[str] = None,
    ) -> ChatOutcome:
        """Send one message to the active provider; exactly one attempt."""
        if self._busy:
            logger.debug("[orchestrator] Rejected send while busy")
            return _failure(OrchestratorBusyError())
        config = self.store.active_config()
        if config is None:
            return _failure(NoActiveProviderError())

        self._busy = True
        try:
            result = await self.chat_client.send_chat(
                config, message, attachments, history, code_context=code_context
            )
        finally:
            self._busy = False

        if result.error is not None:
            return _failure(result.error)
        return ChatOutcome(turn=create_assistant_turn(result.reply or ""))

    async def send_in_session(
        self,
        session: ChatSession,
        message: str,
        attachments: Sequence[Attachment] = (),
        *,
        code_context: Optional[str] = None,
    ) -> ChatOutcome:
        """Like ``send`` but records both turns in ``session``.

        A send rejected because another is in flight leaves the session as is.
        """
        if self._busy:
            return _failure(OrchestratorBusyError())
        history = session.history()
        session.append(create_user_turn(message, attachments))
        outcome = await self.send(message, attachments, history, code_context=code_context)
        session.append(outcome.turn)
        return outcome

    async def refresh_models(self, provider_name: ProviderKind | str) -> DiscoveryOutcome:
        """Discover models for one provider and store the list.

        Without an API key nothing is requested and the stored list is kept.
        """
        config = self.store.get(provider_name)
        if not config.api_key:
            return DiscoveryOutcome(provider_name=config.provider_name)
        result = await self.discovery_client.discover_models(config)
        return self._record(config, result)

    async def refresh_all_models(self) -> Dict[str, DiscoveryOutcome]:
        """Refresh every provider that has an API key, concurrently."""
        configs = [self.store.get(provider.kind) for provider in presets_for_all_providers()]
        configs = [config for config in configs if config.api_key]
        results = await self.discovery_client.discover_many(configs)
        return {
            config.provider_name: self._record(config, results[config.id]) for config in configs
        }

    def _record(self, config: ProviderConfig, result: DiscoveryResult) -> DiscoveryOutcome:
        models = resolve_models(result, config.provider)
        self.store.record_models(config.id, models, api_key=config.api_key)
        return DiscoveryOutcome(
            provider_name=config.provider_name,
            models=models,
            error=result.error,
            used_fallback=result.is_error,
        )


__all__ = ["ChatOrchestrator", "ChatOutcome", "DiscoveryOutcome"]
