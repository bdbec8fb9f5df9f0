"""Tests for ChatOrchestrator sequencing, busy guard and model refresh."""

import asyncio
import json

import httpx
import pytest

from conftest import json_responder

from chatbridge.core.chat import ChatClient
from chatbridge.core.discovery import ModelDiscoveryClient
from chatbridge.core.messages import ChatRole, ChatSession
from chatbridge.core.orchestrator import ChatOrchestrator
from chatbridge.core.provider_catalog import get_provider
from chatbridge.core.provider_store import ProviderConfigStore

OPENAI_REPLY = {"choices": [{"message": {"content": "Paris"}}]}


def _orchestrator(store, transport):
    return ChatOrchestrator(
        store,
        chat_client=ChatClient(transport),
        discovery_client=ModelDiscoveryClient(transport),
    )


def _configure(store, provider, api_key="sk-test", model=""):
    config = store.get(provider)
    config.api_key = api_key
    config = store.update(config)
    config.selected_model = model
    return store.update(config)


@pytest.mark.asyncio
async def test_send_without_active_provider(make_transport):
    transport, handler = make_transport(json_responder(OPENAI_REPLY))
    outcome = await _orchestrator(ProviderConfigStore(), transport).send("hi")

    assert outcome.error_code == "no_active_provider"
    assert outcome.turn.is_error
    assert outcome.turn.role == ChatRole.ASSISTANT
    assert handler.call_count == 0


@pytest.mark.asyncio
async def test_send_uses_active_provider(make_transport):
    transport, handler = make_transport(json_responder(OPENAI_REPLY))
    store = ProviderConfigStore()
    _configure(store, "Anthropic", model="claude-3-5-sonnet-20241022")
    openai = _configure(store, "OpenAI", model="gpt-4o")
    store.set_active(openai.id)

    outcome = await _orchestrator(store, transport).send("Capital of France?")

    assert not outcome.is_error
    assert outcome.turn.content == "Paris"
    assert outcome.turn.role == ChatRole.ASSISTANT
    assert not outcome.turn.is_error
    assert handler.last_request.url.host == "api.openai.com"


@pytest.mark.asyncio
async def test_failed_send_returns_error_turn_and_structured_error(make_transport):
    transport, handler = make_transport(json_responder({"error": {"message": "slow down"}}, status_code=429))
    store = ProviderConfigStore()
    store.set_active(_configure(store, "Groq", model="llama-3.1-8b-instant").id)

    outcome = await _orchestrator(store, transport).send("hi")

    assert outcome.error_code == "rate_limited"
    assert outcome.turn.is_error
    assert outcome.turn.error_code == "rate_limited"
    assert outcome.turn.content == outcome.error.user_message
    assert handler.call_count == 1


@pytest.mark.asyncio
async def test_busy_guard_rejects_concurrent_send(make_transport):
    release = asyncio.Event()

    async def respond(request: httpx.Request) -> httpx.Response:
        await release.wait()
        return httpx.Response(200, json=OPENAI_REPLY)

    transport, handler = make_transport(respond)
    store = ProviderConfigStore()
    store.set_active(_configure(store, "OpenAI", model="gpt-4o").id)
    orchestrator = _orchestrator(store, transport)

    first = asyncio.create_task(orchestrator.send("one"))
    while handler.call_count == 0:
        await asyncio.sleep(0)
    assert orchestrator.is_busy

    second = await orchestrator.send("two")
    assert second.error_code == "busy"

    release.set()
    assert (await first).turn.content == "Paris"
    assert handler.call_count == 1
    assert not orchestrator.is_busy


@pytest.mark.asyncio
async def test_send_in_session_appends_both_turns(make_transport):
    transport, handler = make_transport(json_responder(OPENAI_REPLY))
    store = ProviderConfigStore()
    store.set_active(_configure(store, "OpenAI", model="gpt-4o").id)
    orchestrator = _orchestrator(store, transport)
    session = ChatSession()

    await orchestrator.send_in_session(session, "Capital of France?\nAnswer briefly.")
    await orchestrator.send_in_session(session, "And Spain?")

    assert session.title == "Capital of France?"
    assert [turn.role for turn in session.turns] == [
        ChatRole.USER,
        ChatRole.ASSISTANT,
        ChatRole.USER,
        ChatRole.ASSISTANT,
    ]
    messages = json.loads(handler.last_request.content)["messages"]
    assert [message["role"] for message in messages] == ["system", "user", "assistant", "user"]
    assert messages[-1]["content"] == "And Spain?"


@pytest.mark.asyncio
async def test_error_turns_in_session_are_not_sent(make_transport):
    responses = iter(
        [
            httpx.Response(500, json={}),
            httpx.Response(200, json=OPENAI_REPLY),
        ]
    )
    transport, handler = make_transport(lambda request: next(responses))
    store = ProviderConfigStore()
    store.set_active(_configure(store, "OpenAI", model="gpt-4o").id)
    orchestrator = _orchestrator(store, transport)
    session = ChatSession()

    failed = await orchestrator.send_in_session(session, "first")
    assert failed.is_error
    await orchestrator.send_in_session(session, "second")

    messages = json.loads(handler.last_request.content)["messages"]
    assert [message["content"] for message in messages[1:]] == ["first", "second"]


@pytest.mark.asyncio
async def test_refresh_models_records_discovered_list(make_transport):
    transport, _ = make_transport(json_responder({"data": [{"id": "gpt-4o"}, {"id": "gpt-4-turbo"}]}))
    store = ProviderConfigStore()
    _configure(store, "OpenAI")

    outcome = await _orchestrator(store, transport).refresh_models("openai")

    assert outcome.models == ["gpt-4o", "gpt-4-turbo"]
    assert not outcome.used_fallback
    assert store.get("OpenAI").available_models == ["gpt-4o", "gpt-4-turbo"]


@pytest.mark.asyncio
async def test_refresh_models_falls_back_on_failure(make_transport):
    transport, _ = make_transport(json_responder({}, status_code=500))
    store = ProviderConfigStore()
    _configure(store, "Anthropic")

    outcome = await _orchestrator(store, transport).refresh_models("Anthropic")

    defaults = list(get_provider("Anthropic").default_models)
    assert outcome.used_fallback
    assert outcome.error.error_code == "discovery_failed"
    assert outcome.models == defaults
    assert store.get("Anthropic").available_models == defaults


@pytest.mark.asyncio
async def test_refresh_models_without_key_keeps_stored_list(make_transport):
    transport, handler = make_transport(json_responder({"data": []}))
    store = ProviderConfigStore()

    outcome = await _orchestrator(store, transport).refresh_models("Mistral")

    assert outcome.models == []
    assert outcome.error is None
    assert handler.call_count == 0
    assert store.get("Mistral").available_models == list(get_provider("Mistral").default_models)


@pytest.mark.asyncio
async def test_refresh_models_discards_result_after_key_change(make_transport):
    received = asyncio.Event()
    release = asyncio.Event()

    async def respond(request: httpx.Request) -> httpx.Response:
        received.set()
        await release.wait()
        return httpx.Response(200, json={"data": [{"id": "old-key-only-model"}]})

    transport, _ = make_transport(respond)
    store = ProviderConfigStore()
    _configure(store, "Mistral", api_key="old-key")

    task = asyncio.create_task(_orchestrator(store, transport).refresh_models("Mistral"))
    await received.wait()
    _configure(store, "Mistral", api_key="new-key")
    release.set()
    outcome = await task

    assert outcome.models == ["old-key-only-model"]
    config = store.get("Mistral")
    assert config.api_key == "new-key"
    assert config.available_models == []


@pytest.mark.asyncio
async def test_refresh_all_models_only_touches_configured_providers(make_transport):
    def respond(request: httpx.Request) -> httpx.Response:
        if request.url.host == "generativelanguage.googleapis.com":
            return httpx.Response(200, json={"models": [{"name": "models/gemini-1.5-pro"}]})
        return httpx.Response(200, json={"data": [{"id": "gpt-4o"}]})

    transport, handler = make_transport(respond)
    store = ProviderConfigStore()
    _configure(store, "OpenAI")
    _configure(store, "Google AI")

    outcomes = await _orchestrator(store, transport).refresh_all_models()

    assert set(outcomes) == {"OpenAI", "Google AI"}
    assert outcomes["Google AI"].models == ["gemini-1.5-pro"]
    assert handler.call_count == 2


def test_activate_switches_active_provider():
    store = ProviderConfigStore()
    orchestrator = ChatOrchestrator(store)
    first = orchestrator.activate("OpenAI")
    second = orchestrator.activate("gemini")

    assert store.active_config().id == second.id
    assert not store.is_active(first.id)
