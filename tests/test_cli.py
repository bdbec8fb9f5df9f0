"""Tests for the top-level `chatbridge` command."""

from __future__ import annotations

import json

import httpx
import pytest
from click.testing import CliRunner
from rich.console import Console

from chatbridge import __version__
from chatbridge.cli import cli as cli_module
from chatbridge.core.transport import HttpTransport
from conftest import RecordingHandler, json_responder


@pytest.fixture
def console(monkeypatch):
    recording = Console(record=True, width=160)
    monkeypatch.setattr(cli_module, "console", recording)
    return recording


@pytest.fixture
def mock_http(monkeypatch):
    """Route every transport the CLI builds through one recording handler."""
    state = {"responder": json_responder({})}
    handler = RecordingHandler(lambda request: state["responder"](request))

    def make_transport(settings):
        return HttpTransport(httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    monkeypatch.setattr(cli_module, "_make_transport", make_transport)

    def respond_with(responder):
        state["responder"] = responder
        return handler

    return respond_with


def _run(args):
    return CliRunner().invoke(cli_module.cli, args)


def test_version_command(console):
    result = _run(["version"])
    assert result.exit_code == 0
    assert f"Chatbridge version {__version__}" in console.export_text()


def test_providers_lists_catalog(console):
    result = _run(["providers"])
    assert result.exit_code == 0
    output = console.export_text()
    for name in ("OpenAI", "Anthropic", "Google AI", "Mistral", "Groq", "Together AI", "Custom"):
        assert name in output
    assert "https://api.openai.com/v1" in output


def test_configure_persists_between_invocations(console):
    result = _run(["configure", "openai", "--api-key", "sk-live-abcdef123456", "--model", "gpt-4o"])
    assert result.exit_code == 0, result.output
    assert "Saved OpenAI configuration." in console.export_text()

    _run(["providers"])
    output = console.export_text()
    assert "sk-...3456" in output
    assert "sk-live-abcdef123456" not in output
    assert "gpt-4o" in output


def test_configure_rejects_unknown_provider():
    result = _run(["configure", "skynet", "--api-key", "x"])
    assert result.exit_code == 2
    assert "unknown provider 'skynet'" in result.output


@pytest.mark.parametrize("command", [["activate", "skynet"], ["models", "skynet", "--refresh"]])
def test_unknown_provider_is_a_usage_error(command):
    result = _run(command)
    assert result.exit_code == 2
    assert "unknown provider 'skynet'" in result.output
    assert "Custom" in result.output


def test_configure_endpoint_only_for_custom():
    result = _run(["configure", "Groq", "--endpoint", "https://example.com/v1"])
    assert result.exit_code == 2
    assert "only Custom accepts one" in result.output


def test_configure_rejects_malformed_endpoint():
    result = _run(["configure", "custom", "--endpoint", "not a url"])
    assert result.exit_code == 2
    assert "must be an http(s) URL" in result.output


def test_activate_and_config(console):
    result = _run(["activate", "Mistral"])
    assert result.exit_code == 0
    output = console.export_text()
    assert "Mistral is now the active provider." in output
    assert "No API key set" in output

    _run(["config"])
    assert "Active provider: Mistral" in console.export_text()


def test_models_refresh_records_discovered_models(console, mock_http):
    handler = mock_http(
        json_responder({"data": [{"id": "gpt-4o-mini"}, {"id": "gpt-4o"}, {"id": "whisper-1"}]})
    )
    _run(["configure", "OpenAI", "--api-key", "sk-live-abcdef123456"])

    result = _run(["models", "OpenAI", "--refresh"])

    assert result.exit_code == 0, result.output
    assert handler.call_count == 1
    assert handler.last_request.url.path == "/v1/models"
    output = console.export_text()
    assert "gpt-4o-mini" in output
    assert "whisper-1" not in output


def test_models_refresh_failure_shows_defaults(console, mock_http):
    mock_http(json_responder({"error": {"message": "Invalid key"}}, status_code=401))
    _run(["configure", "OpenAI", "--api-key", "sk-bad-0000000000"])

    result = _run(["models", "OpenAI", "--refresh"])

    assert result.exit_code == 0
    output = console.export_text()
    assert "Failed to fetch models: Invalid key" in output
    assert "gpt-3.5-turbo" in output


def test_chat_json_success(console, mock_http):
    handler = mock_http(json_responder({"choices": [{"message": {"content": "Hello **there**"}}]}))
    _run(["configure", "OpenAI", "--api-key", "sk-live-abcdef123456", "--model", "gpt-4o", "--activate"])

    result = _run(["chat", "Hi", "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output.strip().splitlines()[-1])
    assert payload == {
        "reply": "Hello **there**",
        "is_error": False,
        "error_code": None,
        "error_message": None,
    }
    body = json.loads(handler.last_request.content)
    assert body["model"] == "gpt-4o"
    assert body["messages"][-1] == {"role": "user", "content": "Hi"}


def test_chat_with_code_context(console, mock_http, tmp_path):
    handler = mock_http(json_responder({"choices": [{"message": {"content": "Looks fine."}}]}))
    source = tmp_path / "main.py"
    source.write_text("print('hi')\n", encoding="utf-8")
    _run(["configure", "Groq", "--api-key", "gsk-abcdef123456", "--model", "llama-3.1-8b-instant", "--activate"])

    result = _run(["chat", "Review this", "--code-context", str(source)])

    assert result.exit_code == 0, result.output
    assert "Looks fine." in console.export_text()
    messages = json.loads(handler.last_request.content)["messages"]
    assert any("print('hi')" in message["content"] for message in messages if message["role"] == "system")


def test_chat_error_exits_non_zero(console, mock_http):
    mock_http(json_responder({"error": {"message": "slow down"}}, status_code=429))
    _run(["configure", "OpenAI", "--api-key", "sk-live-abcdef123456", "--model", "gpt-4o", "--activate"])

    result = _run(["chat", "Hi", "--json"])

    assert result.exit_code == 1
    payload = json.loads(result.output.strip().splitlines()[-1])
    assert payload["is_error"] is True
    assert payload["error_code"] == "rate_limited"
    assert payload["reply"] is None


def test_chat_without_active_provider(console, mock_http):
    handler = mock_http(json_responder({}))

    result = _run(["chat", "Hi"])

    assert result.exit_code == 1
    assert handler.call_count == 0
    assert "Please choose an active provider" in console.export_text()


class _ScriptedSpeech:
    def __init__(self, messages):
        self.messages = list(messages)

    async def send(self, message):
        pass

    async def recv(self):
        return self.messages.pop(0)

    async def close(self):
        pass


def test_speak_writes_audio_file(console, monkeypatch, tmp_path):
    header = b"Path:audio\r\n"
    frame = len(header).to_bytes(2, "big") + header + b"ID3-audio"
    connection = _ScriptedSpeech([frame, "Path:turn.end\r\n\r\n{}"])

    async def connect(url):
        return connection

    monkeypatch.setattr("chatbridge.tts.client._default_connect", connect)
    output = tmp_path / "hello.mp3"

    result = _run(["speak", "Hello", "-o", str(output), "--voice", "en-US-GuyNeural"])

    assert result.exit_code == 0, result.output
    assert output.read_bytes() == b"ID3-audio"
    assert "Wrote 9 bytes" in console.export_text()


def test_speak_reports_network_error(console, monkeypatch, tmp_path):
    async def connect(url):
        raise OSError("no route to host")

    monkeypatch.setattr("chatbridge.tts.client._default_connect", connect)

    result = _run(["speak", "Hello", "-o", str(tmp_path / "out.mp3")])

    assert result.exit_code == 1
    assert "Network Error: no route to host" in console.export_text()
