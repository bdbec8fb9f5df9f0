"""Main CLI entry point for Chatbridge.

Provider settings persist in ``<config_dir>/store.json`` between invocations;
runtime preferences come from ``<config_dir>/settings.json``.
"""

import asyncio
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.table import Table

from chatbridge import __version__
from chatbridge.core.chat import ChatClient, ChatRequestBuilder
from chatbridge.core.config import ChatbridgeSettings, ConfigManager
from chatbridge.core.discovery import ModelDiscoveryClient
from chatbridge.core.messages import Attachment
from chatbridge.core.orchestrator import ChatOrchestrator
from chatbridge.core.provider_catalog import (
    ProviderKind,
    is_valid_base_url,
    normalize_base_url,
    presets_for_all_providers,
    resolve_provider_kind,
)
from chatbridge.core.provider_store import JsonFileKeyValueStore, ProviderConfigStore
from chatbridge.core.transport import HttpTransport
from chatbridge.tts.client import StreamingTTSClient
from chatbridge.tts.framing import VOICES
from chatbridge.tts.player import BufferedAudioPlayer
from chatbridge.utils.attachments import attachment_from_path
from chatbridge.utils.log import enable_file_logging, get_logger, mask_secret

console = Console()
logger = get_logger()

T = TypeVar("T")


@dataclass
class CliContext:
    manager: ConfigManager
    settings: ChatbridgeSettings
    store: ProviderConfigStore


def _make_transport(settings: ChatbridgeSettings) -> HttpTransport:
    return HttpTransport(timeout=settings.request_timeout)


def _build_orchestrator(state: CliContext, code_context: Optional[str] = None) -> ChatOrchestrator:
    settings = state.settings
    return ChatOrchestrator(
        state.store,
        chat_client=ChatClient(
            _make_transport(settings),
            ChatRequestBuilder(settings.system_prompt, code_context),
        ),
        discovery_client=ModelDiscoveryClient(
            _make_transport(settings),
            anthropic_validation_fallback=settings.anthropic_discovery_fallback,
        ),
    )


def _run_with_orchestrator(
    state: CliContext,
    action: Callable[[ChatOrchestrator], Awaitable[T]],
    code_context: Optional[str] = None,
) -> T:
    async def runner() -> T:
        orchestrator = _build_orchestrator(state, code_context)
        try:
            return await action(orchestrator)
        finally:
            await orchestrator.aclose()

    return asyncio.run(runner())


def _provider_kind(ctx: click.Context, param: click.Parameter, value: str) -> ProviderKind:
    """Resolve a provider argument to a catalog kind.

    ``ProviderConfigStore.get`` raises ValueError for names outside the
    catalog, so unknown names are rejected here as a usage error.
    """
    kind = resolve_provider_kind(value)
    if kind is None:
        names = ", ".join(provider.name for provider in presets_for_all_providers())
        raise click.BadParameter(f"unknown provider '{value}' (known: {names})")
    return kind


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", is_flag=True, help="Write a debug log under the config directory")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Chatbridge - chat with many AI providers from one place."""
    manager = ConfigManager()
    settings = manager.get_settings()
    if verbose:
        log_file = enable_file_logging(manager.log_dir)
        logger.debug("[cli] Debug logging enabled", extra={"log_file": str(log_file)})
    env_lookup = manager.get_env_api_key if settings.seed_keys_from_env else None
    store = ProviderConfigStore(
        JsonFileKeyValueStore(manager.store_path),
        env_key_lookup=env_lookup,
    )
    ctx.obj = CliContext(manager=manager, settings=settings, store=store)


@cli.command(name="providers")
@click.pass_obj
def providers_cmd(state: CliContext) -> None:
    """List known providers and their configuration."""
    table = Table(title="Providers")
    table.add_column("", width=1)
    table.add_column("Provider", style="bold")
    table.add_column("Base URL")
    table.add_column("API Key")
    table.add_column("Model")

    for provider in presets_for_all_providers():
        config = state.store.get(provider.kind)
        table.add_row(
            "*" if state.store.is_active(config.id) else "",
            provider.name,
            escape(config.base_url or "(not set)"),
            mask_secret(config.api_key),
            escape(config.selected_model or "-"),
        )
    console.print(table)


@cli.command(name="configure")
@click.argument("provider", callback=_provider_kind)
@click.option("--api-key", type=str, help="API key (pass an empty string to clear)")
@click.option("--model", type=str, help="Model to use for chat")
@click.option("--endpoint", type=str, help="API root for the Custom provider")
@click.option("--activate", is_flag=True, help="Make this the active provider")
@click.pass_obj
def configure_cmd(
    state: CliContext,
    provider: ProviderKind,
    api_key: Optional[str],
    model: Optional[str],
    endpoint: Optional[str],
    activate: bool,
) -> None:
    """Set the API key, model or endpoint for PROVIDER."""
    store = state.store
    config = store.get(provider)

    if endpoint is not None:
        if provider != ProviderKind.CUSTOM:
            raise click.UsageError(f"{provider.value} has a fixed endpoint; only Custom accepts one")
        if not is_valid_base_url(normalize_base_url(endpoint)):
            raise click.BadParameter("must be an http(s) URL", param_hint="--endpoint")
        config.custom_endpoint = endpoint.strip()

    if api_key is not None:
        # Saved separately so the store clears models discovered with the old key.
        config.api_key = api_key.strip()
        config = store.update(config)

    if model is not None:
        config.selected_model = model.strip()
    config = store.update(config)

    if activate:
        store.set_active(config.id)

    logger.info(
        "[cli] Updated provider configuration",
        extra={"provider": provider.value, "has_api_key": config.has_api_key, "activate": activate},
    )
    console.print(f"[green]Saved {provider.value} configuration.[/green]")
    if api_key and not config.available_models:
        console.print(f"Run `chatbridge models {provider.value!r} --refresh` to load models.")
    if activate:
        console.print(f"{provider.value} is now the active provider.")


@cli.command(name="activate")
@click.argument("provider", callback=_provider_kind)
@click.pass_obj
def activate_cmd(state: CliContext, provider: ProviderKind) -> None:
    """Make PROVIDER the one used by `chat`."""
    config = state.store.get(provider)
    state.store.set_active(config.id)
    console.print(f"{provider.value} is now the active provider.")
    if not config.api_key:
        console.print(
            f"[yellow]No API key set; run "
            f"`chatbridge configure {provider.value!r} --api-key ...`[/yellow]"
        )


@cli.command(name="models")
@click.argument("provider", callback=_provider_kind)
@click.option("--refresh", is_flag=True, help="Query the provider for its current model list")
@click.pass_obj
def models_cmd(state: CliContext, provider: ProviderKind, refresh: bool) -> None:
    """Show the models available for PROVIDER."""
    if refresh:
        outcome = _run_with_orchestrator(state, lambda orch: orch.refresh_models(provider))
        if outcome.error is not None:
            console.print(
                f"[yellow]{escape(outcome.error.user_message)} Showing default models.[/yellow]"
            )
        elif not state.store.get(provider).api_key:
            console.print("[yellow]No API key set; showing stored models.[/yellow]")

    config = state.store.get(provider)
    if not config.available_models:
        console.print("[dim]No models known. Enter a model name with `configure --model`.[/dim]")
        return
    for model_id in config.available_models:
        marker = "*" if model_id == config.selected_model else " "
        console.print(f"{marker} {escape(model_id)}")


def _load_attachments(paths: Tuple[Path, ...]) -> List[Attachment]:
    try:
        return [attachment_from_path(path) for path in paths]
    except (OSError, ValueError) as exc:
        raise click.BadParameter(str(exc), param_hint="--attach") from exc


@cli.command(name="chat")
@click.argument("message")
@click.option(
    "--attach",
    "attach_paths",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File to attach (repeatable)",
)
@click.option(
    "--code-context",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Source file to include as code context",
)
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_obj
def chat_cmd(
    state: CliContext,
    message: str,
    attach_paths: Tuple[Path, ...],
    code_context: Optional[Path],
    as_json: bool,
) -> None:
    """Send MESSAGE to the active provider."""
    attachments = _load_attachments(attach_paths)
    context_text = (
        code_context.read_text(encoding="utf-8", errors="replace") if code_context else None
    )
    outcome = _run_with_orchestrator(
        state,
        lambda orch: orch.send(message, attachments),
        code_context=context_text,
    )

    if as_json:
        click.echo(
            json.dumps(
                {
                    "reply": None if outcome.is_error else outcome.turn.content,
                    "is_error": outcome.is_error,
                    "error_code": outcome.error_code,
                    "error_message": outcome.turn.content if outcome.is_error else None,
                }
            )
        )
    elif outcome.is_error:
        console.print(f"[red]{escape(outcome.turn.content)}[/red]")
    else:
        console.print(Markdown(outcome.turn.content))

    if outcome.is_error:
        sys.exit(1)


@cli.command(name="speak")
@click.argument("text")
@click.option(
    "--output",
    "-o",
    required=True,
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    help="Where to write the mp3 audio",
)
@click.option(
    "--voice",
    type=click.Choice([voice_id for _, voice_id in VOICES]),
    help="Voice to synthesize with",
)
@click.pass_obj
def speak_cmd(state: CliContext, text: str, output: Path, voice: Optional[str]) -> None:
    """Synthesize TEXT to an mp3 file."""
    settings = state.settings
    with output.open("wb") as sink:
        player = BufferedAudioPlayer(sink)
        client = StreamingTTSClient(
            player,
            endpoint=settings.tts_endpoint,
            voice=voice or settings.tts_voice,
            chunk_threshold=settings.tts_chunk_threshold,
        )
        asyncio.run(client.play(text))

    if client.error_message:
        console.print(f"[red]{escape(client.error_message)}[/red]")
        sys.exit(1)
    console.print(f"Wrote {player.total_bytes} bytes to {escape(str(output))}")


@cli.command(name="config")
@click.pass_obj
def config_cmd(state: CliContext) -> None:
    """Print settings and the active provider."""
    settings = state.settings
    active = state.store.active_config()

    console.print("\n[bold]Chatbridge Configuration[/bold]\n")
    console.print(f"Version: {__version__}")
    console.print(f"Config directory: {escape(str(state.manager.config_dir))}")
    console.print(f"Active provider: {active.provider_name if active else 'None'}")
    console.print(f"Request timeout: {settings.request_timeout}")
    console.print(f"System prompt: {escape(settings.system_prompt)}")
    console.print(f"Anthropic discovery fallback: {settings.anthropic_discovery_fallback}")
    console.print(f"Seed keys from environment: {settings.seed_keys_from_env}")
    console.print(f"TTS voice: {settings.tts_voice}\n")


@cli.command(name="version")
def version_cmd() -> None:
    """Print the installed version."""
    console.print(f"Chatbridge version {__version__}")


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except SystemExit:
        raise
    except (
        RuntimeError,
        ValueError,
        TypeError,
        OSError,
        click.ClickException,
    ) as e:
        console.print(f"[red]Fatal error: {escape(str(e))}[/red]")
        logger.warning(
            "[cli] Fatal error in main CLI entrypoint: %s: %s",
            type(e).__name__,
            e,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
