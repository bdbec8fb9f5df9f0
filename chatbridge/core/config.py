"""Configuration management for Chatbridge.

Runtime settings live in ``~/.chatbridge/settings.json`` (or under
``$CHATBRIDGE_CONFIG_DIR``). Credentials may also be supplied through the
environment, using the variable names each provider's own tooling reads.
"""

import json
import os
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from chatbridge.core.provider_catalog import ProviderKind
from chatbridge.utils.log import get_logger


logger = get_logger()

# Protocol constants; these are fixed by the providers, not user preferences.
MAX_OUTPUT_TOKENS = 4096
ANTHROPIC_VERSION = "2023-06-01"
PROVIDER_CONFIGS_KEY = "apiConfigurations"

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
DEFAULT_TTS_ENDPOINT = (
    "wss://speech.platform.bing.com/consumer/speech/synthesize/readaloud/edge/v1"
    "?TrustedClientToken=6A5AA1D4EAFF4E9FB37E23D68491D6F4"
)
DEFAULT_TTS_VOICE = "en-US-AndrewMultilingualNeural"


def api_key_env_candidates(kind: ProviderKind) -> List[str]:
    """Environment variables to check for an API key, in priority order."""
    if kind == ProviderKind.OPENAI:
        return ["OPENAI_API_KEY"]
    if kind == ProviderKind.ANTHROPIC:
        return ["ANTHROPIC_API_KEY"]
    if kind == ProviderKind.GOOGLE_AI:
        return ["GEMINI_API_KEY", "GOOGLE_API_KEY"]
    if kind == ProviderKind.MISTRAL:
        return ["MISTRAL_API_KEY"]
    if kind == ProviderKind.GROQ:
        return ["GROQ_API_KEY"]
    if kind == ProviderKind.TOGETHER_AI:
        return ["TOGETHER_API_KEY", "TOGETHER_AI_API_KEY"]
    return ["CUSTOM_API_KEY", "OPENAI_COMPATIBLE_API_KEY"]


def default_config_dir() -> Path:
    override = os.getenv("CHATBRIDGE_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".chatbridge"


class ChatbridgeSettings(BaseModel):
    """User preferences stored in settings.json."""

    # Seconds; None defers to the HTTP client's own default.
    request_timeout: Optional[float] = 60.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    # Validate Anthropic keys with a 1-token completion when /models is unavailable.
    anthropic_discovery_fallback: bool = True
    seed_keys_from_env: bool = True

    tts_endpoint: str = DEFAULT_TTS_ENDPOINT
    tts_voice: str = DEFAULT_TTS_VOICE
    tts_chunk_threshold: int = Field(default=64 * 1024, gt=0)


class ConfigManager:
    """Loads and saves settings and resolves credentials."""

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        self.config_dir = config_dir or default_config_dir()
        self._settings: Optional[ChatbridgeSettings] = None

    @property
    def settings_path(self) -> Path:
        return self.config_dir / "settings.json"

    @property
    def store_path(self) -> Path:
        return self.config_dir / "store.json"

    @property
    def log_dir(self) -> Path:
        return self.config_dir / "logs"

    def get_settings(self) -> ChatbridgeSettings:
        """Load and return settings, falling back to defaults on any read error."""
        if self._settings is None:
            if self.settings_path.exists():
                try:
                    data = json.loads(self.settings_path.read_text(encoding="utf-8"))
                    self._settings = ChatbridgeSettings(**data)
                    logger.debug(
                        "[config] Loaded settings",
                        extra={"path": str(self.settings_path)},
                    )
                except (
                    json.JSONDecodeError,
                    OSError,
                    UnicodeDecodeError,
                    ValueError,
                    TypeError,
                ) as e:
                    logger.warning(
                        "Error loading settings: %s: %s",
                        type(e).__name__,
                        e,
                        extra={"error": str(e), "path": str(self.settings_path)},
                    )
                    self._settings = ChatbridgeSettings()
            else:
                self._settings = ChatbridgeSettings()
                logger.debug(
                    "[config] Settings not found; using defaults",
                    extra={"path": str(self.settings_path)},
                )
        return self._settings

    def save_settings(self, settings: ChatbridgeSettings) -> None:
        """Persist settings."""
        self._settings = settings
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.settings_path.write_text(settings.model_dump_json(indent=2), encoding="utf-8")
        logger.debug("[config] Saved settings", extra={"path": str(self.settings_path)})

    def get_env_api_key(self, kind: ProviderKind) -> Optional[str]:
        """Return the first non-empty API key found in the environment."""
        for env_var in api_key_env_candidates(kind):
            value = os.environ.get(env_var, "").strip()
            if value:
                return value
        return None


# Global instance
config_manager = ConfigManager()


def get_settings() -> ChatbridgeSettings:
    """Get runtime settings."""
    return config_manager.get_settings()


def save_settings(settings: ChatbridgeSettings) -> None:
    """Save runtime settings."""
    config_manager.save_settings(settings)
