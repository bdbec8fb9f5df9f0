"""Per-provider configuration with a single active selection.

Configs are created lazily, one per provider, seeded from the catalog. The
active provider is held once as an id rather than as a flag on every config,
so two configs can never be active at the same time.

The collection is persisted as an ordered list of camelCase records under a
fixed key in a ``KeyValueStore``::

    [{"id": ..., "providerName": "OpenAI", "apiKey": ..., "selectedModel": ...,
      "customEndpoint": ..., "isActive": true, "availableModels": [...]}]
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chatbridge.core.config import PROVIDER_CONFIGS_KEY
from chatbridge.core.provider_catalog import (
    Provider,
    ProviderKind,
    get_provider,
    normalize_base_url,
    resolve_provider_kind,
)
from chatbridge.utils.log import get_logger

logger = get_logger()

EnvKeyLookup = Callable[[ProviderKind], Optional[str]]


class ProviderConfig(BaseModel):
    """A provider's user-supplied settings plus its cached model list."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    kind: ProviderKind
    api_key: str = ""
    selected_model: str = ""
    custom_endpoint: str = ""
    # Discovery order; duplicates are kept.
    available_models: List[str] = Field(default_factory=list)

    @property
    def provider(self) -> Provider:
        return get_provider(self.kind)

    @property
    def provider_name(self) -> str:
        return self.kind.value

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @property
    def base_url(self) -> str:
        """API root for requests; the custom endpoint for Custom, else the catalog URL."""
        if self.kind == ProviderKind.CUSTOM:
            return normalize_base_url(self.custom_endpoint)
        return self.provider.base_url

    def set_api_key(self, api_key: str) -> None:
        """Replace the key; discovered models belong to the old key and are dropped."""
        if api_key == self.api_key:
            return
        self.api_key = api_key
        self.available_models = []
        self.selected_model = ""


class ProviderConfigRecord(BaseModel):
    """Persisted form of one config."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    provider_name: str = Field(alias="providerName")
    api_key: str = Field(default="", alias="apiKey")
    selected_model: str = Field(default="", alias="selectedModel")
    custom_endpoint: str = Field(default="", alias="customEndpoint")
    is_active: bool = Field(default=False, alias="isActive")
    available_models: Optional[List[str]] = Field(default=None, alias="availableModels")


class KeyValueStore(Protocol):
    """Opaque string blob storage."""

    def get(self, key: str) -> Optional[str]:
        ...

    def put(self, key: str, value: str) -> None:
        ...


class InMemoryKeyValueStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def put(self, key: str, value: str) -> None:
        self._values[key] = value


class JsonFileKeyValueStore:
    """Keeps every key in one JSON object on disk."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
            logger.warning(
                "[store] Failed to read key-value file: %s: %s",
                type(exc).__name__,
                exc,
                extra={"path": str(self.path)},
            )
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): value for key, value in data.items() if isinstance(value, str)}

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def put(self, key: str, value: str) -> None:
        values = self._read_all()
        values[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(values, indent=2), encoding="utf-8")


def _seed_config(kind: ProviderKind, api_key: Optional[str]) -> ProviderConfig:
    provider = get_provider(kind)
    return ProviderConfig(
        kind=kind,
        api_key=api_key or "",
        available_models=list(provider.default_models),
    )


class ProviderConfigStore:
    """Ordered, lazily-populated collection of ProviderConfig.

    Every accessor hands out copies, so edits only take effect through
    ``update``.
    """

    def __init__(
        self,
        backend: Optional[KeyValueStore] = None,
        *,
        env_key_lookup: Optional[EnvKeyLookup] = None,
    ) -> None:
        self._backend = backend
        self._env_key_lookup = env_key_lookup
        self._configs: Dict[str, ProviderConfig] = {}
        self._active_id: Optional[str] = None
        self._load()

    # Persistence

    def _load(self) -> None:
        if self._backend is None:
            return
        raw = self._backend.get(PROVIDER_CONFIGS_KEY)
        if not raw:
            return
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning(
                "[store] Ignoring unreadable provider configs: %s",
                exc,
                extra={"key": PROVIDER_CONFIGS_KEY},
            )
            return
        if not isinstance(entries, list):
            logger.warning("[store] Provider configs are not a list; ignoring")
            return

        for entry in entries:
            try:
                record = ProviderConfigRecord.model_validate(entry)
            except ValidationError as exc:
                logger.warning(
                    "[store] Skipping invalid provider config record",
                    extra={"error_count": exc.error_count()},
                )
                continue
            kind = resolve_provider_kind(record.provider_name)
            if kind is None:
                logger.warning(
                    "[store] Skipping config for unknown provider",
                    extra={"provider": record.provider_name},
                )
                continue
            if self._find_by_kind(kind) is not None:
                continue
            available = record.available_models
            if available is None:
                available = list(get_provider(kind).default_models)
            self._configs[record.id] = ProviderConfig(
                id=record.id,
                kind=kind,
                api_key=record.api_key,
                selected_model=record.selected_model,
                custom_endpoint=record.custom_endpoint,
                available_models=available,
            )
            if record.is_active and self._active_id is None:
                self._active_id = record.id

        logger.debug(
            "[store] Loaded provider configs",
            extra={"count": len(self._configs), "has_active": self._active_id is not None},
        )

    def _records(self) -> List[ProviderConfigRecord]:
        return [
            ProviderConfigRecord(
                id=config.id,
                provider_name=config.provider_name,
                api_key=config.api_key,
                selected_model=config.selected_model,
                custom_endpoint=config.custom_endpoint,
                is_active=config.id == self._active_id,
                available_models=list(config.available_models),
            )
            for config in self._configs.values()
        ]

    def _persist(self) -> None:
        if self._backend is None:
            return
        payload = json.dumps([record.model_dump(by_alias=True) for record in self._records()])
        self._backend.put(PROVIDER_CONFIGS_KEY, payload)

    def _find_by_kind(self, kind: ProviderKind) -> Optional[ProviderConfig]:
        for config in self._configs.values():
            if config.kind == kind:
                return config
        return None

    # Lookup

    def get(self, provider_name: ProviderKind | str) -> ProviderConfig:
        """Return the config for a provider, creating it from catalog defaults.

        Raises ValueError when the name matches no catalog provider.
        """
        kind = ProviderKind(provider_name)
        existing = self._find_by_kind(kind)
        if existing is None:
            api_key = self._env_key_lookup(kind) if self._env_key_lookup else None
            existing = _seed_config(kind, api_key)
            self._configs[existing.id] = existing
            logger.debug(
                "[store] Created provider config",
                extra={"provider": kind.value, "has_api_key": bool(api_key)},
            )
        return existing.model_copy(deep=True)

    def find(self, config_id: str) -> Optional[ProviderConfig]:
        config = self._configs.get(config_id)
        return config.model_copy(deep=True) if config else None

    def configs(self) -> List[ProviderConfig]:
        return [config.model_copy(deep=True) for config in self._configs.values()]

    # Mutation

    def update(self, config: ProviderConfig) -> ProviderConfig:
        """Upsert by id and persist.

        If the stored key differs from the incoming one, the model list and
        selection are cleared since they were discovered with the old key.
        """
        stored = config.model_copy(deep=True)
        previous = self._configs.get(config.id)
        if previous is None:
            duplicate = self._find_by_kind(config.kind)
            if duplicate is not None:
                # One config per provider; the newcomer replaces the old entry.
                del self._configs[duplicate.id]
                if self._active_id == duplicate.id:
                    self._active_id = stored.id
        elif previous.api_key != stored.api_key:
            stored.available_models = []
            stored.selected_model = ""
        self._configs[stored.id] = stored
        self._persist()
        logger.debug(
            "[store] Updated provider config",
            extra={
                "provider": stored.provider_name,
                "has_api_key": stored.has_api_key,
                "model_count": len(stored.available_models),
            },
        )
        return stored.model_copy(deep=True)

    def set_active(self, config_id: str) -> bool:
        """Make ``config_id`` the only active config; returns False if it is unknown."""
        if config_id not in self._configs:
            logger.warning("[store] Cannot activate unknown config", extra={"config_id": config_id})
            return False
        self._active_id = config_id
        self._persist()
        return True

    def clear_active(self) -> None:
        self._active_id = None
        self._persist()

    def is_active(self, config_id: str) -> bool:
        return self._active_id is not None and self._active_id == config_id

    def active_config(self) -> Optional[ProviderConfig]:
        if self._active_id is None:
            return None
        return self.find(self._active_id)

    def record_models(
        self, config_id: str, models: List[str], *, api_key: Optional[str] = None
    ) -> Optional[ProviderConfig]:
        """Store a discovery result.

        ``api_key`` is the credential the models were discovered with. When the
        stored key has changed since, the result is dropped. Returns None when
        nothing was written.
        """
        config = self._configs.get(config_id)
        if config is None:
            return None
        if api_key is not None and config.api_key != api_key:
            logger.debug(
                "[store] Dropped models discovered with a replaced key",
                extra={"provider": config.provider_name, "model_count": len(models)},
            )
            return None
        config.available_models = list(models)
        self._persist()
        return config.model_copy(deep=True)

    def reset(self, provider_name: ProviderKind | str) -> ProviderConfig:
        """Restore catalog defaults for a provider, keeping its id."""
        kind = ProviderKind(provider_name)
        existing = self._find_by_kind(kind)
        fresh = _seed_config(kind, None)
        if existing is not None:
            fresh.id = existing.id
        self._configs[fresh.id] = fresh
        self._persist()
        return fresh.model_copy(deep=True)


__all__ = [
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "ProviderConfig",
    "ProviderConfigRecord",
    "ProviderConfigStore",
]
