"""Runtime configuration for the Chatzy conversation core.

Two collaborators need settings: the completion endpoint (a Gemini style
``generateContent`` API) and the message store backend.  Both can be
populated from environment variables, from a YAML file or updated at
runtime through :func:`configure`.  The active configuration lives behind
a lock and :func:`get_config` always hands out a copy, so callers can
never mutate the shared state by accident.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import copy
import os
import threading
from typing import Any, Mapping, Optional

import yaml

from .logging_utils import get_logger


logger = get_logger(__name__)

DEFAULT_COMPLETION_MODEL = "gemini-1.5-flash"
DEFAULT_COMPLETION_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
STORAGE_BACKENDS = ("sql", "firestore")


def _parse_float(value: Any, default: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _parse_int(value: Any, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


def _parse_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return default


def _clean(value: Any) -> Optional[str]:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def default_data_dir(env: Mapping[str, str] | None = None) -> Path:
    """Return the directory holding the local SQLite database."""

    env_mapping = os.environ if env is None else env
    raw = env_mapping.get("CHATZY_DATA_DIR")
    return Path(raw).expanduser() if raw else Path.home() / ".chatzy"


@dataclass(slots=True)
class CompletionConfig:
    """Settings for the text completion endpoint."""

    model: str = DEFAULT_COMPLETION_MODEL
    base_url: str = DEFAULT_COMPLETION_BASE_URL
    api_key: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 0

    @classmethod
    def from_env(
        cls,
        prefix: str = "CHATZY_COMPLETION",
        env: Mapping[str, str] | None = None,
    ) -> "CompletionConfig":
        """Create an instance from ``<PREFIX>_MODEL`` style variables.

        Parameters
        ----------
        prefix:
            Prefix to use when looking up the environment variables.
        env:
            Optional mapping used for lookups.  Defaults to ``os.environ``.

        ``GEMINI_API_KEY`` is honoured when ``<PREFIX>_API_KEY`` is unset.
        """

        env_mapping = os.environ if env is None else env
        api_key = _clean(env_mapping.get(f"{prefix}_API_KEY")) or _clean(
            env_mapping.get("GEMINI_API_KEY")
        )
        return cls(
            model=_clean(env_mapping.get(f"{prefix}_MODEL")) or DEFAULT_COMPLETION_MODEL,
            base_url=_clean(env_mapping.get(f"{prefix}_BASE_URL")) or DEFAULT_COMPLETION_BASE_URL,
            api_key=api_key,
            timeout=_parse_float(env_mapping.get(f"{prefix}_TIMEOUT"), 30.0),
            max_retries=_parse_int(env_mapping.get(f"{prefix}_MAX_RETRIES"), 0),
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/models/{self.model}:generateContent"

    def describe(self) -> dict:
        """Return a serialisable view without leaking the API key."""

        return {
            "model": self.model,
            "base_url": self.base_url,
            "api_key_present": bool(self.api_key),
            "timeout": self.timeout,
            "max_retries": self.max_retries,
        }


@dataclass(slots=True)
class MessageStoreConfig:
    """Settings for the remote message collection."""

    backend: str = "sql"
    url: Optional[str] = None
    echo: bool = False
    pool_size: Optional[int] = None
    collection: str = "messages"
    project: Optional[str] = None
    database: Optional[str] = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "MessageStoreConfig":
        env_mapping = os.environ if env is None else env
        backend = (_clean(env_mapping.get("CHATZY_STORAGE_BACKEND")) or "sql").lower()
        if backend not in STORAGE_BACKENDS:
            logger.warning("Ignoring unknown storage backend from environment: %s", backend)
            backend = "sql"
        pool_size = _parse_int(env_mapping.get("CHATZY_STORAGE_POOL_SIZE"), 0) or None
        return cls(
            backend=backend,
            url=_clean(env_mapping.get("CHATZY_STORAGE_URL")),
            echo=_parse_bool(env_mapping.get("CHATZY_STORAGE_ECHO"), False),
            pool_size=pool_size,
            collection=_clean(env_mapping.get("CHATZY_STORAGE_COLLECTION")) or "messages",
            project=_clean(env_mapping.get("CHATZY_FIRESTORE_PROJECT")),
            database=_clean(env_mapping.get("CHATZY_FIRESTORE_DATABASE")),
        )

    def copy(self) -> "MessageStoreConfig":
        return MessageStoreConfig(
            backend=self.backend,
            url=self.url,
            echo=self.echo,
            pool_size=self.pool_size,
            collection=self.collection,
            project=self.project,
            database=self.database,
        )

    def effective_url(self) -> str:
        """Return the SQLAlchemy URL, defaulting to a SQLite file."""

        if self.url:
            return self.url
        return f"sqlite:///{default_data_dir() / 'chatzy.db'}"

    def describe(self) -> dict:
        description: dict = {"backend": self.backend}
        if self.backend == "sql":
            description["url"] = self.effective_url()
        else:
            description["collection"] = self.collection
            if self.project:
                description["project"] = self.project
            if self.database:
                description["database"] = self.database
        return description


@dataclass(slots=True)
class Config:
    """Top-level runtime configuration shared by the whole application."""

    completion: CompletionConfig = field(default_factory=CompletionConfig)
    storage: MessageStoreConfig = field(default_factory=MessageStoreConfig)

    def copy(self) -> "Config":
        """Return a deep copy of the configuration instance."""

        return Config(
            completion=copy.deepcopy(self.completion),
            storage=self.storage.copy(),
        )


_config_lock = threading.Lock()
_config: Config = Config(
    completion=CompletionConfig.from_env(),
    storage=MessageStoreConfig.from_env(),
)


def configure(
    *,
    completion: Optional[CompletionConfig] = None,
    storage: Optional[MessageStoreConfig] = None,
) -> None:
    """Update the process-wide configuration."""

    with _config_lock:
        if completion is not None:
            _config.completion = copy.deepcopy(completion)
        if storage is not None:
            _config.storage = storage.copy()
    logger.info(
        "Configuration updated (completion=%s storage=%s)",
        completion is not None,
        storage is not None,
    )


def get_config() -> Config:
    """Return a copy of the active configuration."""

    with _config_lock:
        return _config.copy()


def reset_config(env: Mapping[str, str] | None = None) -> None:
    """Reset the configuration based on environment variables (tests)."""

    global _config
    with _config_lock:
        _config = Config(
            completion=CompletionConfig.from_env(env=env),
            storage=MessageStoreConfig.from_env(env),
        )


def load_config_from_yaml(path: Path) -> None:
    """Load configuration from a YAML file and apply it."""

    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return

    logger.info("Loading configuration from file: %s", path)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not data:
        logger.warning("Config file is empty: %s", path)
        return
    if not isinstance(data, Mapping):
        raise ValueError(f"Invalid config format in {path}, expected a mapping.")

    completion_data = data.get("completion")
    storage_data = data.get("storage")

    with _config_lock:
        if isinstance(completion_data, Mapping):
            _config.completion = _parse_completion(completion_data, _config.completion)
        if isinstance(storage_data, Mapping):
            _config.storage = _parse_storage(storage_data, _config.storage)

    logger.info("Configuration loaded successfully from YAML: %s", path)


def _parse_completion(data: Mapping[str, Any], current: CompletionConfig) -> CompletionConfig:
    """Merge a ``completion`` YAML section over ``current``."""

    api_key_env = _clean(data.get("api_key_env"))
    api_key = _clean(data.get("api_key")) or (
        _clean(os.environ.get(api_key_env)) if api_key_env else None
    )
    return CompletionConfig(
        model=_clean(data.get("model")) or current.model,
        base_url=_clean(data.get("base_url")) or current.base_url,
        api_key=api_key or current.api_key,
        timeout=_parse_float(data.get("timeout"), current.timeout),
        max_retries=_parse_int(data.get("max_retries"), current.max_retries),
    )


def _parse_storage(data: Mapping[str, Any], current: MessageStoreConfig) -> MessageStoreConfig:
    """Merge a ``storage`` YAML section over ``current``."""

    backend = (_clean(data.get("backend")) or current.backend).lower()
    if backend not in STORAGE_BACKENDS:
        logger.warning("Ignoring invalid storage backend configuration: %s", backend)
        backend = current.backend

    pool_size = current.pool_size
    if "pool_size" in data:
        pool_size = _parse_int(data.get("pool_size"), 0) or None

    return MessageStoreConfig(
        backend=backend,
        url=_clean(data.get("url")) or current.url,
        echo=_parse_bool(data.get("echo"), current.echo),
        pool_size=pool_size,
        collection=_clean(data.get("collection")) or current.collection,
        project=_clean(data.get("project")) or current.project,
        database=_clean(data.get("database")) or current.database,
    )


__all__ = [
    "CompletionConfig",
    "Config",
    "MessageStoreConfig",
    "configure",
    "default_data_dir",
    "get_config",
    "load_config_from_yaml",
    "reset_config",
]
