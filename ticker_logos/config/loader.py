"""
Configuration management and loading.

Reads the YAML config file, applies LOGO_* environment overrides and
validates the result.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

ENV_PREFIX = "LOGO_"
CONFIG_PATH_ENV = "LOGO_CONFIG_PATH"
DEFAULT_CONFIG_PATHS = ("config.yaml", "config/config.yaml")

KNOWN_PROVIDERS = ("anthropic", "openai")
LOG_LEVELS = ("debug", "info", "warning", "error")

DEFAULT_REPOS = ("davidepalazzo/ticker-logos", "nvstly/icons")
DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5-20250929",
    "openai": "gpt-4o",
}
PROVIDER_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}


@dataclass(frozen=True)
class StorageConfig:
    """Where metadata and normalized blobs live."""
    database_path: str = "./storage/logo-service.db"
    logo_dir: str = "./storage/logos"

    def __post_init__(self):
        if not self.database_path:
            raise ValueError("storage.database_path must not be empty")
        if not self.logo_dir:
            raise ValueError("storage.logo_dir must not be empty")


@dataclass(frozen=True)
class GitHubConfig:
    """Repository mirror settings."""
    repos: Tuple[str, ...] = DEFAULT_REPOS
    token: str = ""

    def __post_init__(self):
        for repo in self.repos:
            if repo.count("/") != 1 or repo.startswith("/") or repo.endswith("/"):
                raise ValueError(f"github.repos entry must look like 'owner/name', got {repo!r}")


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and model for one LLM backend."""
    api_key: str = ""
    model: str = ""


@dataclass(frozen=True)
class LLMConfig:
    """LLM search settings."""
    provider_order: Tuple[str, ...] = KNOWN_PROVIDERS
    rate_per_minute: float = 10.0
    anthropic: ProviderConfig = field(default_factory=lambda: ProviderConfig(model=DEFAULT_MODELS["anthropic"]))
    openai: ProviderConfig = field(default_factory=lambda: ProviderConfig(model=DEFAULT_MODELS["openai"]))

    def __post_init__(self):
        if self.rate_per_minute <= 0:
            raise ValueError("llm.rate_per_minute must be > 0")
        for name in self.provider_order:
            if name not in KNOWN_PROVIDERS:
                raise ValueError(f"llm.provider_order must only contain {list(KNOWN_PROVIDERS)}, got {name!r}")

    def provider(self, name: str) -> ProviderConfig:
        return getattr(self, name)


@dataclass(frozen=True)
class LogConfig:
    level: str = "info"

    def __post_init__(self):
        if self.level not in LOG_LEVELS:
            raise ValueError(f"log.level must be one of: {list(LOG_LEVELS)}")


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    log: LogConfig = field(default_factory=LogConfig)


_SECTION_KEYS = {
    "storage": {"database_path", "logo_dir"},
    "github": {"repos", "token"},
    "llm": {"provider_order", "rate_per_minute", "anthropic", "openai"},
    "log": {"level"},
}
_PROVIDER_KEYS = {"api_key", "model"}


def load_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """Load and validate the application configuration.

    Without a path, the first existing file of DEFAULT_CONFIG_PATHS is used;
    if none exists the built-in defaults apply. Environment variables of the
    form LOGO_<SECTION>_<KEY> override file values, and ANTHROPIC_API_KEY /
    OPENAI_API_KEY fill in API keys that are still unset.

    Args:
        path: Explicit path to a YAML configuration file
        environ: Environment mapping; defaults to os.environ

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If an explicit config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    env = os.environ if environ is None else environ

    raw_config = _read_file(path)
    _apply_env_overrides(raw_config, env)

    storage = _section(raw_config, "storage")
    github = _section(raw_config, "github")
    llm = _section(raw_config, "llm")
    log_section = _section(raw_config, "log")

    providers = {}
    for name in KNOWN_PROVIDERS:
        data = llm.get(name) or {}
        if not isinstance(data, dict):
            raise ValueError(f"'llm.{name}' must be a dictionary")
        unknown_keys = set(data.keys()) - _PROVIDER_KEYS
        if unknown_keys:
            raise ValueError(f"Unknown keys in llm.{name}: {unknown_keys}")
        providers[name] = ProviderConfig(
            api_key=str(data.get("api_key") or env.get(PROVIDER_KEY_ENV[name], "")),
            model=str(data.get("model") or DEFAULT_MODELS[name]),
        )

    try:
        rate = float(llm.get("rate_per_minute", LLMConfig.rate_per_minute))
    except (TypeError, ValueError):
        raise ValueError("llm.rate_per_minute must be a number")

    return AppConfig(
        storage=StorageConfig(
            database_path=str(storage.get("database_path", StorageConfig.database_path)),
            logo_dir=str(storage.get("logo_dir", StorageConfig.logo_dir)),
        ),
        github=GitHubConfig(
            repos=_as_list(github.get("repos", DEFAULT_REPOS), "github.repos"),
            token=str(github.get("token") or ""),
        ),
        llm=LLMConfig(
            provider_order=_as_list(llm.get("provider_order", KNOWN_PROVIDERS), "llm.provider_order", lower=True),
            rate_per_minute=rate,
            anthropic=providers["anthropic"],
            openai=providers["openai"],
        ),
        log=LogConfig(level=str(log_section.get("level", LogConfig.level)).lower()),
    )


def _read_file(path: Optional[str]) -> Dict[str, Any]:
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
    else:
        config_path = next((Path(p) for p in DEFAULT_CONFIG_PATHS if Path(p).exists()), None)
        if config_path is None:
            return {}

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {config_path}: {e}")

    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")

    unknown_keys = set(raw_config.keys()) - set(_SECTION_KEYS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")
    return raw_config


def _section(raw_config: Dict[str, Any], name: str) -> Dict[str, Any]:
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    unknown_keys = set(data.keys()) - _SECTION_KEYS[name]
    if unknown_keys:
        raise ValueError(f"Unknown {name} keys: {unknown_keys}")
    return data


def _apply_env_overrides(raw_config: Dict[str, Any], env: Mapping[str, str]) -> None:
    """Overlay LOGO_<SECTION>_<KEY> and LOGO_LLM_<PROVIDER>_<KEY> variables."""
    for section, keys in _SECTION_KEYS.items():
        for key in keys:
            if key in KNOWN_PROVIDERS:
                for provider_key in _PROVIDER_KEYS:
                    value = env.get(f"{ENV_PREFIX}{section}_{key}_{provider_key}".upper())
                    if value:
                        _nested(raw_config, section, key)[provider_key] = value
                continue

            value = env.get(f"{ENV_PREFIX}{section}_{key}".upper())
            if value:
                _nested(raw_config, section)[key] = value


def _nested(raw_config: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    target = raw_config
    for key in keys:
        if not isinstance(target.get(key), dict):
            target[key] = {}
        target = target[key]
    return target


def _as_list(value: Any, name: str, lower: bool = False) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"'{name}' must be a list or a comma-separated string")
    items = [str(item).strip() for item in value]
    return tuple(item.lower() if lower else item for item in items if item)
