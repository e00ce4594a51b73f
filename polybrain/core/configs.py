"""Configuration management for Polybrain.

Configuration is resolved in this order:
1. Simple environment config (POLYBRAIN_BASE_URL, POLYBRAIN_API_KEY and
   POLYBRAIN_MODEL_NAME all set) describing a single model
2. A YAML file: $POLYBRAIN_CONFIG_PATH, ./.polybrain.yaml or ~/.polybrain.yaml
3. Otherwise a ConfigError

Environment lookups also see a .env file in the working directory; real
environment variables take precedence over it.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import dotenv_values

from polybrain.core.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_HTTP_PORT = 32701
DEFAULT_TRUNCATE_LIMIT = 500
DEFAULT_LOG_LEVEL = "info"
DEFAULT_TIMEOUT = 120.0

CONFIG_FILENAME = ".polybrain.yaml"
PROVIDERS = ("openai", "openrouter")
LOG_LEVELS = ("debug", "info", "warn", "error")

_ENV_REF = re.compile(r"\$\{([^}]+)\}")


@dataclass
class ModelConfig:
    id: str
    model_name: str
    base_url: str
    api_key: str
    provider: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT

    def public_info(self) -> Dict[str, str]:
        """Model description safe to hand to clients (no API key)."""
        return {"id": self.id, "modelName": self.model_name, "baseUrl": self.base_url}


@dataclass
class ServerConfig:
    models: List[ModelConfig]
    http_port: int = DEFAULT_HTTP_PORT
    truncate_limit: int = DEFAULT_TRUNCATE_LIMIT
    log_level: str = DEFAULT_LOG_LEVEL
    source: str = field(default="", compare=False)

    @property
    def default_model(self) -> ModelConfig:
        return self.models[0]

    def get_model(self, model_id: str) -> Optional[ModelConfig]:
        for model in self.models:
            if model.id == model_id:
                return model
        return None


def load_environment(cwd: Optional[Path] = None) -> Dict[str, str]:
    """
    Merge a working-directory .env file under the process environment.

    Returns a plain dict; the process environment is not modified.
    """
    env_file = (cwd or Path.cwd()) / ".env"
    merged: Dict[str, str] = {}
    if env_file.is_file():
        merged.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
    merged.update(os.environ)
    return merged


def _get_bool(env: Mapping[str, str], key: str, default: bool = False) -> bool:
    value = env.get(key)
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def is_debug_enabled(env: Optional[Mapping[str, str]] = None) -> bool:
    """True when POLYBRAIN_DEBUG asks for launcher logging."""
    return _get_bool(env if env is not None else os.environ, "POLYBRAIN_DEBUG")


def is_server_disabled(env: Optional[Mapping[str, str]] = None) -> bool:
    """True when POLYBRAIN_NO_SERVER asks the launcher to skip supervision."""
    return _get_bool(env if env is not None else os.environ, "POLYBRAIN_NO_SERVER")


def resolve_env_refs(value: Any, env: Mapping[str, str]) -> Any:
    """
    Replace ``${NAME}`` references in every string of a parsed YAML tree.

    Raises:
        ConfigError: If a referenced variable is unset or empty
    """
    if isinstance(value, str):
        def _lookup(match: "re.Match[str]") -> str:
            name = match.group(1)
            resolved = env.get(name)
            if not resolved:
                raise ConfigError(f"Environment variable not found: {name}")
            return resolved

        return _ENV_REF.sub(_lookup, value)
    if isinstance(value, list):
        return [resolve_env_refs(item, env) for item in value]
    if isinstance(value, dict):
        return {key: resolve_env_refs(item, env) for key, item in value.items()}
    return value


def find_config_path(
    env: Mapping[str, str],
    cwd: Optional[Path] = None,
    home: Optional[Path] = None,
) -> Optional[Path]:
    """Locate the YAML config file, or None if there is none."""
    custom = env.get("POLYBRAIN_CONFIG_PATH")
    if custom:
        return Path(custom).expanduser()

    local_path = (cwd or Path.cwd()) / CONFIG_FILENAME
    if local_path.exists():
        return local_path

    home_path = (home or Path.home()) / CONFIG_FILENAME
    if home_path.exists():
        return home_path

    return None


def _to_int(value: Any, key: str, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{key}' must be an integer (got {value!r})") from None


def _validate_settings(http_port: int, truncate_limit: int, log_level: str) -> None:
    if not 0 < http_port < 65536:
        raise ConfigError(f"'httpPort' must be between 1 and 65535 (got {http_port})")
    if truncate_limit < 0:
        raise ConfigError(f"'truncateLimit' must not be negative (got {truncate_limit})")
    if log_level not in LOG_LEVELS:
        raise ConfigError(
            f"Invalid logLevel '{log_level}'. Must be one of: {', '.join(LOG_LEVELS)}"
        )


def build_simple_config(env: Mapping[str, str]) -> ServerConfig:
    """Single-model config from POLYBRAIN_* environment variables."""
    base_url = env.get("POLYBRAIN_BASE_URL")
    api_key = env.get("POLYBRAIN_API_KEY")
    model_name = env.get("POLYBRAIN_MODEL_NAME")

    if not base_url or not api_key or not model_name:
        raise ConfigError(
            "When using simple environment variable config, POLYBRAIN_BASE_URL, "
            "POLYBRAIN_API_KEY, and POLYBRAIN_MODEL_NAME must all be set"
        )

    http_port = _to_int(env.get("POLYBRAIN_HTTP_PORT"), "POLYBRAIN_HTTP_PORT", DEFAULT_HTTP_PORT)
    truncate_limit = _to_int(
        env.get("POLYBRAIN_TRUNCATE_LIMIT"), "POLYBRAIN_TRUNCATE_LIMIT", DEFAULT_TRUNCATE_LIMIT
    )
    log_level = (env.get("POLYBRAIN_LOG_LEVEL") or DEFAULT_LOG_LEVEL).strip().lower()
    _validate_settings(http_port, truncate_limit, log_level)

    return ServerConfig(
        # In simple mode the model name doubles as its id
        models=[ModelConfig(id=model_name, model_name=model_name, base_url=base_url, api_key=api_key)],
        http_port=http_port,
        truncate_limit=truncate_limit,
        log_level=log_level,
        source="environment",
    )


def _parse_model(raw: Any) -> ModelConfig:
    if not isinstance(raw, dict):
        raise ConfigError("Each model must be a mapping")

    for key, message in (
        ("id", "Model must have 'id' field"),
        ("modelName", "Model must have 'modelName' field for API calls"),
        ("baseUrl", "Model must have 'baseUrl' field"),
        ("apiKey", "Model must have 'apiKey' field"),
    ):
        if not raw.get(key):
            raise ConfigError(message)

    provider = raw.get("provider")
    if provider is not None:
        provider = str(provider).strip().lower()
        if provider not in PROVIDERS:
            raise ConfigError(
                f"Invalid provider '{provider}'. Must be 'openai' or 'openrouter'"
            )

    timeout = raw.get("timeout", DEFAULT_TIMEOUT)
    try:
        timeout = float(timeout)
    except (TypeError, ValueError):
        raise ConfigError(f"Model timeout must be a number (got {timeout!r})") from None

    return ModelConfig(
        id=str(raw["id"]),
        model_name=str(raw["modelName"]),
        base_url=str(raw["baseUrl"]),
        api_key=str(raw["apiKey"]),
        provider=provider,
        timeout=timeout,
    )


def parse_config(raw: Any, source: str = "") -> ServerConfig:
    """
    Validate a parsed (and env-resolved) YAML document.

    Raises:
        ConfigError: If any required value is missing or malformed
    """
    if not isinstance(raw, dict):
        raise ConfigError("Config file must contain a mapping at the top level")

    models = raw.get("models")
    if not isinstance(models, list) or not models:
        raise ConfigError("Config must have at least one model in the 'models' array")

    parsed = [_parse_model(model) for model in models]
    seen = set()
    for model in parsed:
        if model.id in seen:
            raise ConfigError(f"Duplicate model id '{model.id}'")
        seen.add(model.id)

    http_port = _to_int(raw.get("httpPort"), "httpPort", DEFAULT_HTTP_PORT)
    truncate_limit = _to_int(raw.get("truncateLimit"), "truncateLimit", DEFAULT_TRUNCATE_LIMIT)
    log_level = str(raw.get("logLevel") or DEFAULT_LOG_LEVEL).strip().lower()
    _validate_settings(http_port, truncate_limit, log_level)

    return ServerConfig(
        models=parsed,
        http_port=http_port,
        truncate_limit=truncate_limit,
        log_level=log_level,
        source=source,
    )


def load_config_file(path: Path, env: Mapping[str, str]) -> ServerConfig:
    """Read, env-resolve and validate a YAML config file."""
    try:
        with open(path, encoding="utf-8") as handle:
            raw = yaml.safe_load(handle)
    except OSError as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    logger.debug("Loaded config from %s", path)
    return parse_config(resolve_env_refs(raw, env), source=str(path))


def load_config(
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
    home: Optional[Path] = None,
) -> ServerConfig:
    """
    Load the server configuration.

    Args:
        env: Environment mapping (default: process env merged over ./.env)
        cwd: Directory searched for .polybrain.yaml and .env
        home: Home directory searched for .polybrain.yaml

    Raises:
        ConfigError: If no configuration is found or it is invalid
    """
    env = env if env is not None else load_environment(cwd)

    if env.get("POLYBRAIN_BASE_URL") and env.get("POLYBRAIN_API_KEY") and env.get("POLYBRAIN_MODEL_NAME"):
        logger.info("Using simple environment variable configuration")
        return build_simple_config(env)

    path = find_config_path(env, cwd=cwd, home=home)
    if path is not None:
        logger.info("Using YAML configuration file %s", path)
        return load_config_file(path, env)

    raise ConfigError(
        "No configuration found. Set POLYBRAIN_BASE_URL, POLYBRAIN_API_KEY, "
        "and POLYBRAIN_MODEL_NAME environment variables, or create ~/.polybrain.yaml"
    )
