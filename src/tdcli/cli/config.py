"""CLI configuration management with XDG-compliant storage."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tdcli.cli.errors import AuthenticationMissing, ConfigurationError

DEFAULT_SYNC_TTL_SECONDS = 60
DEFAULT_SYNC_TIMEOUT_SECONDS = 10.0


def get_config_dir() -> Path:
    """Get XDG-compliant config directory for tdcli.

    Returns:
        Path to ~/.config/tdcli/
    """
    config_home = Path.home() / ".config"
    config_dir = config_home / "tdcli"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_config_file() -> Path:
    """Get path to config file.

    Returns:
        Path to ~/.config/tdcli/config.json
    """
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from file.

    Returns:
        Dictionary of configuration values, or empty dict if file doesn't exist.

    Raises:
        ConfigurationError: If the file exists but is not a JSON object.
    """
    config_file = get_config_file()
    if not config_file.exists():
        return {}

    with config_file.open("r") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid config file {config_file}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid config file {config_file}: expected an object")
    return data


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to file.

    Args:
        config: Dictionary of configuration values to save.
    """
    config_file = get_config_file()
    with config_file.open("w") as f:
        json.dump(config, f, indent=2)


def get_config_value(key: str, default: Any = None) -> Any:
    """Get a single configuration value.

    Dotted keys address nested objects, e.g. ``sync.ttl_seconds``.

    Args:
        key: Configuration key to retrieve.
        default: Default value if key doesn't exist.

    Returns:
        Configuration value or default.
    """
    node: Any = load_config()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def set_config_value(key: str, value: Any) -> None:
    """Set a single configuration value.

    Args:
        key: Configuration key to set (dotted keys create nested objects).
        value: Value to store.
    """
    config = load_config()
    *parents, leaf = key.split(".")
    node = config
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[leaf] = value
    save_config(config)


def delete_config_value(key: str) -> bool:
    """Remove a top-level configuration value.

    Returns:
        True if the key existed.
    """
    config = load_config()
    if key not in config:
        return False
    del config[key]
    save_config(config)
    return True


def parse_config_value(raw: str) -> Any:
    """Interpret a command line value as a JSON scalar where possible."""
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    if isinstance(value, (bool, int, float)) or value is None:
        return value
    return raw


@dataclass(frozen=True)
class SyncSettings:
    """Resolved settings for the local sync cache."""

    enabled: bool
    ttl_seconds: int
    db_path: Path
    timeout_seconds: float = DEFAULT_SYNC_TIMEOUT_SECONDS


def _parse_ttl(value: Any, origin: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{origin} must be a positive integer, got {value!r}")
    try:
        ttl = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{origin} must be a positive integer, got {value!r}") from e
    if ttl <= 0 or (isinstance(value, float) and not value.is_integer()):
        raise ConfigurationError(f"{origin} must be a positive integer, got {value!r}")
    return ttl


def _parse_timeout(value: Any, origin: str) -> float:
    try:
        timeout = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{origin} must be a positive number, got {value!r}") from e
    if timeout <= 0:
        raise ConfigurationError(f"{origin} must be a positive number, got {value!r}")
    return timeout


def _resolve_db_path(raw: str, origin: str) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        raise ConfigurationError(f"{origin} must be an absolute path (or start with ~/)")
    return path


def get_sync_settings() -> SyncSettings:
    """Resolve sync cache settings.

    Precedence is environment variable, then the ``sync`` object of the
    config file, then the built-in default.

    Returns:
        The resolved SyncSettings.

    Raises:
        ConfigurationError: If the TTL, timeout or storage path is invalid.
    """
    sync_config = load_config().get("sync") or {}
    if not isinstance(sync_config, dict):
        raise ConfigurationError("'sync' in config file must be an object")

    enabled = bool(sync_config.get("enabled", True))
    if os.environ.get("TD_SYNC_DISABLE") == "1":
        enabled = False

    env_ttl = os.environ.get("TD_SYNC_TTL_SECONDS")
    if env_ttl is not None:
        ttl_seconds = _parse_ttl(env_ttl, "TD_SYNC_TTL_SECONDS")
    elif "ttl_seconds" in sync_config:
        ttl_seconds = _parse_ttl(sync_config["ttl_seconds"], "sync.ttl_seconds")
    else:
        ttl_seconds = DEFAULT_SYNC_TTL_SECONDS

    env_timeout = os.environ.get("TD_SYNC_TIMEOUT_SECONDS")
    if env_timeout is not None:
        timeout_seconds = _parse_timeout(env_timeout, "TD_SYNC_TIMEOUT_SECONDS")
    elif "timeout_seconds" in sync_config:
        timeout_seconds = _parse_timeout(sync_config["timeout_seconds"], "sync.timeout_seconds")
    else:
        timeout_seconds = DEFAULT_SYNC_TIMEOUT_SECONDS

    env_path = os.environ.get("TD_SYNC_DB_PATH")
    if env_path:
        db_path = _resolve_db_path(env_path, "TD_SYNC_DB_PATH")
    elif sync_config.get("db_path"):
        db_path = _resolve_db_path(str(sync_config["db_path"]), "sync.db_path")
    else:
        db_path = get_config_dir() / "cache.db"

    return SyncSettings(
        enabled=enabled,
        ttl_seconds=ttl_seconds,
        db_path=db_path,
        timeout_seconds=timeout_seconds,
    )


def get_api_token() -> str:
    """Return the configured API token.

    Raises:
        AuthenticationMissing: If neither TODOIST_API_TOKEN nor the config file has one.
    """
    env_token = os.environ.get("TODOIST_API_TOKEN")
    if env_token:
        return env_token

    token = load_config().get("api_token")
    if token:
        return str(token)

    raise AuthenticationMissing(
        "No API token found. Set TODOIST_API_TOKEN or run: td config set api_token <token>"
    )


def clear_api_token() -> None:
    """Remove the stored API token from the config file."""
    delete_config_value("api_token")
