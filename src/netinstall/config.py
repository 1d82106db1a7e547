"""Configuration loading and management for NetInstall."""

from __future__ import annotations

import os
import re
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from netinstall.errors import ConfigError, ConfigNotFound

# Default paths
DEFAULT_INSTALL_DIR = Path(os.environ.get("NETINSTALL_HOME", "/opt/nettools"))
CONFIG_FILE_NAME = "setup.yaml"
LOG_FILE_NAME = "install.log"

VALID_ENVIRONMENTS = ("development", "staging", "production")

# Every option read by a component action or a health probe has a default here.
DEFAULT_SETTINGS: dict[str, Any] = {
    # Installation directories
    "INSTALL_DIR": str(DEFAULT_INSTALL_DIR),
    "LOG_DIR": "${INSTALL_DIR}/logs",
    "CONFIG_DIR": "${INSTALL_DIR}/config",
    "SCRIPT_DIR": "${INSTALL_DIR}/scripts",
    "MODULES_DIR": "${INSTALL_DIR}/modules",
    "DOCKER_DIR": "${INSTALL_DIR}/docker",
    # Database
    "DB_HOST": "localhost",
    "DB_PORT": 5432,
    "DB_NAME": "nettools",
    "DB_USER": "nettools",
    "DB_PASSWORD": "nettools",
    "DB_ADMIN_USER": "postgres",
    "DB_ADMIN_PASSWORD": "postgres",
    # Docker
    "DOCKER_NETWORK": "nettools-network",
    "DOCKER_SUBNET": "172.28.0.0/16",
    # Node.js
    "NODE_VERSION": "20.x",
    "NPM_REGISTRY": "https://registry.npmjs.org/",
    # Service ports
    "API_GATEWAY_PORT": 9000,
    "AUTH_SERVICE_PORT": 9001,
    "DEVICE_SERVICE_PORT": 9002,
    "MONITORING_SERVICE_PORT": 9003,
    "CLUSTER_SERVICE_PORT": 9004,
    # Docker service ports
    "TIMESCALEDB_PORT": 5432,
    "REDIS_PORT": 6379,
    "VAULT_PORT": 8200,
    "PROMETHEUS_PORT": 9090,
    "GRAFANA_PORT": 3001,
    # System user
    "NETTOOLS_USER": "nettools",
    "NETTOOLS_GROUP": "nettools",
    # Deployment environment: development, staging, production
    "ENVIRONMENT": "development",
    # Security
    "JWT_SECRET": "change-this-in-production",
    "REFRESH_TOKEN_SECRET": "change-this-in-production",
    # Health probes
    "HEALTH_MAX_ATTEMPTS": 30,
    "HEALTH_WAIT_SECONDS": 2,
    "HTTP_TIMEOUT": 5,
    # Host requirements (warnings only)
    "MIN_RAM_MB": 4096,
    "MIN_DISK_MB": 10240,
    "MIN_CPU_CORES": 2,
}

_REF_PATTERN = re.compile(r"\$\{(env:)?([A-Za-z_][A-Za-z0-9_]*)\}")
_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}
_MISSING = object()


class Configuration(Mapping[str, Any]):
    """Immutable flat key-value configuration.

    String values may reference other keys as ``${KEY}`` or environment
    variables as ``${env:NAME}``. References are resolved on access; names
    that resolve to nothing are left as written.
    """

    def __init__(self, values: Mapping[str, Any], source: Path | None = None):
        self._values = dict(values)
        self.source = source

    def __getitem__(self, key: str) -> Any:
        value = self._values[key]
        if isinstance(value, str):
            return self.interpolate(value)
        return value

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Configuration({len(self._values)} keys, source={self.source})"

    def raw(self) -> dict[str, Any]:
        """Get the uninterpolated values."""
        return dict(self._values)

    def interpolate(self, text: str, _seen: frozenset[str] = frozenset()) -> str:
        """Resolve ``${KEY}`` and ``${env:NAME}`` references in a string."""

        def replace(match: re.Match[str]) -> str:
            is_env, name = match.group(1), match.group(2)
            if is_env:
                return os.environ.get(name, "")
            if name in _seen or name not in self._values:
                return match.group(0)
            value = self._values[name]
            if isinstance(value, str):
                return self.interpolate(value, _seen | {name})
            return _to_text(value)

        return _REF_PATTERN.sub(replace, text)

    def _lookup(self, key: str, default: Any) -> Any:
        if key in self._values:
            return self[key]
        if default is _MISSING:
            raise ConfigError(f"Configuration option '{key}' has no value and no default")
        return default

    def get_str(self, key: str, default: Any = _MISSING) -> str:
        return _to_text(self._lookup(key, default))

    def get_int(self, key: str, default: Any = _MISSING) -> int:
        value = self._lookup(key, default)
        if isinstance(value, bool):
            raise ConfigError(f"Option '{key}' must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"Option '{key}' must be an integer, got {value!r}") from None

    def get_float(self, key: str, default: Any = _MISSING) -> float:
        value = self._lookup(key, default)
        if isinstance(value, bool):
            raise ConfigError(f"Option '{key}' must be a number, got {value!r}")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"Option '{key}' must be a number, got {value!r}") from None

    def get_bool(self, key: str, default: Any = _MISSING) -> bool:
        value = self._lookup(key, default)
        if isinstance(value, bool):
            return value
        text = _to_text(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f"Option '{key}' must be a boolean, got {value!r}")

    def get_path(self, key: str, default: Any = _MISSING) -> Path:
        return Path(self.get_str(key, default)).expanduser()

    def as_dict(self) -> dict[str, Any]:
        """Get all values with references resolved."""
        return {key: self[key] for key in self._values}

    def as_env(self) -> dict[str, str]:
        """Get all values as environment variables for component scripts."""
        return {key: _to_text(value) for key, value in self.as_dict().items()}


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def load_yaml_file(path: Path) -> dict:
    """Load a flat YAML mapping."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config file {path}: expected a mapping, got {type(data).__name__}")

    for key, value in data.items():
        if isinstance(value, (dict, list)):
            raise ConfigError(f"Invalid config file {path}: option '{key}' must be a scalar value")

    return {str(key): value for key, value in data.items()}


def load_config(
    defaults: Mapping[str, Any] = DEFAULT_SETTINGS,
    override_path: Path | None = None,
) -> Configuration:
    """Load configuration from defaults and an optional override file.

    The override is opt-in: when a path is given it must exist. Keys in the
    override replace the defaults; unknown keys are kept.

    Raises:
        ConfigNotFound: override_path was given but does not exist.
        ConfigError: the override or a resulting value is invalid.
    """
    values = dict(defaults)

    if override_path is not None:
        path = Path(override_path).expanduser()
        if not path.is_file():
            raise ConfigNotFound(path)
        overrides = load_yaml_file(path)
        unknown = sorted(set(overrides) - set(defaults) - set(DEFAULT_SETTINGS))
        if unknown:
            logger.debug(f"Ignoring unknown options in {path}: {', '.join(unknown)}")
        values.update(overrides)
        logger.info(f"Loaded configuration from {path}")
    else:
        logger.debug("No configuration override, using defaults")

    config = Configuration(values, source=Path(override_path) if override_path else None)
    _validate_config(config)
    return config


def _validate_config(config: Configuration) -> None:
    """Validate option values that every run depends on.

    Only built-in options are checked; unknown keys are carried along unread.
    """
    environment = config.get_str("ENVIRONMENT", "development")
    if environment not in VALID_ENVIRONMENTS:
        raise ConfigError(
            f"Option 'ENVIRONMENT' must be one of {', '.join(VALID_ENVIRONMENTS)}, got '{environment}'"
        )

    for key in DEFAULT_SETTINGS:
        if key.endswith("_PORT") and key in config:
            port = config.get_int(key)
            if not 0 < port < 65536:
                raise ConfigError(f"Option '{key}' must be a valid port, got {port}")

    if config.get_int("HEALTH_MAX_ATTEMPTS", 1) < 1:
        raise ConfigError("Option 'HEALTH_MAX_ATTEMPTS' must be at least 1")
    if config.get_float("HEALTH_WAIT_SECONDS", 0) < 0:
        raise ConfigError("Option 'HEALTH_WAIT_SECONDS' must not be negative")


def save_config(config: Configuration, path: Path) -> Path:
    """Write the merged configuration as a flat YAML document."""
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        f.write("# NetTools Platform Installation Configuration\n")
        yaml.dump(config.raw(), f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    logger.debug(f"Saved configuration to {path}")
    return path
