"""NetTools component definitions and registry construction."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import yaml
from loguru import logger
from pydantic import ValidationError

from netinstall.core.actions import HealthGatedAction, ScriptAction
from netinstall.core.registry import Component, ComponentRegistry
from netinstall.errors import ConfigError, ConfigNotFound
from netinstall.models import ComponentConfig

# Registration order is the installation order when nothing else decides.
BUILTIN_COMPONENTS: dict[str, dict[str, Any]] = {
    "environment": {
        "description": "System packages, Docker, Node.js, service user and directories",
        "script": "1-environment-setup.sh",
        "verify": [
            {"type": "command", "name": "docker and node", "command": "command -v docker && command -v node"},
        ],
    },
    "core-infra": {
        "description": "TimescaleDB, Redis, Vault, Prometheus and Grafana containers",
        "script": "2-core-infrastructure.sh",
        "depends_on": ["environment"],
        "marker": ".core_infra_installed",
        "health_checks": [
            {
                "type": "database",
                "name": "database ${DB_NAME}",
                "container": "nettools-timescaledb",
                "host": "localhost",
                "port": "${TIMESCALEDB_PORT}",
                "user": "${DB_USER}",
                "database": "${DB_NAME}",
            },
            {"type": "container", "container": "nettools-redis"},
            {"type": "container", "container": "nettools-vault"},
            {"type": "container", "container": "nettools-prometheus"},
            {"type": "container", "container": "nettools-grafana"},
        ],
        "verify": [
            {"type": "container", "container": "nettools-timescaledb"},
            {"type": "container", "container": "nettools-redis"},
            {"type": "http", "name": "Prometheus", "url": "http://localhost:${PROMETHEUS_PORT}/-/healthy"},
            {"type": "http", "name": "Grafana", "url": "http://localhost:${GRAFANA_PORT}/api/health"},
        ],
    },
    "auth": {
        "description": "Authentication module",
        "script": "3-auth-module.sh",
        "depends_on": ["core-infra"],
        "optional": True,
    },
    "api-gateway": {
        "description": "API gateway module",
        "script": "4-api-gateway-module.sh",
        "depends_on": ["auth"],
        "optional": True,
    },
    "cluster": {
        "description": "Cluster module",
        "script": "5-cluster-module.sh",
        "depends_on": ["core-infra"],
        "optional": True,
    },
    "device": {
        "description": "Device discovery module",
        "script": "6-device-discovery-module.sh",
        "depends_on": ["core-infra"],
        "optional": True,
    },
    "monitoring": {
        "description": "Monitoring module",
        "script": "7-monitoring-module.sh",
        "depends_on": ["core-infra"],
        "optional": True,
    },
    "additional": {
        "description": "Additional modules",
        "script": "8-additional-modules.sh",
        "depends_on": ["core-infra"],
        "optional": True,
    },
}


def parse_components(data: Mapping[str, Any], source: str = "<builtin>") -> dict[str, ComponentConfig]:
    """Validate component definitions, keeping their order."""
    components: dict[str, ComponentConfig] = {}
    for component_id, definition in data.items():
        if not isinstance(definition, dict):
            raise ConfigError(f"Component '{component_id}' in {source}: expected a mapping")
        try:
            components[str(component_id)] = ComponentConfig.model_validate(definition)
        except ValidationError as e:
            raise ConfigError(f"Invalid component '{component_id}' in {source}: {e}") from e
    return components


def load_component_file(path: Path) -> dict[str, ComponentConfig]:
    """Load component definitions from YAML.

    Accepts ``{components: {id: {...}}}`` or a bare ``{id: {...}}`` mapping.
    """
    path = Path(path).expanduser()
    if not path.is_file():
        raise ConfigNotFound(path)

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read components file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Invalid components file {path}: expected a mapping")

    components = data.get("components", data)
    if not isinstance(components, dict):
        raise ConfigError(f"Invalid components structure in {path}")

    parsed = parse_components(components, source=str(path))
    logger.debug(f"Loaded {len(parsed)} components from {path}")
    return parsed


def component_from_config(component_id: str, config: ComponentConfig) -> Component:
    """Turn a definition into a registrable component."""
    action = ScriptAction(config.script) if config.script else None
    return Component(
        id=component_id,
        action=HealthGatedAction(action, config.health_checks),
        depends_on=list(config.depends_on),
        marker=config.get_marker(component_id),
        optional=config.optional,
        description=config.description,
        verify=list(config.verify),
    )


def build_registry(definitions: Mapping[str, ComponentConfig] | None = None) -> ComponentRegistry:
    """Build a registry from definitions (the built-in NetTools table by default)."""
    if definitions is None:
        definitions = parse_components(BUILTIN_COMPONENTS)

    registry = ComponentRegistry()
    for component_id, config in definitions.items():
        registry.register(component_from_config(component_id, config))
    return registry
