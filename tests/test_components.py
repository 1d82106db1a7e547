"""Tests for the NetTools component table and component files."""

from __future__ import annotations

import pytest
import yaml

from netinstall.components import (
    BUILTIN_COMPONENTS,
    build_registry,
    load_component_file,
    parse_components,
)
from netinstall.core.actions import HealthGatedAction, ScriptAction
from netinstall.errors import ConfigError, ConfigNotFound, UnknownDependency
from netinstall.models import HealthCheckType


class TestBuiltinComponents:
    """Tests for the built-in NetTools installation order."""

    def test_registration_order(self):
        registry = build_registry()
        assert registry.ids() == [
            "environment",
            "core-infra",
            "auth",
            "api-gateway",
            "cluster",
            "device",
            "monitoring",
            "additional",
        ]

    def test_default_set(self):
        assert build_registry().default_ids() == ["environment", "core-infra"]

    def test_api_gateway_pulls_in_auth(self):
        registry = build_registry()
        assert registry.resolve(["api-gateway"]) == ["environment", "core-infra", "auth", "api-gateway"]

    def test_full_plan(self):
        registry = build_registry()
        assert registry.resolve(registry.ids()) == registry.ids()

    def test_core_infra_waits_for_services(self):
        component = build_registry().get("core-infra")
        assert isinstance(component.action, HealthGatedAction)
        assert isinstance(component.action.inner, ScriptAction)
        assert component.action.inner.script == "2-core-infrastructure.sh"

        types = [check.type for check in component.action.checks]
        assert types[0] == HealthCheckType.DATABASE
        assert types.count(HealthCheckType.CONTAINER) == 4
        assert component.get_marker() == ".core_infra_installed"

    def test_environment_marker(self):
        assert build_registry().get("environment").get_marker() == ".environment_installed"

    def test_verification_checks(self):
        registry = build_registry()
        assert registry.get("environment").verify
        assert {c.type for c in registry.get("core-infra").verify} == {
            HealthCheckType.CONTAINER,
            HealthCheckType.HTTP,
        }


class TestComponentFiles:
    """Tests for loading component definitions from YAML."""

    def test_load_file_in_document_order(self, tmp_path):
        path = tmp_path / "components.yaml"
        path.write_text(
            "components:\n"
            "  zeta:\n"
            "    script: zeta.sh\n"
            "  alpha:\n"
            "    script: alpha.sh\n"
            "    depends_on: zeta\n"
            "    optional: true\n"
        )
        definitions = load_component_file(path)
        assert list(definitions) == ["zeta", "alpha"]
        assert definitions["alpha"].depends_on == ["zeta"]

        registry = build_registry(definitions)
        assert registry.default_ids() == ["zeta"]
        assert registry.resolve(["alpha"]) == ["zeta", "alpha"]

    def test_bare_mapping(self, tmp_path):
        path = tmp_path / "components.yaml"
        path.write_text(yaml.safe_dump({"one": {"script": "one.sh"}}))
        assert list(load_component_file(path)) == ["one"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigNotFound):
            load_component_file(tmp_path / "missing.yaml")

    def test_forward_reference(self, tmp_path):
        path = tmp_path / "components.yaml"
        path.write_text(yaml.safe_dump({"b": {"depends_on": ["a"]}, "a": {}}, sort_keys=False))
        with pytest.raises(UnknownDependency):
            build_registry(load_component_file(path))

    @pytest.mark.parametrize(
        "data",
        [
            {"a": "not a mapping"},
            {"a": {"health_checks": [{"type": "telepathy"}]}},
            {"a": {"depends_on": 5}},
            {"a": {"depend_on": ["b"]}},
        ],
    )
    def test_invalid_definitions(self, data):
        with pytest.raises(ConfigError):
            parse_components(data)

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / "components.yaml"
        path.write_bytes(b"a:\n  script: \xff.sh\n")
        with pytest.raises(ConfigError, match="Cannot read"):
            load_component_file(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "components.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_component_file(path)

    def test_builtin_table_is_valid(self):
        assert set(parse_components(BUILTIN_COMPONENTS)) == set(BUILTIN_COMPONENTS)
