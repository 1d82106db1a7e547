"""Tests for readiness probing."""

from __future__ import annotations

import socket
from unittest.mock import MagicMock, patch

import httpx
import pytest
from pydantic import ValidationError

from netinstall.config import load_config
from netinstall.core.health import (
    HealthProbe,
    build_check,
    command_check,
    container_check,
    database_check,
    file_check,
    http_check,
    tcp_check,
)
from netinstall.errors import HealthCheckError, ProbeTimeout
from netinstall.models import HealthCheckConfig, HealthCheckType, RetryPolicy


class CountingCheck:
    """Fails until the given attempt."""

    def __init__(self, succeed_on: int | None):
        self.succeed_on = succeed_on
        self.calls = 0

    def __call__(self) -> bool:
        self.calls += 1
        return self.succeed_on is not None and self.calls >= self.succeed_on


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def probe(sleeps):
    return HealthProbe(sleep=sleeps.append)


class TestHealthProbe:
    """Tests for HealthProbe.wait_until."""

    def test_ready_on_third_attempt(self, probe, sleeps):
        check = CountingCheck(succeed_on=3)
        result = probe.wait_until(check, RetryPolicy(max_attempts=5, wait_interval=2), "db")

        assert result.attempts == 3
        assert check.calls == 3
        assert sleeps == [2, 2]

    def test_ready_immediately(self, probe, sleeps):
        check = CountingCheck(succeed_on=1)
        result = probe.wait_until(check, RetryPolicy(max_attempts=5, wait_interval=1))

        assert result.attempts == 1
        assert sleeps == []

    def test_timeout(self, probe, sleeps):
        check = CountingCheck(succeed_on=None)
        with pytest.raises(ProbeTimeout) as exc:
            probe.wait_until(check, RetryPolicy(max_attempts=4, wait_interval=0.5), "redis")

        assert check.calls == 4
        assert sleeps == [0.5, 0.5, 0.5]
        assert exc.value.attempts == 4
        assert exc.value.kind == "Timeout"

    def test_single_attempt_never_sleeps(self, probe, sleeps):
        with pytest.raises(ProbeTimeout):
            probe.wait_until(CountingCheck(None), RetryPolicy(max_attempts=1, wait_interval=10))
        assert sleeps == []

    def test_fatal_check_error_escapes(self, probe):
        def check():
            raise HealthCheckError("malformed target")

        with pytest.raises(HealthCheckError):
            probe.wait_until(check, RetryPolicy(max_attempts=3, wait_interval=0))

    def test_policy_requires_an_attempt(self):
        with pytest.raises(ValidationError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValidationError):
            RetryPolicy(max_attempts=1, wait_interval=-1)


class TestChecks:
    """Tests for the check factories."""

    def test_http_check_ready(self):
        with patch("netinstall.core.health.httpx.get") as mock_get:
            mock_get.return_value = MagicMock(status_code=200)
            assert http_check("http://localhost:9090/-/healthy")()

    def test_http_check_server_error_not_ready(self):
        with patch("netinstall.core.health.httpx.get") as mock_get:
            mock_get.return_value = MagicMock(status_code=503)
            assert not http_check("http://localhost:9090/-/healthy")()

    def test_http_check_connection_refused_not_ready(self):
        with patch("netinstall.core.health.httpx.get", side_effect=httpx.ConnectError("refused")):
            assert not http_check("http://localhost:3001/api/health")()

    @pytest.mark.parametrize("url", ["", "localhost:3001", "ftp://host/x"])
    def test_http_check_malformed(self, url):
        with pytest.raises(HealthCheckError):
            http_check(url)

    def test_container_check(self):
        output = MagicMock(returncode=0, stdout="nettools-redis\nnettools-vault\n")
        with patch("netinstall.core.health.subprocess.run", return_value=output):
            assert container_check("nettools-redis")()
            assert not container_check("nettools-grafana")()

    def test_container_check_without_docker(self):
        with patch("netinstall.core.health.subprocess.run", side_effect=FileNotFoundError("docker")):
            assert not container_check("nettools-redis")()

    def test_database_check_runs_pg_isready(self):
        with patch("netinstall.core.health.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            assert database_check("nettools-timescaledb", port=5432, user="nettools", database="nettools")()
            argv = mock_run.call_args[0][0]
            assert argv[:4] == ["docker", "exec", "-i", "nettools-timescaledb"]
            assert "pg_isready" in argv

            mock_run.return_value = MagicMock(returncode=2)
            assert not database_check("nettools-timescaledb")()

    def test_tcp_check(self):
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        port = server.getsockname()[1]
        try:
            assert tcp_check("127.0.0.1", port)()
        finally:
            server.close()
        assert not tcp_check("127.0.0.1", port, timeout=0.5)()

    @pytest.mark.parametrize("port", [0, 70000, "abc"])
    def test_tcp_check_bad_port(self, port):
        with pytest.raises(HealthCheckError):
            tcp_check("localhost", port)

    def test_file_check(self, tmp_path):
        target = tmp_path / "ready"
        check = file_check(target)
        assert not check()
        target.touch()
        assert check()

    def test_command_check(self):
        assert command_check("true")()
        assert not command_check("exit 3")()
        with pytest.raises(HealthCheckError):
            command_check("  ")


class TestBuildCheck:
    """Tests for building checks from component declarations."""

    def test_interpolates_configuration(self, tmp_path):
        config = load_config({"READY_DIR": str(tmp_path), "HEALTH_MAX_ATTEMPTS": 7, "HEALTH_WAIT_SECONDS": 1})
        check_config = HealthCheckConfig(type=HealthCheckType.FILE, path="${READY_DIR}/ok")

        readiness = build_check(check_config, config)
        assert readiness.policy == RetryPolicy(max_attempts=7, wait_interval=1)
        assert readiness.name == f"file {tmp_path}/ok"
        assert not readiness.check()
        (tmp_path / "ok").touch()
        assert readiness.check()

    def test_per_check_policy(self):
        config = load_config()
        check_config = HealthCheckConfig(type=HealthCheckType.COMMAND, command="true", max_attempts=2, wait_seconds=0)
        assert build_check(check_config, config).policy == RetryPolicy(max_attempts=2, wait_interval=0)

    def test_http_url_from_ports(self):
        config = load_config()
        check_config = HealthCheckConfig(type=HealthCheckType.HTTP, url="http://localhost:${GRAFANA_PORT}/api/health")
        with patch("netinstall.core.health.httpx.get") as mock_get:
            mock_get.return_value = MagicMock(status_code=200)
            assert build_check(check_config, config).check()
            assert mock_get.call_args[0][0] == "http://localhost:3001/api/health"

    def test_unresolved_port_is_malformed(self):
        config = load_config()
        check_config = HealthCheckConfig(type=HealthCheckType.TCP, host="localhost", port="${NO_SUCH_PORT}")
        with pytest.raises(HealthCheckError):
            build_check(check_config, config)
