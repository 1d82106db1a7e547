"""Readiness probing for services started by component actions."""

from __future__ import annotations

import shlex
import socket
import subprocess
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable, NamedTuple

import httpx
import psutil
from loguru import logger

from netinstall.errors import HealthCheckError, ProbeTimeout
from netinstall.models import HealthCheckConfig, HealthCheckType, RetryPolicy

if TYPE_CHECKING:
    from netinstall.config import Configuration


Check = Callable[[], bool]


class ProbeResult(NamedTuple):
    """A check that became ready."""

    name: str
    attempts: int


class ReadinessCheck(NamedTuple):
    """A check built from configuration, with the policy to probe it with."""

    name: str
    check: Check
    policy: RetryPolicy


class HealthProbe:
    """Polls a check on a fixed interval until it passes or the budget runs out.

    Blocks the calling thread while waiting.
    """

    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        self._sleep = sleep

    def wait_until(self, check: Check, policy: RetryPolicy, name: str = "service") -> ProbeResult:
        """Call ``check`` up to ``policy.max_attempts`` times.

        Returns as soon as the check passes. Waits ``policy.wait_interval``
        between attempts, never after the last one.

        Raises:
            ProbeTimeout: the check never passed.
        """
        logger.info(f"Checking readiness of {name}")

        for attempt in range(1, policy.max_attempts + 1):
            if check():
                logger.success(f"{name} is ready")
                return ProbeResult(name, attempt)

            if attempt < policy.max_attempts:
                logger.warning(f"Waiting for {name} to become ready ({attempt}/{policy.max_attempts})")
                self._sleep(policy.wait_interval)

        logger.error(f"{name} not ready after {policy.max_attempts} attempts")
        raise ProbeTimeout(name, policy.max_attempts)

    def wait_for(self, readiness: ReadinessCheck) -> ProbeResult:
        return self.wait_until(readiness.check, readiness.policy, readiness.name)


# ============================================================================
# Check factories
#
# Transient failures (connection refused, container not up yet) return False.
# A malformed target raises HealthCheckError when the check is built.
# ============================================================================


def http_check(url: str, timeout: float = 5.0) -> Check:
    """Ready when the endpoint answers with a status below 500."""
    if not url:
        raise HealthCheckError("HTTP check requires a URL")
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as e:
        raise HealthCheckError(f"Invalid URL '{url}': {e}") from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise HealthCheckError(f"Invalid URL '{url}': expected http(s)://host/...")

    def check() -> bool:
        try:
            response = httpx.get(url, timeout=timeout)
        except httpx.HTTPError as e:
            logger.debug(f"HTTP check {url}: {e}")
            return False
        return response.status_code < 500

    return check


def _run_quiet(argv: list[str], timeout: float = 30.0) -> subprocess.CompletedProcess | None:
    try:
        return subprocess.run(argv, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"Command {argv[0]} failed: {e}")
        return None


def container_check(name: str) -> Check:
    """Ready when a running Docker container's name contains ``name``."""
    if not name:
        raise HealthCheckError("Container check requires a container name")

    def check() -> bool:
        result = _run_quiet(["docker", "ps", "--format", "{{.Names}}"])
        if result is None or result.returncode != 0:
            return False
        return any(name in line for line in result.stdout.splitlines())

    return check


def database_check(
    container: str,
    host: str = "localhost",
    port: int = 5432,
    user: str = "postgres",
    database: str = "postgres",
) -> Check:
    """Ready when ``pg_isready`` succeeds inside the database container."""
    if not container:
        raise HealthCheckError("Database check requires a container name")
    _validate_port(port)
    argv = [
        "docker", "exec", "-i", container,
        "pg_isready", "-h", host, "-p", str(port), "-U", user, "-d", database,
    ]

    def check() -> bool:
        result = _run_quiet(argv)
        return result is not None and result.returncode == 0

    return check


def tcp_check(host: str, port: int, timeout: float = 2.0) -> Check:
    """Ready when a TCP connection can be opened."""
    if not host:
        raise HealthCheckError("TCP check requires a host")
    _validate_port(port)

    def check() -> bool:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            return False

    return check


def process_check(name: str) -> Check:
    """Ready when a process with this name is running."""
    if not name:
        raise HealthCheckError("Process check requires a process name")

    def check() -> bool:
        for proc in psutil.process_iter(["name"]):
            try:
                if proc.info["name"] == name:
                    return True
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return False

    return check


def file_check(path: str | Path) -> Check:
    """Ready when the file exists."""
    if not str(path):
        raise HealthCheckError("File check requires a path")
    target = Path(path).expanduser()

    def check() -> bool:
        return target.exists()

    return check


def command_check(command: str, timeout: float = 30.0) -> Check:
    """Ready when the shell command exits 0."""
    if not command or not shlex.split(command):
        raise HealthCheckError("Command check requires a command")

    def check() -> bool:
        try:
            result = subprocess.run(
                command, shell=True, capture_output=True, timeout=timeout, executable="/bin/bash"
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"Command check '{command}' failed: {e}")
            return False
        return result.returncode == 0

    return check


def _validate_port(port: object) -> int:
    try:
        value = int(port)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise HealthCheckError(f"Invalid port: {port!r}") from None
    if not 0 < value < 65536:
        raise HealthCheckError(f"Port out of range: {value}")
    return value


def build_check(check_config: HealthCheckConfig, config: "Configuration") -> ReadinessCheck:
    """Build a readiness check, resolving ``${KEY}`` references from config."""

    def resolve(value: object, default: str = "") -> str:
        if value is None:
            return default
        return config.interpolate(str(value))

    check_type = check_config.type

    if check_type == HealthCheckType.HTTP:
        try:
            timeout = float(resolve(check_config.timeout) or config.get_float("HTTP_TIMEOUT", 5))
        except ValueError:
            raise HealthCheckError(f"Invalid HTTP timeout: {check_config.timeout!r}") from None
        check = http_check(resolve(check_config.url), timeout=timeout)
    elif check_type == HealthCheckType.CONTAINER:
        check = container_check(resolve(check_config.container))
    elif check_type == HealthCheckType.DATABASE:
        check = database_check(
            resolve(check_config.container),
            host=resolve(check_config.host, "localhost"),
            port=_validate_port(resolve(check_config.port, "5432")),
            user=resolve(check_config.user, "postgres"),
            database=resolve(check_config.database, "postgres"),
        )
    elif check_type == HealthCheckType.TCP:
        check = tcp_check(resolve(check_config.host), _validate_port(resolve(check_config.port)))
    elif check_type == HealthCheckType.PROCESS:
        check = process_check(resolve(check_config.process))
    elif check_type == HealthCheckType.FILE:
        check = file_check(resolve(check_config.path))
    elif check_type == HealthCheckType.COMMAND:
        check = command_check(resolve(check_config.command))
    else:
        raise HealthCheckError(f"Unknown health check type: {check_type}")

    policy = RetryPolicy(
        max_attempts=check_config.max_attempts or config.get_int("HEALTH_MAX_ATTEMPTS", 30),
        wait_interval=(
            check_config.wait_seconds if check_config.wait_seconds is not None
            else config.get_float("HEALTH_WAIT_SECONDS", 2)
        ),
    )
    name = config.interpolate(check_config.display_name())
    return ReadinessCheck(name, check, policy)
