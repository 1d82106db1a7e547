"""Host checks: resource requirements, system summary, post-install verification."""

from __future__ import annotations

import getpass
import platform
import socket
from pathlib import Path
from typing import TYPE_CHECKING

import psutil
from loguru import logger

from netinstall.core.health import build_check
from netinstall.errors import HealthCheckError

if TYPE_CHECKING:
    from netinstall.config import Configuration
    from netinstall.core.registry import ComponentRegistry
    from netinstall.core.state import StateStore


def _existing_parent(path: Path) -> Path:
    path = Path(path)
    while not path.exists() and path != path.parent:
        path = path.parent
    return path


def check_system_resources(
    path: Path,
    min_ram_mb: int = 4096,
    min_disk_mb: int = 10240,
    min_cpu: int = 2,
) -> list[str]:
    """Check RAM, free disk at ``path`` and CPU cores.

    Shortfalls are logged as warnings and returned; they never stop a run.
    """
    warnings: list[str] = []
    logger.info("Checking system resources")

    total_ram = psutil.virtual_memory().total // (1024 * 1024)
    if total_ram < min_ram_mb:
        warnings.append(f"System has less than {min_ram_mb}MB RAM ({total_ram}MB). This may affect performance.")
    else:
        logger.info(f"RAM check passed: {total_ram}MB available")

    free_disk = psutil.disk_usage(str(_existing_parent(path))).free // (1024 * 1024)
    if free_disk < min_disk_mb:
        warnings.append(
            f"Less than {min_disk_mb}MB free disk space on installation directory ({free_disk}MB). "
            "This may cause issues."
        )
    else:
        logger.info(f"Disk space check passed: {free_disk}MB available")

    cpu_cores = psutil.cpu_count() or 1
    if cpu_cores < min_cpu:
        warnings.append(f"System has less than {min_cpu} CPU cores ({cpu_cores}). This may affect performance.")
    else:
        logger.info(f"CPU check passed: {cpu_cores} cores available")

    for warning in warnings:
        logger.warning(warning)
    return warnings


def system_summary(path: Path) -> dict[str, str]:
    """Describe the host the platform is being installed on."""
    memory = psutil.virtual_memory().total / (1024 ** 3)
    free_disk = psutil.disk_usage(str(_existing_parent(path))).free / (1024 ** 3)
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"

    return {
        "OS": f"{platform.system()} {platform.release()}",
        "Kernel": platform.version(),
        "CPU": f"{psutil.cpu_count() or 1} cores",
        "RAM": f"{memory:.1f}G",
        "Disk": f"{free_disk:.1f}G free",
        "Hostname": socket.gethostname(),
        "Current User": user,
    }


def verify_installation(
    registry: "ComponentRegistry",
    store: "StateStore",
    config: "Configuration",
) -> dict[str, list[str]]:
    """Run each installed component's verification checks once.

    Returns:
        Component ID -> names of checks that failed. Empty when all passed.
    """
    failures: dict[str, list[str]] = {}
    logger.info("Verifying NetTools Platform installation")

    for component in registry:
        if not component.verify or not store.is_installed(component.id):
            continue

        logger.info(f"Verifying {component.id}...")
        failed: list[str] = []
        for check_config in component.verify:
            try:
                readiness = build_check(check_config, config)
            except HealthCheckError as e:
                failed.append(f"{check_config.display_name()}: {e}")
                continue
            if not readiness.check():
                failed.append(readiness.name)

        if failed:
            failures[component.id] = failed
            logger.error(f"{component.id} verification failed: {', '.join(failed)}")
        else:
            logger.success(f"{component.id} verified")

    if failures:
        logger.error(f"{len(failures)} component(s) failed verification")
    else:
        logger.success("All installed components verified successfully")
    return failures
