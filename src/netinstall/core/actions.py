"""Component actions.

An action is any callable taking an ActionContext. It returns on success and
raises on failure; the sequencer reports any exception as an ActionFailure.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Sequence

from loguru import logger

from netinstall.core.health import HealthProbe, build_check
from netinstall.errors import ActionFailure, HealthCheckError, ProbeTimeout

if TYPE_CHECKING:
    from netinstall.config import Configuration
    from netinstall.models import HealthCheckConfig


@dataclass
class ActionContext:
    """What every action gets handed: configuration, probe, script location."""

    config: "Configuration"
    probe: HealthProbe
    scripts_dir: Path


class ScriptAction:
    """Run an installer script with bash, configuration exported to its env."""

    def __init__(self, script: str, interpreter: str = "bash"):
        self.script = script
        self.interpreter = interpreter

    def __repr__(self) -> str:
        return f"ScriptAction({self.script!r})"

    def __call__(self, context: ActionContext) -> None:
        path = Path(context.scripts_dir) / self.script
        if not path.is_file():
            raise ActionFailure(f"Component script not found: {path}")

        env = os.environ.copy()
        env.update(context.config.as_env())

        logger.info(f"Running {path}")
        try:
            proc = subprocess.Popen(
                [self.interpreter, str(path)],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                env=env,
                cwd=path.parent,
            )
        except OSError as e:
            raise ActionFailure(f"Failed to start {path}: {e}", cause=e) from e

        assert proc.stdout is not None
        try:
            with proc.stdout:
                for line in proc.stdout:
                    logger.info(f"[{path.stem}] {line.rstrip()}")
        finally:
            exit_code = proc.wait()

        if exit_code != 0:
            raise ActionFailure(f"Script {self.script} exited with code {exit_code}")


class HealthGatedAction:
    """Run an action, then wait for each declared service to become ready."""

    def __init__(
        self,
        inner: Callable[[ActionContext], object] | None,
        checks: Sequence["HealthCheckConfig"] = (),
    ):
        self.inner = inner
        self.checks = list(checks)

    def __repr__(self) -> str:
        return f"HealthGatedAction({self.inner!r}, {len(self.checks)} checks)"

    def __call__(self, context: ActionContext) -> None:
        if self.inner is not None:
            self.inner(context)

        for check_config in self.checks:
            try:
                readiness = build_check(check_config, context.config)
                context.probe.wait_for(readiness)
            except (ProbeTimeout, HealthCheckError) as e:
                raise ActionFailure(str(e), cause=e) from e
