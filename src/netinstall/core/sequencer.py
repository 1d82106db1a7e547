"""Sequential, fail-fast execution of an installation plan."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Sequence

from loguru import logger

from netinstall.errors import ActionFailure, DependencyNotSatisfied, InstallerError
from netinstall.models import ComponentOutcome, InstallStatus, RunResult, StepOutcome

if TYPE_CHECKING:
    from netinstall.core.actions import ActionContext
    from netinstall.core.registry import ComponentRegistry
    from netinstall.core.state import StateStore


EventCallback = Callable[[str, StepOutcome, str], None]


class Sequencer:
    """Runs components one at a time, in plan order.

    - Installed components are skipped unless forced.
    - Every dependency must be installed before a component runs.
    - The first failure aborts the run. Nothing is rolled back; markers of
      components that completed stay, so the next run resumes at the failure.
    """

    def __init__(
        self,
        registry: "ComponentRegistry",
        store: "StateStore",
        context: "ActionContext | None" = None,
        on_event: EventCallback | None = None,
    ):
        """Initialize the sequencer.

        Args:
            registry: Components to run.
            store: Where installed markers are read and written.
            context: Handed to every action.
            on_event: Called with (component_id, outcome, message) per step.
        """
        self._registry = registry
        self._store = store
        self._context = context
        self._on_event = on_event
        self._failed: set[str] = set()

    def status(self, component_id: str) -> InstallStatus:
        """Get the installation state of a component."""
        if component_id in self._failed:
            return InstallStatus.FAILED
        if self._store.is_installed(component_id):
            return InstallStatus.INSTALLED
        return InstallStatus.NOT_STARTED

    def run(self, plan: Sequence[str], force: bool = False, dry_run: bool = False) -> RunResult:
        """Execute a plan.

        Args:
            plan: Component IDs, dependencies first (see ComponentRegistry.resolve).
            force: Re-run components that are already installed.
            dry_run: Report what would run without running anything.

        Returns:
            RunResult. On failure it names the failing component and carries
            the error; components after it are reported as not started.
        """
        self._failed.clear()
        result = RunResult(plan=list(plan))
        planned: set[str] = set()

        for index, component_id in enumerate(plan):
            try:
                component = self._registry.get(component_id)
            except InstallerError as e:
                return self._abort(result, plan, index, component_id, e)

            if self.status(component_id) == InstallStatus.INSTALLED and not force:
                logger.warning(
                    f"Component {component_id} is already installed. Use --force to reinstall."
                )
                self._record(result, component_id, StepOutcome.SKIPPED, "already installed")
                continue

            missing = [
                dep for dep in component.depends_on
                if dep not in planned and self.status(dep) != InstallStatus.INSTALLED
            ]
            if missing:
                error = DependencyNotSatisfied(component_id, missing)
                logger.error(str(error))
                return self._abort(result, plan, index, component_id, error)

            if dry_run:
                planned.add(component_id)
                self._record(result, component_id, StepOutcome.PLANNED, "would install")
                continue

            logger.info(f"===== Installing component: {component_id} =====")
            try:
                component.action(self._context)
            except ActionFailure as e:
                if e.component_id is None:
                    e.component_id = component_id
                self._failed.add(component_id)
                logger.error(f"Failed to install component {component_id}: {e}")
                return self._abort(result, plan, index, component_id, e)
            except Exception as e:
                error = ActionFailure(str(e) or type(e).__name__, component_id=component_id, cause=e)
                self._failed.add(component_id)
                logger.error(f"Failed to install component {component_id}: {error}")
                return self._abort(result, plan, index, component_id, error)

            self._store.mark_installed(component_id)
            logger.success(f"Component {component_id} installed successfully")
            self._record(result, component_id, StepOutcome.INSTALLED)

        return result

    def _record(self, result: RunResult, component_id: str, outcome: StepOutcome, message: str = "") -> None:
        result.outcomes.append(ComponentOutcome(component_id=component_id, outcome=outcome, message=message))
        if self._on_event:
            self._on_event(component_id, outcome, message)

    def _abort(
        self,
        result: RunResult,
        plan: Sequence[str],
        index: int,
        component_id: str,
        error: InstallerError,
    ) -> RunResult:
        self._record(result, component_id, StepOutcome.FAILED, str(error))
        for remaining in plan[index + 1:]:
            self._record(result, remaining, StepOutcome.NOT_STARTED)
        result.failed_component = component_id
        result.error = error
        return result
