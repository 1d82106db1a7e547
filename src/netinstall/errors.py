"""Error classes for netinstall.

Every failure that ends a run is an ``InstallerError``. The CLI catches them at
its boundary, prints the failing component and the error kind, and exits 1.
Nothing here is retried: retries only happen inside the health probe.
"""

from __future__ import annotations


class InstallerError(Exception):
    """Base exception for netinstall."""

    component_id: str | None = None

    @property
    def kind(self) -> str:
        return type(self).__name__


class ConfigError(InstallerError):
    """Invalid configuration value or document."""

    pass


class ConfigNotFound(ConfigError):
    """An explicitly requested configuration override does not exist."""

    def __init__(self, path: object):
        self.path = path
        super().__init__(f"Configuration file not found: {path}")


class DuplicateIdentifier(InstallerError):
    def __init__(self, component_id: str):
        self.component_id = component_id
        super().__init__(f"Component '{component_id}' is already registered")


class UnknownDependency(InstallerError):
    def __init__(self, component_id: str, dependency: str):
        self.component_id = component_id
        self.dependency = dependency
        super().__init__(
            f"Component '{component_id}' depends on unregistered component '{dependency}'"
        )


class UnknownComponent(InstallerError):
    def __init__(self, component_id: str):
        self.component_id = component_id
        super().__init__(f"Unknown component '{component_id}'")


class CyclicDependency(InstallerError):
    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        self.component_id = cycle[0] if cycle else None
        super().__init__(f"Circular dependency detected: {' -> '.join(cycle)}")


class DependencyNotSatisfied(InstallerError):
    """A component's dependency is not installed when the component is reached."""

    def __init__(self, component_id: str, missing: list[str]):
        self.component_id = component_id
        self.missing = missing
        super().__init__(
            f"Component '{component_id}' depends on {', '.join(missing)}, "
            f"which {'is' if len(missing) == 1 else 'are'} not installed"
        )


class HealthCheckError(InstallerError):
    """A health check target is malformed (not a transient failure)."""

    pass


class ProbeTimeout(InstallerError):
    """A readiness check did not succeed within its attempt budget."""

    kind = "Timeout"

    def __init__(self, name: str, attempts: int):
        self.name = name
        self.attempts = attempts
        super().__init__(f"{name} not ready after {attempts} attempts")


class ActionFailure(InstallerError):
    """A component action failed. The underlying error is kept as ``cause``."""

    def __init__(self, message: str, component_id: str | None = None, cause: BaseException | None = None):
        self.component_id = component_id
        self.cause = cause
        super().__init__(message)

    @property
    def cause_kind(self) -> str | None:
        if self.cause is None:
            return None
        return getattr(self.cause, "kind", type(self.cause).__name__)
