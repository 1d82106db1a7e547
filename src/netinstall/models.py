"""Pydantic models for netinstall configuration and run state."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InstallStatus(str, Enum):
    """Installation state of a component.

    Only INSTALLED is persisted (as a marker). FAILED lasts for one run.
    """

    NOT_STARTED = "not_started"
    INSTALLED = "installed"
    FAILED = "failed"


class StepOutcome(str, Enum):
    """What happened to a component during a run."""

    INSTALLED = "installed"
    SKIPPED = "skipped"  # Already installed, not forced
    FAILED = "failed"
    NOT_STARTED = "not_started"  # Run aborted before reaching it
    PLANNED = "planned"  # Dry run


class HealthCheckType(str, Enum):
    """Type of readiness check."""

    HTTP = "http"
    CONTAINER = "container"
    DATABASE = "database"
    TCP = "tcp"
    PROCESS = "process"
    FILE = "file"
    COMMAND = "command"


class RetryPolicy(BaseModel):
    """Attempt budget for a readiness probe."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=30, ge=1)
    wait_interval: float = Field(default=2.0, ge=0)  # seconds


class HealthCheckConfig(BaseModel):
    """Readiness check declared by a component.

    String fields may reference configuration keys with ``${KEY}``; they are
    resolved against the loaded configuration when the check is built.
    """

    type: HealthCheckType
    name: str | None = None

    # HTTP-specific
    url: str | None = None
    timeout: str | float | None = None

    # Container/database-specific
    container: str | None = None
    user: str | None = None
    database: str | None = None

    # TCP-specific
    host: str | None = None
    port: str | int | None = None

    # Process/file/command-specific
    process: str | None = None
    path: str | None = None
    command: str | None = None

    # Per-check override of the configured policy
    max_attempts: int | None = Field(default=None, ge=1)
    wait_seconds: float | None = Field(default=None, ge=0)

    def display_name(self) -> str:
        """Human readable target for log lines."""
        if self.name:
            return self.name
        target = (
            self.url
            or self.container
            or self.process
            or self.path
            or self.command
            or (f"{self.host}:{self.port}" if self.host else None)
        )
        return f"{self.type.value} {target}" if target else self.type.value


class ComponentConfig(BaseModel):
    """Declarative definition of an installable component."""

    model_config = ConfigDict(extra="forbid")

    description: str = ""
    script: str | None = None
    depends_on: list[str] = Field(default_factory=list)
    optional: bool = False  # Not part of the default request set
    marker: str | None = None
    health_checks: list[HealthCheckConfig] = Field(default_factory=list)
    verify: list[HealthCheckConfig] = Field(default_factory=list)

    @field_validator("depends_on", mode="before")
    @classmethod
    def coerce_depends_on(cls, v: Any) -> Any:
        """Allow a single dependency to be written as a plain string."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    def get_marker(self, component_id: str) -> str:
        """Get the marker name for this component."""
        return self.marker or f".{component_id}_installed"


class ComponentOutcome(BaseModel):
    """Outcome of a single component in a run."""

    component_id: str
    outcome: StepOutcome
    message: str = ""


class RunResult(BaseModel):
    """Aggregate result of a sequencer run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    plan: list[str] = Field(default_factory=list)
    outcomes: list[ComponentOutcome] = Field(default_factory=list)
    failed_component: str | None = None
    error: Any = None  # InstallerError when the run failed

    @property
    def ok(self) -> bool:
        return self.error is None

    def outcome_of(self, component_id: str) -> StepOutcome | None:
        """Get the outcome recorded for a component."""
        for outcome in self.outcomes:
            if outcome.component_id == component_id:
                return outcome.outcome
        return None

    def ids_with(self, outcome: StepOutcome) -> list[str]:
        """Get the component IDs that ended with a given outcome."""
        return [o.component_id for o in self.outcomes if o.outcome == outcome]

    def raise_for_failure(self) -> None:
        """Raise the recorded error, if any."""
        if self.error is not None:
            raise self.error
