"""NetInstall core components."""

from netinstall.core.actions import ActionContext, HealthGatedAction, ScriptAction
from netinstall.core.health import HealthProbe, ProbeResult, ReadinessCheck
from netinstall.core.registry import Component, ComponentRegistry
from netinstall.core.sequencer import Sequencer
from netinstall.core.state import MarkerFileStore, MemoryStateStore, StateStore

__all__ = [
    "ActionContext",
    "Component",
    "ComponentRegistry",
    "HealthGatedAction",
    "HealthProbe",
    "MarkerFileStore",
    "MemoryStateStore",
    "ProbeResult",
    "ReadinessCheck",
    "ScriptAction",
    "Sequencer",
    "StateStore",
]
