"""Component registry and dependency resolution for NetInstall."""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable, Iterator

from loguru import logger

from netinstall.errors import (
    CyclicDependency,
    DuplicateIdentifier,
    UnknownComponent,
    UnknownDependency,
)

if TYPE_CHECKING:
    from netinstall.core.actions import ActionContext
    from netinstall.models import HealthCheckConfig


Action = Callable[["ActionContext"], object]


@dataclass
class Component:
    """An installable unit.

    The action is opaque: it is called with an ActionContext and either
    returns (success) or raises (failure).
    """

    id: str
    action: Action
    depends_on: list[str] = field(default_factory=list)
    marker: str | None = None
    optional: bool = False
    description: str = ""
    verify: list["HealthCheckConfig"] = field(default_factory=list)

    def get_marker(self) -> str:
        return self.marker or f".{self.id}_installed"


class ComponentRegistry:
    """Static table of components, kept in registration order.

    Dependencies must be registered before their dependents, so the graph
    cannot contain a cycle through ``register``.
    """

    def __init__(self) -> None:
        self._components: dict[str, Component] = {}
        self._order: dict[str, int] = {}

    def register(self, component: Component) -> Component:
        """Register a component.

        Raises:
            DuplicateIdentifier: the ID is already registered.
            UnknownDependency: a dependency is not registered yet.
        """
        if component.id in self._components:
            raise DuplicateIdentifier(component.id)

        for dep in component.depends_on:
            if dep not in self._components:
                raise UnknownDependency(component.id, dep)

        # Drop repeated dependency entries, keep first occurrence
        component.depends_on = list(dict.fromkeys(component.depends_on))

        self._order[component.id] = len(self._order)
        self._components[component.id] = component
        logger.debug(
            f"Registered component '{component.id}'"
            + (f" (depends on {', '.join(component.depends_on)})" if component.depends_on else "")
        )
        return component

    def get(self, component_id: str) -> Component:
        """Get a component by ID."""
        try:
            return self._components[component_id]
        except KeyError:
            raise UnknownComponent(component_id) from None

    def __contains__(self, component_id: object) -> bool:
        return component_id in self._components

    def __iter__(self) -> Iterator[Component]:
        return iter(self._components.values())

    def __len__(self) -> int:
        return len(self._components)

    def ids(self) -> list[str]:
        """Get all component IDs in registration order."""
        return list(self._components)

    def default_ids(self) -> list[str]:
        """Get the IDs installed when nothing else is requested."""
        return [c.id for c in self._components.values() if not c.optional]

    def dependents_of(self, component_id: str) -> list[str]:
        """Get the components that directly depend on a component."""
        self.get(component_id)
        return [c.id for c in self._components.values() if component_id in c.depends_on]

    def resolve(self, requested: Iterable[str]) -> list[str]:
        """Build an execution plan for the requested components.

        The plan holds the transitive closure of dependencies, each exactly
        once, with every component after all of its dependencies. When several
        components are ready at once, registration order decides.

        Raises:
            UnknownComponent: a requested ID is not registered.
            CyclicDependency: the dependency graph has a cycle.
        """
        closure: set[str] = set()
        stack: list[str] = []
        for component_id in requested:
            if component_id not in self._components:
                raise UnknownComponent(component_id)
            stack.append(component_id)

        while stack:
            component_id = stack.pop()
            if component_id in closure:
                continue
            closure.add(component_id)
            for dep in self.get(component_id).depends_on:
                if dep not in closure:
                    stack.append(dep)

        # Topological sort (Kahn) keyed on registration order
        in_degree = {cid: 0 for cid in closure}
        dependents: dict[str, list[str]] = {cid: [] for cid in closure}
        for cid in closure:
            for dep in self._components[cid].depends_on:
                in_degree[cid] += 1
                dependents[dep].append(cid)

        ready = [(self._order[cid], cid) for cid, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)
        plan: list[str] = []

        while ready:
            _, cid = heapq.heappop(ready)
            plan.append(cid)
            for other in dependents[cid]:
                in_degree[other] -= 1
                if in_degree[other] == 0:
                    heapq.heappush(ready, (self._order[other], other))

        if len(plan) != len(closure):
            raise CyclicDependency(self._find_cycle(closure - set(plan)))

        logger.debug(f"Resolved plan: {' -> '.join(plan) if plan else '(empty)'}")
        return plan

    def _find_cycle(self, candidates: set[str]) -> list[str]:
        """Find one dependency cycle among the given components."""
        WHITE, GRAY, BLACK = 0, 1, 2
        color = {cid: WHITE for cid in candidates}
        path: list[str] = []

        def dfs(node: str) -> list[str] | None:
            color[node] = GRAY
            path.append(node)

            for neighbor in self._components[node].depends_on:
                if neighbor not in color:
                    continue
                if color[neighbor] == GRAY:
                    return path[path.index(neighbor):] + [neighbor]
                if color[neighbor] == WHITE:
                    found = dfs(neighbor)
                    if found:
                        return found

            color[node] = BLACK
            path.pop()
            return None

        for cid in sorted(candidates, key=self._order.__getitem__):
            if color[cid] == WHITE:
                cycle = dfs(cid)
                if cycle:
                    return cycle
        return sorted(candidates)
