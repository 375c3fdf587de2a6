"""Dependency graph for tug runs.

Builds a DAG of deployment vertices from the manifest and answers the
questions the executor asks of it: which vertices may start now (the
frontier), and what remains after a vertex completes.

An edge A -> B means "A depends on B":
- CREATE walks dependencies first (B before A)
- DELETE walks dependents first (A before B)
"""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional

from tug.actions import ControlPlane, ResourceAction, build_action
from tug.config import POLL_INTERVAL, ConfigError
from tug.definitions import load_definition
from tug.manifest import Deployment, Manifest

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    """Traversal direction of a run."""
    CREATE = 'create'
    DELETE = 'delete'


@dataclass(eq=False)
class DeploymentVertex:
    """A deployment in the graph, paired with the action that drives it.

    Attributes:
        deployment: The manifest descriptor
        action: Per-kind action for the deployment's resource
        signal: Completion signal, set once when the action succeeds or fails
    """
    deployment: Deployment
    action: ResourceAction
    signal: Future = field(default_factory=Future, repr=False)

    @property
    def name(self) -> str:
        return self.deployment.name

    @property
    def kind(self) -> str:
        return self.action.kind.value

    def __eq__(self, other) -> bool:
        if not isinstance(other, DeploymentVertex):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"DeploymentVertex({self.name}, kind={self.kind})"


class DeploymentGraph:
    """Mutable dependency graph of deployment vertices.

    Vertex order follows manifest order, so frontier and wave listings are
    stable. After construction the graph only shrinks: restrict() prunes
    vertices outside a target closure and remove() drops completed ones.
    Callers sharing the graph between threads hold `lock` around remove()
    and frontier().
    """

    def __init__(
        self,
        deployments: Iterable[Deployment],
        action_factory: Callable[[Deployment], ResourceAction],
    ):
        """Build the graph.

        Args:
            deployments: Manifest deployments
            action_factory: Builds the action for a deployment

        Raises:
            ConfigError: On duplicate names, unknown dependencies or cycles
        """
        self.lock = threading.Lock()
        self._vertices: dict[str, DeploymentVertex] = {}
        self._dependencies: dict[str, set[str]] = {}
        self._dependents: dict[str, set[str]] = {}

        deployments = list(deployments)
        for deployment in deployments:
            if deployment.name in self._vertices:
                raise ConfigError(f"Duplicate deployment name: '{deployment.name}'")
            self._vertices[deployment.name] = DeploymentVertex(
                deployment=deployment,
                action=action_factory(deployment),
            )
            self._dependencies[deployment.name] = set()
            self._dependents[deployment.name] = set()

        for deployment in deployments:
            for dep in sorted(deployment.dependencies):
                if dep not in self._vertices:
                    raise ConfigError(
                        f"Deployment '{deployment.name}' depends on unknown deployment '{dep}'"
                    )
                self._dependencies[deployment.name].add(dep)
                self._dependents[dep].add(deployment.name)

        placed = {name for wave in self.waves(Direction.CREATE) for name in wave}
        if len(placed) != len(self._vertices):
            stuck = next(n for n in self._vertices if n not in placed)
            raise ConfigError(f"Cycle detected in dependency graph involving '{stuck}'")

    def __len__(self) -> int:
        return len(self._vertices)

    def __contains__(self, name: str) -> bool:
        return name in self._vertices

    @property
    def vertices(self) -> list[DeploymentVertex]:
        """Live vertices in manifest order."""
        return list(self._vertices.values())

    @property
    def names(self) -> list[str]:
        return list(self._vertices)

    def get(self, name: str) -> DeploymentVertex:
        """Get a vertex by name.

        Raises:
            KeyError: If name is not in the graph
        """
        return self._vertices[name]

    def dependencies_of(self, name: str) -> set[str]:
        return set(self._dependencies[name])

    def dependents_of(self, name: str) -> set[str]:
        return set(self._dependents[name])

    def descendants(self, name: str) -> set[str]:
        """Everything name depends on, transitively (excluding name)."""
        return self._closure(name, self._dependencies)

    def ancestors(self, name: str) -> set[str]:
        """Everything that depends on name, transitively (excluding name)."""
        return self._closure(name, self._dependents)

    @staticmethod
    def _closure(name: str, edges: dict[str, set[str]]) -> set[str]:
        seen: set[str] = set()
        stack = list(edges[name])
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(edges[current])
        return seen

    def restrict(self, names: Optional[Iterable[str]], direction: Direction) -> None:
        """Prune the graph to the closure a run over names needs.

        CREATE keeps the targets and everything they depend on. DELETE
        keeps the targets and everything that depends on them. An empty or
        None target list keeps the whole graph.

        Raises:
            ConfigError: If a target name is not in the graph
        """
        targets = list(names or [])
        if not targets:
            return

        unknown = [n for n in targets if n not in self._vertices]
        if unknown:
            raise ConfigError(f"Unknown resource(s): {', '.join(unknown)}")

        keep: set[str] = set(targets)
        for name in targets:
            if direction == Direction.CREATE:
                keep |= self.descendants(name)
            else:
                keep |= self.ancestors(name)

        for name in [n for n in self._vertices if n not in keep]:
            self.remove(name)
        logger.debug(f"Restricted graph to {len(self._vertices)} deployment(s): {self.names}")

    def _blockers(self, direction: Direction) -> dict[str, set[str]]:
        return self._dependencies if direction == Direction.CREATE else self._dependents

    def frontier(self, direction: Direction) -> list[DeploymentVertex]:
        """Vertices with nothing left blocking them in direction."""
        blockers = self._blockers(direction)
        return [v for name, v in self._vertices.items() if not blockers[name]]

    def remove(self, name: str) -> DeploymentVertex:
        """Detach a vertex and all of its edges.

        Raises:
            KeyError: If name is not in the graph
        """
        vertex = self._vertices.pop(name)
        for dep in self._dependencies.pop(name):
            self._dependents[dep].discard(name)
        for dependent in self._dependents.pop(name):
            self._dependencies[dependent].discard(name)
        return vertex

    def waves(self, direction: Direction) -> list[list[str]]:
        """Kahn levels: names that could run together, in order.

        Vertices on a cycle never reach a level, so the total across waves
        falls short of len(self) when the graph is cyclic.
        """
        blockers = self._blockers(direction)
        remaining = {name: len(blockers[name]) for name in self._vertices}
        unblocks = self._dependents if direction == Direction.CREATE else self._dependencies

        result: list[list[str]] = []
        wave = [name for name, count in remaining.items() if count == 0]
        while wave:
            result.append(wave)
            released: list[str] = []
            for name in wave:
                for other in unblocks[name]:
                    remaining[other] -= 1
                    if remaining[other] == 0:
                        released.append(other)
            wave = [name for name in self._vertices if name in released]
        return result


def build_graph(
    manifest: Manifest,
    client: ControlPlane,
    direction: Direction,
    targets: Optional[Iterable[str]] = None,
    poll_interval: float = POLL_INTERVAL,
) -> DeploymentGraph:
    """Load definitions, build actions and the graph for one run.

    Args:
        manifest: Validated manifest
        client: Control plane the actions will drive
        direction: Run direction (decides how targets expand)
        targets: Deployment names to restrict to (None/empty = all)
        poll_interval: Seconds between existence/readiness checks

    Returns:
        DeploymentGraph restricted to the targets' closure

    Raises:
        ConfigError: If a definition is invalid or a target is unknown
    """
    config_root = manifest.config_root

    def action_for(deployment: Deployment) -> ResourceAction:
        path = deployment.resolve_location(config_root)
        definition = load_definition(path, default_namespace=manifest.namespace)
        return build_action(deployment, definition, client, poll_interval=poll_interval)

    graph = DeploymentGraph(manifest.deployments, action_for)
    graph.restrict(targets, direction)
    return graph
