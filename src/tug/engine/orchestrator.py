"""Push, pull and repush sequencing.

Each verb is one or more graph runs:
- push:   CREATE
- pull:   DELETE
- repush: DELETE, then CREATE (skipped if the DELETE run failed)

Every run rebuilds its graph from the manifest, because a run consumes
the graph it executes.
"""

import logging
from typing import Iterable, Optional

from tug.actions import ControlPlane
from tug.config import DEFAULT_CONCURRENCY, POLL_INTERVAL, SHUTDOWN_GRACE_SECONDS
from tug.engine.executor import GraphExecutor
from tug.engine.graph import DeploymentGraph, Direction, build_graph
from tug.engine.state import ExecutionState
from tug.manifest import Manifest

logger = logging.getLogger(__name__)

VERBS: dict[str, list[Direction]] = {
    'push': [Direction.CREATE],
    'pull': [Direction.DELETE],
    'repush': [Direction.DELETE, Direction.CREATE],
}


class Tug:
    """Applies a manifest to the cluster.

    Attributes:
        manifest: Validated manifest
        client: Control plane the actions drive
        parallelism: Maximum concurrent actions per run
        resources: Deployment names to restrict to (None/empty = all)
        failure: Error that failed the last run, if any
    """

    def __init__(
        self,
        manifest: Manifest,
        client: ControlPlane,
        parallelism: int = DEFAULT_CONCURRENCY,
        resources: Optional[Iterable[str]] = None,
        poll_interval: float = POLL_INTERVAL,
        shutdown_grace: float = SHUTDOWN_GRACE_SECONDS,
    ):
        if parallelism < 1:
            raise ValueError(f"parallelism must be >= 1, got {parallelism}")
        self.manifest = manifest
        self.client = client
        self.parallelism = parallelism
        self.resources = list(resources or [])
        self.poll_interval = poll_interval
        self.shutdown_grace = shutdown_grace
        self.failure: Optional[BaseException] = None

    def plan(self, direction: Direction) -> DeploymentGraph:
        """Build the graph a run in direction would execute.

        Raises:
            ConfigError: If a definition is invalid or a resource is unknown
        """
        return build_graph(
            self.manifest,
            self.client,
            direction,
            targets=self.resources,
            poll_interval=self.poll_interval,
        )

    def preview(self, verb: str) -> list[tuple[Direction, list[list[str]]]]:
        """Waves each run of verb would execute, without touching the cluster."""
        return [(d, self.plan(d).waves(d)) for d in VERBS[verb]]

    def push(self) -> tuple[bool, list[ExecutionState]]:
        return self.run('push')

    def pull(self) -> tuple[bool, list[ExecutionState]]:
        return self.run('pull')

    def repush(self) -> tuple[bool, list[ExecutionState]]:
        return self.run('repush')

    def run(self, verb: str) -> tuple[bool, list[ExecutionState]]:
        """Execute verb's runs in order, stopping at the first failed run.

        Returns:
            Tuple of (success, states of the runs that executed)

        Raises:
            ConfigError: If the graph for a run cannot be built
            KeyError: If verb is unknown
        """
        directions = VERBS[verb]
        states: list[ExecutionState] = []
        self.failure = None

        for direction in directions:
            graph = self.plan(direction)
            executor = GraphExecutor(
                graph,
                direction,
                parallelism=self.parallelism,
                shutdown_grace=self.shutdown_grace,
            )
            success, state = executor.run()
            states.append(state)
            if not success:
                self.failure = executor.failure
                logger.error(f"{verb} failed during {direction.value}: {self.failure}")
                logger.warning(
                    "The cluster may be left partially applied and need manual intervention"
                )
                return False, states

        logger.info(f"{verb} complete")
        return True, states
