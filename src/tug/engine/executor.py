"""Graph executor for tug runs.

Drives every vertex of a DeploymentGraph through its action with bounded
parallelism. A vertex starts as soon as nothing blocks it in the run's
direction; when it completes it leaves the graph and whatever it was
blocking is scheduled. The first failure stops the run: nothing new is
started, queued work is cancelled and in-flight waits are interrupted.
"""

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Optional

from tug.actions import ResourceActionCancelled
from tug.config import DEFAULT_CONCURRENCY, SHUTDOWN_GRACE_SECONDS
from tug.engine.graph import DeploymentGraph, DeploymentVertex, Direction
from tug.engine.state import ExecutionState

logger = logging.getLogger(__name__)


class FirstFailure:
    """Set-once holder for the error that ends a run."""

    def __init__(self):
        self._lock = threading.Lock()
        self._error: Optional[BaseException] = None

    def record(self, error: BaseException) -> bool:
        """Store error unless one is already stored. Returns True if stored."""
        with self._lock:
            if self._error is not None:
                return False
            self._error = error
            return True

    @property
    def error(self) -> Optional[BaseException]:
        with self._lock:
            return self._error


class GraphExecutor:
    """Runs a graph's actions in dependency order on a worker pool.

    Attributes:
        graph: Graph to execute (consumed: completed vertices are removed)
        direction: CREATE runs make_ready(), DELETE runs delete()
        parallelism: Maximum number of actions running at once
        shutdown_grace: Seconds in-flight actions get after the run ends
        failure: The error that failed the run, once run() returns
    """

    def __init__(
        self,
        graph: DeploymentGraph,
        direction: Direction,
        parallelism: int = DEFAULT_CONCURRENCY,
        shutdown_grace: float = SHUTDOWN_GRACE_SECONDS,
    ):
        if parallelism < 1:
            raise ValueError(f"parallelism must be >= 1, got {parallelism}")
        self.graph = graph
        self.direction = direction
        self.parallelism = parallelism
        self.shutdown_grace = shutdown_grace
        self.cancel_event = threading.Event()
        self._failure = FirstFailure()
        self._pool: Optional[ThreadPoolExecutor] = None
        self._closed = False
        self._scheduled: set[str] = set()
        self._tasks: dict[Future, str] = {}
        self._state = ExecutionState(direction.value)

    @property
    def failure(self) -> Optional[BaseException]:
        return self._failure.error

    def run(self) -> tuple[bool, ExecutionState]:
        """Execute the graph until every vertex is done or one fails.

        Returns:
            Tuple of (success, ExecutionState)
        """
        state = self._state
        vertices = self.graph.vertices
        for vertex in vertices:
            state.add_vertex(vertex.name, vertex.kind)
        state.start()

        if not vertices:
            logger.info(f"Nothing to {self.direction.value}")
            state.finish()
            return True, state

        logger.info(
            f"Starting {self.direction.value} of {len(vertices)} deployment(s) "
            f"(parallelism {self.parallelism})"
        )
        signals = [v.signal for v in vertices]
        self._pool = ThreadPoolExecutor(
            max_workers=self.parallelism,
            thread_name_prefix=f'tug-{self.direction.value}',
        )
        try:
            with self.graph.lock:
                for vertex in self.graph.frontier(self.direction):
                    self._submit(vertex)
            wait(signals, return_when=FIRST_EXCEPTION)
        finally:
            self._shutdown()

        for vertex in vertices:
            if not vertex.signal.done():
                vertex.signal.cancel()

        skipped = state.skip_unfinished()
        if skipped:
            logger.info(f"Not started: {', '.join(skipped)}")

        error = self.failure
        if error is not None:
            state.error = str(error)
        state.finish()
        logger.info(f"Finished {state.summary()}")
        return error is None and state.success, state

    def _submit(self, vertex: DeploymentVertex) -> None:
        """Schedule vertex on the pool. Caller holds graph.lock."""
        if self._closed or vertex.name in self._scheduled:
            return
        self._scheduled.add(vertex.name)
        future = self._pool.submit(self._execute, vertex)
        self._tasks[future] = vertex.name

    def _execute(self, vertex: DeploymentVertex) -> None:
        """Worker body for one vertex."""
        vstate = self._state.get_vertex(vertex.name)

        earlier = self.failure
        if earlier is not None:
            vstate.skip()
            vertex.signal.set_exception(earlier)
            return

        vstate.start()
        try:
            if self.direction == Direction.CREATE:
                vertex.action.make_ready(self.cancel_event)
            else:
                vertex.action.delete(self.cancel_event)
        except Exception as e:  # pylint: disable=broad-exception-caught
            first = self._failure.record(e)
            if isinstance(e, ResourceActionCancelled) and not first:
                vstate.cancel(str(e))
                logger.info(f"[{vertex.name}] cancelled")
            else:
                vstate.fail(str(e))
                logger.error(f"[{vertex.name}] {self.direction.value} failed: {e}")
            vertex.signal.set_exception(e)
            return

        vstate.complete()
        logger.info(f"[{vertex.name}] {self.direction.value} complete")
        vertex.signal.set_result(vertex.name)

        with self.graph.lock:
            if self._closed:
                return
            self.graph.remove(vertex.name)
            for ready in self.graph.frontier(self.direction):
                self._submit(ready)

    def _shutdown(self) -> None:
        """Stop scheduling, cancel queued work and wait out in-flight actions."""
        with self.graph.lock:
            self._closed = True
            tasks = dict(self._tasks)

        self._pool.shutdown(wait=False, cancel_futures=True)
        self.cancel_event.set()

        _, not_done = wait(list(tasks), timeout=self.shutdown_grace)
        for future in not_done:
            logger.warning(
                f"[{tasks[future]}] still running after {self.shutdown_grace}s grace period, abandoning"
            )
