"""Tests for tug.engine.executor module.

Uses recording fake actions to test execution ordering, the parallelism
bound, first-failure propagation and shutdown without a cluster.
"""

import logging
import sys
import threading
import time
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from tug.actions import ResourceActionCancelled, ResourceActionError
from tug.engine.executor import FirstFailure, GraphExecutor
from tug.engine.graph import DeploymentGraph, Direction
from tug.manifest import Deployment, ResourceKind


class Recorder:
    """Collects start/end events and tracks concurrency."""

    def __init__(self):
        self.lock = threading.Lock()
        self.events: list[tuple[str, str]] = []
        self.active = 0
        self.max_active = 0

    def started(self) -> list[str]:
        return [name for event, name in self.events if event == 'start']

    def index(self, event: str, name: str) -> int:
        return self.events.index((event, name))


class FakeAction:
    """Action that records its lifecycle instead of touching a cluster."""
    kind = ResourceKind.CONFIG_MAP

    def __init__(self, name, recorder, duration=0.0, error=None, wait_for_cancel=False):
        self.name = name
        self.recorder = recorder
        self.duration = duration
        self.error = error
        self.wait_for_cancel = wait_for_cancel

    def make_ready(self, cancel_event=None):
        self._run(cancel_event)

    def delete(self, cancel_event=None):
        self._run(cancel_event)

    def _run(self, cancel_event):
        rec = self.recorder
        with rec.lock:
            rec.events.append(('start', self.name))
            rec.active += 1
            rec.max_active = max(rec.max_active, rec.active)
        try:
            if self.wait_for_cancel and cancel_event.wait(10):
                raise ResourceActionCancelled(f"{self.name} cancelled")
            time.sleep(self.duration)
            if self.error is not None:
                raise self.error
        finally:
            with rec.lock:
                rec.active -= 1
                rec.events.append(('end', self.name))


def _make_graph(edges, recorder, behaviors=None):
    """Build a graph from {name: [dependencies]} with FakeActions."""
    behaviors = behaviors or {}
    deployments = [
        Deployment(name=name, location=f'{name}.yaml', dependencies=frozenset(deps))
        for name, deps in edges.items()
    ]
    return DeploymentGraph(
        deployments,
        lambda d: FakeAction(d.name, recorder, **behaviors.get(d.name, {})),
    )


SHOP = {
    'ns': [],
    'cfg': ['ns'],
    'db': ['cfg'],
    'svc': ['db'],
    'web': ['svc', 'cfg'],
    'cron': ['ns'],
}


def _assert_order(recorder, edges, direction):
    """Every blocking vertex ended before the vertex it blocks started."""
    for name, deps in edges.items():
        for dep in deps:
            first, then = (dep, name) if direction == Direction.CREATE else (name, dep)
            assert recorder.index('end', first) < recorder.index('start', then), \
                f"{first} should finish before {then} starts"


class TestFirstFailure:
    """Tests for the set-once failure cell."""

    def test_keeps_first_error(self):
        cell = FirstFailure()
        first, second = RuntimeError('first'), RuntimeError('second')
        assert cell.record(first) is True
        assert cell.record(second) is False
        assert cell.error is first


class TestOrdering:
    """Tests for dependency-ordered execution."""

    def test_create_runs_dependencies_first(self):
        recorder = Recorder()
        graph = _make_graph(SHOP, recorder, {n: {'duration': 0.01} for n in SHOP})
        success, state = GraphExecutor(graph, Direction.CREATE, parallelism=4).run()

        assert success is True
        assert sorted(recorder.started()) == sorted(SHOP)
        _assert_order(recorder, SHOP, Direction.CREATE)
        assert all(v.status == 'completed' for v in state.vertices.values())

    def test_delete_runs_dependents_first(self):
        recorder = Recorder()
        graph = _make_graph(SHOP, recorder, {n: {'duration': 0.01} for n in SHOP})
        success, _ = GraphExecutor(graph, Direction.DELETE, parallelism=4).run()

        assert success is True
        _assert_order(recorder, SHOP, Direction.DELETE)

    def test_each_vertex_runs_once(self):
        """Diamond dependencies must not schedule the shared vertex twice."""
        edges = {'base': [], 'left': ['base'], 'right': ['base'], 'top': ['left', 'right']}
        recorder = Recorder()
        graph = _make_graph(edges, recorder, {n: {'duration': 0.01} for n in edges})
        success, _ = GraphExecutor(graph, Direction.CREATE, parallelism=4).run()

        assert success is True
        assert sorted(recorder.started()) == sorted(edges)

    def test_signals_resolve_on_success(self):
        recorder = Recorder()
        graph = _make_graph({'a': [], 'b': ['a']}, recorder)
        vertices = graph.vertices
        GraphExecutor(graph, Direction.CREATE).run()

        assert [v.signal.result() for v in vertices] == ['a', 'b']

    def test_completed_vertices_leave_graph(self):
        recorder = Recorder()
        graph = _make_graph({'a': [], 'b': ['a']}, recorder)
        GraphExecutor(graph, Direction.CREATE).run()
        assert 'a' not in graph

    def test_empty_graph_succeeds(self):
        graph = DeploymentGraph([], lambda d: None)
        success, state = GraphExecutor(graph, Direction.CREATE).run()
        assert success is True
        assert state.vertices == {}

    def test_subset_runs_only_closure(self):
        recorder = Recorder()
        graph = _make_graph(SHOP, recorder)
        graph.restrict(['db'], Direction.CREATE)
        success, _ = GraphExecutor(graph, Direction.CREATE).run()

        assert success is True
        assert sorted(recorder.started()) == ['cfg', 'db', 'ns']

    def test_invalid_parallelism_raises(self):
        graph = DeploymentGraph([], lambda d: None)
        with pytest.raises(ValueError):
            GraphExecutor(graph, Direction.CREATE, parallelism=0)


class TestParallelism:
    """Tests for the concurrency bound."""

    def test_never_exceeds_parallelism(self):
        edges = {f'r{i}': [] for i in range(10)}
        recorder = Recorder()
        graph = _make_graph(edges, recorder, {n: {'duration': 0.05} for n in edges})
        success, _ = GraphExecutor(graph, Direction.CREATE, parallelism=3).run()

        assert success is True
        assert 1 < recorder.max_active <= 3

    def test_parallelism_one_is_sequential(self):
        edges = {f'r{i}': [] for i in range(4)}
        recorder = Recorder()
        graph = _make_graph(edges, recorder, {n: {'duration': 0.01} for n in edges})
        GraphExecutor(graph, Direction.CREATE, parallelism=1).run()
        assert recorder.max_active == 1


class TestFailure:
    """Tests for first-failure propagation."""

    def test_dependents_of_failed_vertex_never_start(self):
        recorder = Recorder()
        error = ResourceActionError("Deployment 'a' was not ready in 1 seconds")
        graph = _make_graph({'a': [], 'b': ['a'], 'c': ['b']}, recorder, {'a': {'error': error}})
        executor = GraphExecutor(graph, Direction.CREATE)
        success, state = executor.run()

        assert success is False
        assert executor.failure is error
        assert recorder.started() == ['a']
        assert state.get_vertex('a').status == 'failed'
        assert state.get_vertex('a').error == str(error)
        assert state.get_vertex('b').status == 'skipped'
        assert state.get_vertex('c').status == 'skipped'
        assert state.error == str(error)

    def test_failed_vertex_signal_carries_error(self):
        recorder = Recorder()
        error = ResourceActionError('boom')
        graph = _make_graph({'a': [], 'b': ['a']}, recorder, {'a': {'error': error}})
        vertices = {v.name: v for v in graph.vertices}
        GraphExecutor(graph, Direction.CREATE).run()

        assert vertices['a'].signal.exception() is error
        assert vertices['b'].signal.cancelled()

    def test_queued_work_does_not_start_after_failure(self):
        edges = {'a': [], 'b': [], 'c': [], 'd': []}
        recorder = Recorder()
        graph = _make_graph(edges, recorder, {'a': {'error': ResourceActionError('boom')}})
        success, _ = GraphExecutor(graph, Direction.CREATE, parallelism=1).run()

        assert success is False
        assert recorder.started() == ['a']

    def test_in_flight_waits_are_cancelled(self):
        recorder = Recorder()
        graph = _make_graph(
            {'slow': [], 'bad': []},
            recorder,
            {'slow': {'wait_for_cancel': True},
             'bad': {'duration': 0.05, 'error': ResourceActionError('boom')}},
        )
        executor = GraphExecutor(graph, Direction.CREATE, parallelism=2)

        start = time.monotonic()
        success, state = executor.run()

        assert time.monotonic() - start < 5
        assert success is False
        assert str(executor.failure) == 'boom'
        assert state.get_vertex('slow').status == 'cancelled'
        assert state.get_vertex('bad').status == 'failed'

    def test_unexpected_exception_fails_run(self):
        recorder = Recorder()
        graph = _make_graph({'a': []}, recorder, {'a': {'error': KeyError('status')}})
        executor = GraphExecutor(graph, Direction.DELETE)
        success, _ = executor.run()

        assert success is False
        assert isinstance(executor.failure, KeyError)

    def test_stragglers_are_abandoned_after_grace(self, caplog):
        recorder = Recorder()
        graph = _make_graph(
            {'stuck': [], 'bad': []},
            recorder,
            {'stuck': {'duration': 0.5},
             'bad': {'error': ResourceActionError('boom')}},
        )
        executor = GraphExecutor(graph, Direction.CREATE, parallelism=2, shutdown_grace=0.05)

        with caplog.at_level(logging.WARNING):
            start = time.monotonic()
            success, _ = executor.run()
            elapsed = time.monotonic() - start

        assert success is False
        assert elapsed < 0.5
        assert 'stuck' in caplog.text
        assert 'grace period' in caplog.text
