"""Dependency-graph execution engine.

Builds a graph of deployments from the manifest and walks it with a
bounded worker pool, creating dependencies first or deleting dependents
first.
"""

from tug.engine.executor import GraphExecutor
from tug.engine.graph import DeploymentGraph, DeploymentVertex, Direction, build_graph
from tug.engine.orchestrator import VERBS, Tug
from tug.engine.state import ExecutionState, VertexState

__all__ = [
    'VERBS',
    'DeploymentGraph',
    'DeploymentVertex',
    'Direction',
    'ExecutionState',
    'GraphExecutor',
    'Tug',
    'VertexState',
    'build_graph',
]
