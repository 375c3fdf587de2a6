"""Execution state for tug runs.

Tracks per-vertex status (pending, running, completed, failed, cancelled,
skipped) and timing, for log summaries and the --json-output report.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class VertexState:
    """Per-vertex execution state.

    Attributes:
        name: Deployment name
        kind: Resource kind
        status: pending, running, completed, failed, cancelled or skipped
        started_at: Timestamp when the action started
        completed_at: Timestamp when the action finished
        error: Error message if failed
    """
    name: str
    kind: Optional[str] = None
    status: str = 'pending'
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    error: Optional[str] = None

    def start(self) -> None:
        self.status = 'running'
        self.started_at = time.time()

    def complete(self) -> None:
        self.status = 'completed'
        self.completed_at = time.time()

    def fail(self, error: str) -> None:
        self.status = 'failed'
        self.completed_at = time.time()
        self.error = error

    def cancel(self, error: str) -> None:
        self.status = 'cancelled'
        self.completed_at = time.time()
        self.error = error

    def skip(self) -> None:
        self.status = 'skipped'

    @property
    def finished(self) -> bool:
        return self.status in ('completed', 'failed', 'cancelled', 'skipped')

    @property
    def duration(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return self.completed_at - self.started_at
        return None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'name': self.name,
            'status': self.status,
        }
        if self.kind is not None:
            d['kind'] = self.kind
        if self.duration is not None:
            d['duration'] = round(self.duration, 3)
        if self.error is not None:
            d['error'] = self.error
        return d


class ExecutionState:
    """State of one run (one direction over one graph)."""

    def __init__(self, direction: str):
        self.direction = direction
        self._vertices: dict[str, VertexState] = {}
        self.started_at: Optional[float] = None
        self.completed_at: Optional[float] = None
        self.error: Optional[str] = None

    def add_vertex(self, name: str, kind: Optional[str] = None) -> VertexState:
        """Register a vertex for tracking."""
        state = VertexState(name=name, kind=kind)
        self._vertices[name] = state
        return state

    def get_vertex(self, name: str) -> VertexState:
        """Get vertex state by name.

        Raises:
            KeyError: If vertex not registered
        """
        return self._vertices[name]

    @property
    def vertices(self) -> dict[str, VertexState]:
        return dict(self._vertices)

    def start(self) -> None:
        self.started_at = time.time()

    def finish(self) -> None:
        self.completed_at = time.time()

    @property
    def duration(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return self.completed_at - self.started_at
        return None

    @property
    def success(self) -> bool:
        return self.error is None and all(
            v.status == 'completed' for v in self._vertices.values()
        )

    def skip_unfinished(self) -> list[str]:
        """Mark vertices that never started as skipped."""
        skipped = []
        for name, state in self._vertices.items():
            if state.status == 'pending':
                state.skip()
                skipped.append(name)
        return skipped

    def counts(self) -> dict[str, int]:
        """Number of vertices per status."""
        result: dict[str, int] = {}
        for state in self._vertices.values():
            result[state.status] = result.get(state.status, 0) + 1
        return result

    def summary(self) -> str:
        """One-line summary for logs."""
        counts = self.counts()
        parts = [f"{count} {status}" for status, count in sorted(counts.items())]
        return f"{self.direction}: {', '.join(parts) if parts else 'nothing to do'}"

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'direction': self.direction,
            'success': self.success,
            'vertices': [v.to_dict() for v in self._vertices.values()],
        }
        if self.duration is not None:
            d['duration'] = round(self.duration, 3)
        if self.error is not None:
            d['error'] = self.error
        return d
