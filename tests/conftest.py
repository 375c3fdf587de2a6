"""Shared pytest fixtures for tug tests."""

import sys
import threading
from pathlib import Path

import pytest
import yaml

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from tug.actions.base import ControlPlaneError  # noqa: E402

# Status a freshly created resource reports, per kind
READY_STATUS = {
    'Pod': {'containerStatuses': [{'name': 'main', 'ready': True}]},
    'Deployment': {'availableReplicas': 1},
    'Job': {'succeeded': 1},
}


class FakeControlPlane:
    """In-memory control plane that records every call.

    Attributes:
        objects: (kind, name) -> status dict of resources that exist
        calls: (operation, kind, name) in call order
        errors: (operation, name) -> exception to raise
        statuses: name -> status a resource reports once created
        never_appear: names whose create is accepted but never shows up
        never_vanish: names whose delete is accepted but never takes effect
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.objects: dict[tuple[str, str], dict] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.errors: dict[tuple[str, str], Exception] = {}
        self.statuses: dict[str, dict] = {}
        self.never_appear: set[str] = set()
        self.never_vanish: set[str] = set()

    def add(self, kind: str, name: str, status=None) -> None:
        self.objects[(kind, name)] = dict(status or {})

    def names(self) -> set[str]:
        with self._lock:
            return {name for _, name in self.objects}

    def calls_for(self, operation: str) -> list[str]:
        with self._lock:
            return [name for op, _, name in self.calls if op == operation]

    def _record(self, operation: str, kind: str, name: str) -> None:
        with self._lock:
            self.calls.append((operation, kind, name))
        error = self.errors.get((operation, name))
        if error is not None:
            raise error

    def exists(self, kind, name, namespace):
        self._record('exists', kind.value, name)
        with self._lock:
            return (kind.value, name) in self.objects

    def create(self, definition):
        kind = definition.kind.value
        self._record('create', kind, definition.name)
        if definition.name in self.never_appear:
            return
        status = self.statuses.get(definition.name, READY_STATUS.get(kind, {}))
        with self._lock:
            self.objects[(kind, definition.name)] = dict(status)

    def delete(self, kind, name, namespace, propagation='Foreground'):
        self._record('delete', kind.value, name)
        with self._lock:
            if (kind.value, name) not in self.objects:
                return False
            if name not in self.never_vanish:
                del self.objects[(kind.value, name)]
        return True

    def read_status(self, kind, name, namespace):
        self._record('read_status', kind.value, name)
        with self._lock:
            return dict(self.objects.get((kind.value, name), {}))


@pytest.fixture
def fake_cluster():
    """Empty in-memory control plane."""
    return FakeControlPlane()


@pytest.fixture
def control_plane_error():
    """Factory for ControlPlaneError instances."""
    def _make(detail='connection refused'):
        return ControlPlaneError('kubectl get', detail, 1)
    return _make


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the developer's tug/kubectl environment out of tests."""
    for var in ('TUG_CONFIG', 'TUG_KUBECTL', 'TUG_KUBE_CONTEXT', 'KUBECONFIG',
                'TUG_REQUEST_TIMEOUT'):
        monkeypatch.delenv(var, raising=False)


def write_definition(directory: Path, filename: str, kind: str, name: str,
                     namespace=None) -> Path:
    """Write a minimal resource definition file."""
    metadata = {'name': name}
    if namespace:
        metadata['namespace'] = namespace
    path = directory / filename
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump({'apiVersion': 'v1', 'kind': kind, 'metadata': metadata}))
    return path


@pytest.fixture
def project_dir(tmp_path):
    """Create a shop project: manifest plus one definition per deployment.

    Dependency graph (A -> B means A depends on B):

        web -> svc -> db -> cfg -> ns
        web -> cfg
    """
    write_definition(tmp_path, 'namespace.yaml', 'Namespace', 'shop')
    write_definition(tmp_path, 'config.yaml', 'ConfigMap', 'shop-config')
    write_definition(tmp_path, 'db/deployment.yaml', 'Deployment', 'db')
    write_definition(tmp_path, 'db/service.yaml', 'Service', 'db-svc')
    write_definition(tmp_path, 'web.yaml', 'Deployment', 'web')

    manifest = {
        'namespace': 'shop',
        'deployments': [
            {'name': 'ns', 'location': 'namespace.yaml'},
            {'name': 'cfg', 'location': 'config.yaml', 'dependencies': ['ns']},
            {'name': 'db', 'location': 'db/deployment.yaml', 'kind': 'Deployment',
             'maxWaitSeconds': 5, 'dependencies': ['cfg']},
            {'name': 'svc', 'location': 'db/service.yaml', 'maxWaitSeconds': 5,
             'dependencies': ['db']},
            {'name': 'web', 'location': 'web.yaml', 'maxWaitSeconds': 5,
             'dependencies': ['svc', 'cfg']},
        ],
    }
    (tmp_path / 'tug-manifest.yaml').write_text(yaml.safe_dump(manifest, sort_keys=False))
    return tmp_path


@pytest.fixture
def write_def():
    """Return the write_definition helper."""
    return write_definition
