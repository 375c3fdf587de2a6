"""kubectl-backed control-plane client.

Each call shells out to the kubectl binary through run_command(). The
client holds no per-call state, so a single instance is shared by every
worker thread.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from typing import Optional

import yaml

from tug.actions.base import DELETE_PROPAGATION, ControlPlaneError
from tug.common import run_command
from tug.config import ClusterConfig
from tug.definitions import ResourceDefinition
from tug.manifest import ResourceKind

logger = logging.getLogger(__name__)

# Extra seconds the subprocess gets beyond kubectl's own request timeout
_PROCESS_SLACK = 10

__all__ = ['ControlPlaneError', 'KubectlClient']


@dataclass
class KubectlClient:
    """Drives the cluster with kubectl.

    Attributes:
        config: Binary, context, kubeconfig and request timeout to use
    """
    config: ClusterConfig = field(default_factory=ClusterConfig)

    def base_command(self) -> list[str]:
        """kubectl invocation with the global flags from config."""
        cmd = [self.config.kubectl]
        if self.config.kubeconfig:
            cmd.extend(['--kubeconfig', self.config.kubeconfig])
        if self.config.context:
            cmd.extend(['--context', self.config.context])
        cmd.append(f'--request-timeout={self.config.request_timeout}s')
        return cmd

    def _run(self, args: list[str]) -> tuple[int, str, str]:
        return run_command(
            self.base_command() + args,
            timeout=self.config.request_timeout + _PROCESS_SLACK,
        )

    @staticmethod
    def _scope(namespace: Optional[str]) -> list[str]:
        return ['--namespace', namespace] if namespace else []

    @staticmethod
    def _detail(rc: int, out: str, err: str) -> str:
        return err.strip() or out.strip() or f'exit code {rc}'

    def get(self, kind: ResourceKind, name: str, namespace: Optional[str]) -> Optional[dict]:
        """Fetch a resource as a dict, or None if it does not exist.

        Raises:
            ControlPlaneError: If kubectl fails or returns unparseable output
        """
        args = ['get', kind.value.lower(), name, *self._scope(namespace),
                '-o', 'json', '--ignore-not-found']
        rc, out, err = self._run(args)
        operation = f"kubectl get {kind.value.lower()} {name}"
        if rc != 0:
            raise ControlPlaneError(operation, self._detail(rc, out, err), rc)
        if not out.strip():
            return None
        try:
            return json.loads(out)
        except json.JSONDecodeError as e:
            raise ControlPlaneError(operation, f"invalid JSON output: {e}") from e

    def exists(self, kind: ResourceKind, name: str, namespace: Optional[str]) -> bool:
        return self.get(kind, name, namespace) is not None

    def read_status(self, kind: ResourceKind, name: str, namespace: Optional[str]) -> dict:
        """Return the resource's status block.

        A resource that vanished between polls has no status and reads as {}.
        """
        obj = self.get(kind, name, namespace)
        if obj is None:
            return {}
        return obj.get('status') or {}

    def create(self, definition: ResourceDefinition) -> None:
        """Create a resource from its definition body.

        Raises:
            ControlPlaneError: If kubectl create fails
        """
        fd, path = tempfile.mkstemp(prefix='tug-', suffix='.yaml')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                yaml.safe_dump(definition.body, f, sort_keys=False)
            args = ['create', '-f', path, *self._scope(definition.namespace)]
            rc, out, err = self._run(args)
        finally:
            os.unlink(path)

        if rc != 0:
            raise ControlPlaneError(
                f"kubectl create {definition.kind.value.lower()} {definition.name}",
                self._detail(rc, out, err),
                rc,
            )
        logger.debug(f"kubectl create: {out.strip()}")

    def delete(
        self,
        kind: ResourceKind,
        name: str,
        namespace: Optional[str],
        propagation: str = DELETE_PROPAGATION,
    ) -> bool:
        """Issue a delete without waiting for it to finish.

        Returns:
            True if the delete was accepted, False if the resource was
            already gone

        Raises:
            ControlPlaneError: If kubectl delete fails for another reason
        """
        args = ['delete', kind.value.lower(), name, *self._scope(namespace),
                f'--cascade={propagation.lower()}', '--wait=false']
        rc, out, err = self._run(args)
        if rc == 0:
            return True
        if 'NotFound' in err:
            return False
        raise ControlPlaneError(
            f"kubectl delete {kind.value.lower()} {name}",
            self._detail(rc, out, err),
            rc,
        )
