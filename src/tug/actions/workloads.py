"""Actions for workload kinds that must report readiness."""

from tug.actions.base import ResourceAction
from tug.manifest import ResourceKind


class PodAction(ResourceAction):
    """Pod is ready when every container status reports ready."""
    kind = ResourceKind.POD
    requires_readiness = True

    def is_ready(self, status: dict) -> bool:
        container_statuses = status.get('containerStatuses') or []
        if not container_statuses:
            return False
        return all(cs.get('ready') is True for cs in container_statuses)


class DeploymentAction(ResourceAction):
    """Deployment is ready once at least one replica is available."""
    kind = ResourceKind.DEPLOYMENT
    requires_readiness = True

    def is_ready(self, status: dict) -> bool:
        return (status.get('availableReplicas') or 0) >= 1


class JobAction(ResourceAction):
    """Job is ready once it has succeeded at least once."""
    kind = ResourceKind.JOB
    requires_readiness = True

    def is_ready(self, status: dict) -> bool:
        return (status.get('succeeded') or 0) >= 1
