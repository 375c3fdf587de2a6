"""Per-kind resource actions.

ACTIONS maps every ResourceKind to the action class that drives it.
"""

from tug.actions.base import (
    ControlPlane,
    ControlPlaneError,
    ResourceAction,
    ResourceActionCancelled,
    ResourceActionError,
    ResourceTimeoutError,
)
from tug.actions.core import (
    ClusterRoleBindingAction,
    ConfigMapAction,
    IngressAction,
    NamespaceAction,
    ServiceAction,
)
from tug.actions.workloads import DeploymentAction, JobAction, PodAction
from tug.config import POLL_INTERVAL, ConfigError
from tug.definitions import ResourceDefinition
from tug.manifest import Deployment, ResourceKind

ACTIONS: dict[ResourceKind, type[ResourceAction]] = {
    cls.kind: cls
    for cls in (
        NamespaceAction,
        ConfigMapAction,
        ServiceAction,
        PodAction,
        DeploymentAction,
        JobAction,
        IngressAction,
        ClusterRoleBindingAction,
    )
}

_missing = set(ResourceKind) - set(ACTIONS)
if _missing:
    raise RuntimeError(
        f"No action registered for kind(s): {', '.join(sorted(k.value for k in _missing))}"
    )


def build_action(
    deployment: Deployment,
    definition: ResourceDefinition,
    client: ControlPlane,
    poll_interval: float = POLL_INTERVAL,
) -> ResourceAction:
    """Build the action for a deployment from its loaded definition.

    Raises:
        ConfigError: If the manifest kind disagrees with the definition's kind
    """
    if deployment.kind is not None and deployment.kind != definition.kind:
        raise ConfigError(
            f"Deployment '{deployment.name}' declares kind {deployment.kind.value} "
            f"but {deployment.location} defines a {definition.kind.value}"
        )
    action_class = ACTIONS[definition.kind]
    return action_class(
        definition,
        client,
        max_wait_seconds=deployment.max_wait_seconds,
        poll_interval=poll_interval,
    )


__all__ = [
    'ACTIONS',
    'ClusterRoleBindingAction',
    'ConfigMapAction',
    'ControlPlane',
    'ControlPlaneError',
    'DeploymentAction',
    'IngressAction',
    'JobAction',
    'NamespaceAction',
    'PodAction',
    'ResourceAction',
    'ResourceActionCancelled',
    'ResourceActionError',
    'ResourceTimeoutError',
    'ServiceAction',
    'build_action',
]
