"""Actions for kinds that are usable as soon as they exist."""

from tug.actions.base import ResourceAction
from tug.manifest import ResourceKind


class NamespaceAction(ResourceAction):
    kind = ResourceKind.NAMESPACE


class ConfigMapAction(ResourceAction):
    kind = ResourceKind.CONFIG_MAP


class ServiceAction(ResourceAction):
    """Service action.

    A freshly created service gets one extra poll interval before it is
    reported ready, so endpoints have a chance to be programmed.
    """
    kind = ResourceKind.SERVICE
    settle_after_create = True


class IngressAction(ResourceAction):
    kind = ResourceKind.INGRESS


class ClusterRoleBindingAction(ResourceAction):
    kind = ResourceKind.CLUSTER_ROLE_BINDING
