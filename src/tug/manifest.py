"""Manifest loading and validation.

A manifest lists the deployments tug manages. Each deployment points at a
resource definition file and names the deployments it depends on:

    namespace: shop
    deployments:
      - name: shop-ns
        location: namespace.yaml
      - name: db
        location: db/deployment.yaml
        maxWaitSeconds: 120
        dependencies: [shop-ns]

Dependencies form a directed acyclic graph. Validation rejects duplicate
names, dangling dependency references and cycles before anything touches
the cluster.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml

from tug.config import DEFAULT_MAX_WAIT_SECONDS, ConfigError

logger = logging.getLogger(__name__)


class ResourceKind(str, Enum):
    """Resource kinds tug knows how to drive."""
    NAMESPACE = 'Namespace'
    CONFIG_MAP = 'ConfigMap'
    SERVICE = 'Service'
    POD = 'Pod'
    DEPLOYMENT = 'Deployment'
    JOB = 'Job'
    INGRESS = 'Ingress'
    CLUSTER_ROLE_BINDING = 'ClusterRoleBinding'

    @property
    def cluster_scoped(self) -> bool:
        """True for kinds that live outside any namespace."""
        return self in (ResourceKind.NAMESPACE, ResourceKind.CLUSTER_ROLE_BINDING)

    @classmethod
    def parse(cls, value: Any) -> 'ResourceKind':
        """Look up a kind by its manifest spelling.

        Raises:
            ConfigError: If value is not a supported kind
        """
        try:
            return cls(value)
        except ValueError:
            supported = ', '.join(k.value for k in cls)
            raise ConfigError(
                f"Unsupported deployment kind: {value!r}. Supported: {supported}"
            ) from None


@dataclass(frozen=True)
class Deployment:
    """One managed resource in the manifest.

    Attributes:
        name: Deployment identifier, unique within the manifest
        location: Path to the resource definition file
        kind: Resource kind (None = read from the definition file)
        max_wait_seconds: Budget for each existence/readiness wait
        dependencies: Names of deployments this one depends on
    """
    name: str
    location: str
    kind: Optional[ResourceKind] = None
    max_wait_seconds: int = DEFAULT_MAX_WAIT_SECONDS
    dependencies: frozenset[str] = field(default_factory=frozenset)

    def resolve_location(self, config_root: Path) -> Path:
        """Resolve location against config_root unless already absolute."""
        path = Path(self.location)
        if not path.is_absolute():
            path = Path(config_root) / path
        return path

    @classmethod
    def from_dict(cls, data: dict, index: int = 0) -> 'Deployment':
        """Create Deployment from a manifest entry.

        Raises:
            ConfigError: If the entry is malformed
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Deployment {index} must be a mapping")

        name = data.get('name')
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"Deployment {index} missing required field: name")

        location = data.get('location')
        if not isinstance(location, str) or not location.strip():
            raise ConfigError(f"Deployment '{name}' missing required field: location")

        max_wait = data.get('maxWaitSeconds', DEFAULT_MAX_WAIT_SECONDS)
        if isinstance(max_wait, bool) or not isinstance(max_wait, int) or max_wait < 1:
            raise ConfigError(
                f"Deployment '{name}' maxWaitSeconds must be an integer >= 1, got {max_wait!r}"
            )

        kind = data.get('kind')
        if kind is not None:
            kind = ResourceKind.parse(kind)

        dependencies = data.get('dependencies') or []
        if not isinstance(dependencies, list) or not all(isinstance(d, str) for d in dependencies):
            raise ConfigError(f"Deployment '{name}' dependencies must be a list of names")
        if name in dependencies:
            raise ConfigError(f"Deployment '{name}' cannot depend on itself")

        return cls(
            name=name,
            location=location,
            kind=kind,
            max_wait_seconds=max_wait,
            dependencies=frozenset(dependencies),
        )


@dataclass
class Manifest:
    """A parsed, validated tug manifest.

    Attributes:
        deployments: Deployments in manifest order
        namespace: Default namespace for namespaced kinds (None = 'default')
        source_path: File the manifest was loaded from
    """
    deployments: list[Deployment]
    namespace: Optional[str] = None
    source_path: Optional[Path] = None

    @property
    def config_root(self) -> Path:
        """Directory relative locations resolve against."""
        if self.source_path is None:
            return Path.cwd()
        return Path(self.source_path).absolute().parent

    @property
    def names(self) -> list[str]:
        return [d.name for d in self.deployments]

    @classmethod
    def from_dict(cls, data: dict, source_path: Optional[Path] = None) -> 'Manifest':
        """Create Manifest from dictionary.

        Args:
            data: Manifest data dictionary
            source_path: Optional source path (sets config_root)

        Returns:
            Validated Manifest instance

        Raises:
            ConfigError: If manifest is invalid
        """
        if 'deployments' not in data:
            raise ConfigError("Manifest missing required field: deployments")
        if not isinstance(data['deployments'], list):
            raise ConfigError("Manifest field 'deployments' must be a list")

        namespace = data.get('namespace')
        if namespace is not None and (not isinstance(namespace, str) or not namespace.strip()):
            raise ConfigError("Manifest field 'namespace' must be a non-empty string")

        deployments = [
            Deployment.from_dict(entry, i) for i, entry in enumerate(data['deployments'])
        ]

        _validate_graph(deployments)

        return cls(
            deployments=deployments,
            namespace=namespace,
            source_path=source_path,
        )


def _validate_graph(deployments: list[Deployment]) -> None:
    """Validate the dependency graph of manifest deployments.

    Checks for:
    - Duplicate deployment names
    - Dangling dependency references
    - Cycles in the dependency graph

    Raises:
        ConfigError: If validation fails
    """
    seen: set[str] = set()
    for deployment in deployments:
        if deployment.name in seen:
            raise ConfigError(f"Duplicate deployment name: '{deployment.name}'")
        seen.add(deployment.name)

    for deployment in deployments:
        for dep in sorted(deployment.dependencies):
            if dep not in seen:
                raise ConfigError(
                    f"Deployment '{deployment.name}' depends on unknown deployment '{dep}'"
                )

    # Check for cycles using iterative DFS over dependency edges
    deps_map = {d.name: sorted(d.dependencies) for d in deployments}
    visited: set[str] = set()
    for start in deps_map:
        if start in visited:
            continue
        in_stack = {start}
        stack = [(start, iter(deps_map[start]))]
        while stack:
            name, remaining = stack[-1]
            dep = next(remaining, None)
            if dep is None:
                stack.pop()
                in_stack.discard(name)
                visited.add(name)
                continue
            if dep in in_stack:
                raise ConfigError(f"Cycle detected in dependency graph involving '{dep}'")
            if dep not in visited:
                in_stack.add(dep)
                stack.append((dep, iter(deps_map[dep])))


def load_manifest(path: Path) -> Manifest:
    """Load a manifest from a YAML file.

    Args:
        path: Path to manifest YAML file

    Returns:
        Manifest instance

    Raises:
        ConfigError: If file not found or invalid
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Manifest file not found: {path}")

    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in manifest {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Manifest {path} must be a YAML object (dict)")

    manifest = Manifest.from_dict(data, source_path=path)
    logger.debug(f"Loaded manifest {path} ({len(manifest.deployments)} deployments)")
    return manifest
