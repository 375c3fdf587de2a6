"""Resource definition files.

Each deployment's location points at a YAML resource definition (the same
document you would hand to kubectl). tug only reads the fields it needs to
drive the resource: kind, metadata.name and metadata.namespace. The full
body is passed through to the control plane on create.
"""

import copy
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from tug.config import ConfigError
from tug.manifest import ResourceKind

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = 'default'


@dataclass(frozen=True)
class ResourceDefinition:
    """A parsed resource definition.

    Attributes:
        kind: Resource kind from the definition's top-level 'kind'
        name: metadata.name
        namespace: Effective namespace (None for cluster-scoped kinds)
        body: Full definition, with metadata.namespace filled in for
              namespaced kinds
        source_path: File the definition was loaded from
    """
    kind: ResourceKind
    name: str
    namespace: Optional[str]
    body: dict
    source_path: Optional[Path] = None

    @property
    def display_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    @classmethod
    def from_dict(
        cls,
        data: dict,
        default_namespace: Optional[str] = None,
        source_path: Optional[Path] = None,
    ) -> 'ResourceDefinition':
        """Create ResourceDefinition from a parsed YAML document.

        Raises:
            ConfigError: If kind or metadata.name is missing or kind is unsupported
        """
        where = f" in {source_path}" if source_path else ''

        kind_value = data.get('kind')
        if not isinstance(kind_value, str) or not kind_value:
            raise ConfigError(f"No kind defined{where}")
        kind = ResourceKind.parse(kind_value)

        metadata = data.get('metadata')
        if not isinstance(metadata, dict):
            raise ConfigError(f"No metadata defined{where}")
        name = metadata.get('name')
        if not isinstance(name, str) or not name:
            raise ConfigError(f"No metadata.name defined{where}")

        body = copy.deepcopy(data)
        namespace: Optional[str] = None
        if not kind.cluster_scoped:
            namespace = metadata.get('namespace') or default_namespace or DEFAULT_NAMESPACE
            body['metadata']['namespace'] = namespace

        return cls(
            kind=kind,
            name=name,
            namespace=namespace,
            body=body,
            source_path=source_path,
        )


def load_definition(path: Path, default_namespace: Optional[str] = None) -> ResourceDefinition:
    """Load a resource definition file.

    Args:
        path: Path to the definition YAML
        default_namespace: Manifest-level namespace for namespaced kinds
                           whose metadata omits one

    Returns:
        ResourceDefinition instance

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Resource definition not found: {path}")

    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Unable to read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Resource definition {path} must be a YAML object (dict)")

    definition = ResourceDefinition.from_dict(data, default_namespace, source_path=path)
    logger.debug(f"Loaded {definition.kind.value} '{definition.display_name}' from {path}")
    return definition
