"""Cluster configuration management.

Settings for reaching the cluster are merged in this order:
1. Built-in defaults
2. YAML config file ($TUG_CONFIG, else .tug.yaml next to the manifest)
3. Environment variables (TUG_KUBECTL, TUG_KUBE_CONTEXT, KUBECONFIG,
   TUG_REQUEST_TIMEOUT)

Example .tug.yaml:

    kubectl: /usr/local/bin/kubectl
    context: staging
    request_timeout: 20
    shutdown_grace: 30
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

# Manifest path used when --manifest is omitted
DEFAULT_MANIFEST = 'tug-manifest.yaml'

# Max concurrent resource actions when --concurrency is omitted
DEFAULT_CONCURRENCY = 6

# Per-resource wait budget when a deployment omits maxWaitSeconds
DEFAULT_MAX_WAIT_SECONDS = 300

# Seconds between existence/readiness checks
POLL_INTERVAL = 1.0

# Seconds in-flight actions get to wind down when a run ends
SHUTDOWN_GRACE_SECONDS = 60

CONFIG_FILE_NAME = '.tug.yaml'


class ConfigError(Exception):
    """Configuration error."""


@dataclass
class ClusterConfig:
    """How to reach the cluster and how long to wait on it.

    Attributes:
        kubectl: kubectl binary name or path
        context: kubeconfig context to use (None = current context)
        kubeconfig: kubeconfig file (None = kubectl default resolution)
        request_timeout: Seconds before a single kubectl request gives up
        poll_interval: Seconds between existence/readiness checks
        shutdown_grace: Seconds in-flight actions get when a run ends
        config_file: File the settings were loaded from, if any
    """
    kubectl: str = 'kubectl'
    context: Optional[str] = None
    kubeconfig: Optional[str] = None
    request_timeout: int = 30
    poll_interval: float = POLL_INTERVAL
    shutdown_grace: float = SHUTDOWN_GRACE_SECONDS
    config_file: Optional[Path] = None

    def __post_init__(self):
        if self.request_timeout < 1:
            raise ConfigError(f"request_timeout must be >= 1, got {self.request_timeout}")
        if self.poll_interval <= 0:
            raise ConfigError(f"poll_interval must be > 0, got {self.poll_interval}")
        if self.shutdown_grace < 0:
            raise ConfigError(f"shutdown_grace must be >= 0, got {self.shutdown_grace}")

    @classmethod
    def from_dict(cls, data: Optional[dict], config_file: Optional[Path] = None) -> 'ClusterConfig':
        """Create ClusterConfig from dictionary, rejecting unknown keys."""
        if not data:
            return cls(config_file=config_file)

        known = {f.name for f in fields(cls)} - {'config_file'}
        unknown = sorted(set(data) - known)
        if unknown:
            source = f" in {config_file}" if config_file else ''
            raise ConfigError(f"Unknown config key(s){source}: {', '.join(unknown)}")

        try:
            return cls(
                kubectl=str(data.get('kubectl', 'kubectl')),
                context=data.get('context'),
                kubeconfig=data.get('kubeconfig'),
                request_timeout=int(data.get('request_timeout', 30)),
                poll_interval=float(data.get('poll_interval', POLL_INTERVAL)),
                shutdown_grace=float(data.get('shutdown_grace', SHUTDOWN_GRACE_SECONDS)),
                config_file=config_file,
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid config value: {e}") from e

    def apply_env(self, environ: Optional[dict] = None) -> 'ClusterConfig':
        """Override settings from environment variables (in place)."""
        env = os.environ if environ is None else environ

        if kubectl := env.get('TUG_KUBECTL'):
            self.kubectl = kubectl
        if context := env.get('TUG_KUBE_CONTEXT'):
            self.context = context
        if kubeconfig := env.get('KUBECONFIG'):
            self.kubeconfig = kubeconfig
        if timeout := env.get('TUG_REQUEST_TIMEOUT'):
            try:
                self.request_timeout = int(timeout)
            except ValueError as e:
                raise ConfigError(f"TUG_REQUEST_TIMEOUT must be an integer, got '{timeout}'") from e
            if self.request_timeout < 1:
                raise ConfigError(f"TUG_REQUEST_TIMEOUT must be >= 1, got {self.request_timeout}")
        return self


def find_config_file(config_root: Optional[Path] = None) -> Optional[Path]:
    """Discover the cluster config file.

    Resolution order:
    1. $TUG_CONFIG environment variable (must exist)
    2. .tug.yaml in the manifest directory
    """
    if env_path := os.environ.get('TUG_CONFIG'):
        path = Path(env_path)
        if path.exists():
            return path
        raise ConfigError(f"TUG_CONFIG={env_path} does not exist")

    if config_root is not None:
        candidate = Path(config_root) / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate

    return None


def load_cluster_config(config_root: Optional[Path] = None) -> ClusterConfig:
    """Load cluster settings: defaults -> config file -> environment.

    Args:
        config_root: Directory holding the manifest (searched for .tug.yaml)

    Returns:
        Merged ClusterConfig

    Raises:
        ConfigError: If the config file is unreadable or invalid
    """
    path = find_config_file(config_root)
    data = None
    if path is not None:
        logger.debug(f"Loading cluster config from {path}")
        data = _parse_yaml(path)

    return ClusterConfig.from_dict(data, config_file=path).apply_env()


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML mapping file."""
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must be a YAML object (dict)")
    return data
