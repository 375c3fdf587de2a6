"""Pre-flight validation checks.

These run before a push/pull/repush touches the cluster, catching missing
definition files and an unreachable cluster early with actionable error
messages.
"""

import logging
import shutil
from pathlib import Path

from tug.actions.kubectl import KubectlClient
from tug.common import run_command
from tug.config import ClusterConfig, ConfigError
from tug.definitions import load_definition
from tug.manifest import Manifest

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Definition files
# -----------------------------------------------------------------------------

def validate_definitions(manifest: Manifest) -> list[str]:
    """Check that every deployment's definition file exists and parses.

    Args:
        manifest: Validated manifest

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []
    config_root = manifest.config_root

    for deployment in manifest.deployments:
        path = deployment.resolve_location(config_root)
        if not path.is_file():
            errors.append(
                f"Definition for '{deployment.name}' not found: {path}\n"
                f"  Check 'location' in {manifest.source_path or 'the manifest'}"
            )
            continue

        try:
            definition = load_definition(path, default_namespace=manifest.namespace)
        except ConfigError as e:
            errors.append(f"Definition for '{deployment.name}' is invalid: {e}")
            continue

        if deployment.kind is not None and deployment.kind != definition.kind:
            errors.append(
                f"Deployment '{deployment.name}' declares kind {deployment.kind.value} "
                f"but {path.name} defines a {definition.kind.value}"
            )
        else:
            logger.debug(f"Definition for '{deployment.name}' -> {definition.kind.value} at {path}")

    return errors


# -----------------------------------------------------------------------------
# kubectl / cluster reachability
# -----------------------------------------------------------------------------

def validate_kubectl(config: ClusterConfig) -> list[str]:
    """Check that kubectl is installed and the cluster answers.

    Args:
        config: Cluster settings (binary, context, kubeconfig)

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    binary = config.kubectl
    if shutil.which(binary) is None and not Path(binary).is_file():
        errors.append(
            f"kubectl not found: {binary}\n"
            f"  Install kubectl or set TUG_KUBECTL / 'kubectl' in .tug.yaml"
        )
        return errors

    rc, _, err = run_command([binary, 'version', '--client'], timeout=30)
    if rc != 0:
        errors.append(f"'{binary} version --client' failed: {err.strip() or f'exit code {rc}'}")
        return errors

    client = KubectlClient(config)
    rc, _, err = run_command(
        client.base_command() + ['cluster-info'],
        timeout=config.request_timeout + 10,
    )
    if rc != 0:
        target = f"context '{config.context}'" if config.context else 'current context'
        errors.append(
            f"Cluster unreachable ({target}): {err.strip() or f'exit code {rc}'}\n"
            f"  Check KUBECONFIG / TUG_KUBE_CONTEXT and cluster connectivity"
        )

    return errors


def run_preflight_checks(manifest: Manifest, config: ClusterConfig,
                         check_cluster: bool = True) -> list[str]:
    """Run all pre-flight checks.

    Args:
        manifest: Validated manifest
        config: Cluster settings
        check_cluster: Also check kubectl and cluster reachability

    Returns:
        List of validation error messages (empty if all checks pass)
    """
    errors = validate_definitions(manifest)
    if check_cluster:
        errors.extend(validate_kubectl(config))
    return errors
