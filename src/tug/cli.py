"""CLI entry point for tug.

Usage:
    tug --push --all [--manifest tug-manifest.yaml] [--concurrency 6]
    tug --pull --resource web,db [--dry-run] [--json-output] [--verbose]
    tug --repush -r web -r worker [--skip-preflight]

Exactly one verb (--push, --pull, --repush) and one selection (--resource
or --all) are required. Exit code is 0 on success and 1 on configuration
errors or failed actions.
"""

import argparse
import json
import logging
import sys
import time
from typing import Optional

from tug import __version__
from tug.actions.kubectl import KubectlClient
from tug.config import DEFAULT_CONCURRENCY, DEFAULT_MANIFEST, ConfigError, load_cluster_config
from tug.engine import Tug
from tug.manifest import load_manifest
from tug.validation import run_preflight_checks

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got '{value}'") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Build the tug argument parser."""
    parser = argparse.ArgumentParser(
        prog='tug',
        description='Push, pull or repush cluster resources in dependency order',
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'tug {__version__}',
    )

    verb = parser.add_mutually_exclusive_group(required=True)
    verb.add_argument(
        '--push',
        dest='verb', action='store_const', const='push',
        help='Create resources, dependencies first',
    )
    verb.add_argument(
        '--pull',
        dest='verb', action='store_const', const='pull',
        help='Delete resources, dependents first',
    )
    verb.add_argument(
        '--repush',
        dest='verb', action='store_const', const='repush',
        help='Pull then push (push is skipped if the pull fails)',
    )

    selection = parser.add_mutually_exclusive_group(required=True)
    selection.add_argument(
        '--resource', '-r',
        action='append',
        nargs='+',
        metavar='NAME',
        help='Deployment name(s) to act on, with their dependencies '
             '(push) or dependents (pull). Repeatable, comma-separated values accepted',
    )
    selection.add_argument(
        '--all', '-a',
        action='store_true',
        help='Act on every deployment in the manifest',
    )

    parser.add_argument(
        '--manifest', '-m',
        default=DEFAULT_MANIFEST,
        help=f'Path to manifest file (default: {DEFAULT_MANIFEST})',
    )
    parser.add_argument(
        '--concurrency', '-c',
        type=_positive_int,
        default=DEFAULT_CONCURRENCY,
        help=f'Maximum concurrent resource actions (default: {DEFAULT_CONCURRENCY})',
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show the planned order without touching the cluster',
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs to stderr)',
    )
    parser.add_argument(
        '--skip-preflight',
        action='store_true',
        help='Skip pre-flight validation checks',
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging',
    )
    return parser


def _setup_logging(verbose: bool, json_output: bool) -> None:
    """Configure logging based on flags."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    if json_output:
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
        root_logger.addHandler(stderr_handler)

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def parse_resources(values: Optional[list[list[str]]]) -> list[str]:
    """Flatten --resource values, splitting comma-separated names.

    Duplicates are dropped, first occurrence wins.
    """
    names: list[str] = []
    for group in values or []:
        for value in group:
            for name in value.split(','):
                name = name.strip()
                if name and name not in names:
                    names.append(name)
    return names


def _run_preflight(args, manifest, config) -> Optional[int]:
    """Run preflight checks.

    Returns:
        None if checks pass, exit code (1) if checks fail.
    """
    if args.skip_preflight or args.dry_run:
        return None

    errors = run_preflight_checks(manifest, config)
    if errors:
        print("\nPre-flight validation failed:", file=sys.stderr)
        for error in errors:
            for i, line in enumerate(error.split('\n')):
                prefix = "  ✗ " if i == 0 else "    "
                print(f"{prefix}{line}", file=sys.stderr)
        print("\nUse --skip-preflight to bypass these checks\n", file=sys.stderr)
        return 1
    logger.info("Pre-flight validation passed")
    return None


def _print_plan(verb: str, plan, json_output: bool) -> None:
    """Print the dry-run plan."""
    if json_output:
        output = {
            'verb': verb,
            'dry_run': True,
            'runs': [
                {'direction': direction.value, 'waves': waves}
                for direction, waves in plan
            ],
        }
        print(json.dumps(output, indent=2))
        return

    for direction, waves in plan:
        print(f"{verb} ({direction.value}):")
        if not waves:
            print("  nothing to do")
        for i, wave in enumerate(waves, 1):
            print(f"  wave {i}: {', '.join(wave)}")


def _emit_json(verb: str, success: bool, states, duration: float,
               failure: Optional[BaseException]) -> None:
    """Emit structured JSON output."""
    output = {
        'verb': verb,
        'success': success,
        'duration_seconds': round(duration, 2),
        'runs': [state.to_dict() for state in states],
    }
    if failure is not None:
        output['error'] = str(failure)
    print(json.dumps(output, indent=2))


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.json_output)

    resources = [] if args.all else parse_resources(args.resource)
    if not args.all and not resources:
        print("Error: --resource requires at least one deployment name", file=sys.stderr)
        return 1

    try:
        manifest = load_manifest(args.manifest)
        config = load_cluster_config(manifest.config_root)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    preflight_rc = _run_preflight(args, manifest, config)
    if preflight_rc is not None:
        return preflight_rc

    tug = Tug(
        manifest,
        KubectlClient(config),
        parallelism=args.concurrency,
        resources=resources,
        poll_interval=config.poll_interval,
        shutdown_grace=config.shutdown_grace,
    )

    if args.dry_run:
        try:
            plan = tug.preview(args.verb)
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        _print_plan(args.verb, plan, args.json_output)
        return 0

    target = ', '.join(resources) if resources else 'all deployments'
    logger.info(f"Running {args.verb} on {target} from {manifest.source_path}")

    start = time.time()
    try:
        success, states = tug.run(args.verb)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    duration = time.time() - start

    if args.json_output:
        _emit_json(args.verb, success, states, duration, tug.failure)
    elif not success:
        print(f"Error: {tug.failure}", file=sys.stderr)

    return 0 if success else 1


if __name__ == '__main__':
    sys.exit(main())
