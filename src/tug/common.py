"""Common utilities for driving the cluster."""

import logging
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class WaitCancelled(Exception):
    """A wait_until() loop was interrupted by its cancel event."""


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except OSError as e:
        return -1, '', str(e)


def wait_until(
    condition: Callable[[], bool],
    timeout: float,
    interval: float = 1.0,
    cancel_event: Optional[threading.Event] = None,
    initial_delay: bool = True,
) -> bool:
    """Poll condition() until it returns True or timeout elapses.

    The condition is checked before the deadline, so the loop returns no
    later than deadline + one interval. Exceptions raised by condition()
    propagate to the caller.

    Args:
        condition: Zero-argument predicate to poll
        timeout: Seconds from now until the wait gives up
        interval: Seconds between checks
        cancel_event: If set while sleeping, raise WaitCancelled
        initial_delay: Sleep one interval before the first check

    Returns:
        True if the condition was met, False on timeout

    Raises:
        WaitCancelled: If cancel_event was set
    """
    deadline = time.monotonic() + timeout

    if initial_delay:
        _sleep(interval, cancel_event)

    while True:
        if condition():
            return True
        if time.monotonic() > deadline:
            return False
        _sleep(interval, cancel_event)


def _sleep(interval: float, cancel_event: Optional[threading.Event]) -> None:
    """Sleep for interval seconds, waking early if cancel_event is set."""
    if cancel_event is None:
        time.sleep(interval)
        return
    if cancel_event.wait(interval):
        raise WaitCancelled("wait cancelled")
