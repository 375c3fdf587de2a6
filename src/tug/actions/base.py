"""Shared lifecycle for resource actions.

Every resource kind follows the same state machine:

    create path:  absent -> creating -> existing -> (readying) -> ready
    delete path:  existing -> deleting -> (waiting gone) -> absent

Subclasses only declare what differs per kind: whether readiness must be
awaited beyond existence, what "ready" means for the kind's status, and
whether to settle for one extra poll interval after creation.
"""

import logging
import threading
from typing import Optional, Protocol, runtime_checkable

from tug.common import WaitCancelled, wait_until
from tug.config import POLL_INTERVAL
from tug.definitions import ResourceDefinition
from tug.manifest import ResourceKind

logger = logging.getLogger(__name__)

DELETE_PROPAGATION = 'Foreground'


class ResourceActionError(Exception):
    """A resource could not be created, readied or deleted."""


class ResourceTimeoutError(ResourceActionError):
    """A resource did not reach the expected state within its wait budget."""

    def __init__(self, message: str, resource: str, seconds: int):
        super().__init__(message)
        self.resource = resource
        self.seconds = seconds


class ResourceActionCancelled(ResourceActionError):
    """A wait was interrupted because the run is shutting down."""


class ControlPlaneError(Exception):
    """A control-plane call failed."""

    def __init__(self, operation: str, detail: str, returncode: Optional[int] = None):
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail
        self.returncode = returncode


@runtime_checkable
class ControlPlane(Protocol):
    """Protocol for clients that talk to the cluster.

    Implementations must be safe to call from several threads at once.
    """

    def exists(self, kind: ResourceKind, name: str, namespace: Optional[str]) -> bool:
        """Return True if the named resource exists."""

    def create(self, definition: ResourceDefinition) -> None:
        """Create the resource described by definition."""

    def delete(self, kind: ResourceKind, name: str, namespace: Optional[str],
               propagation: str = DELETE_PROPAGATION) -> bool:
        """Delete a resource. Returns False if it was already gone."""

    def read_status(self, kind: ResourceKind, name: str, namespace: Optional[str]) -> dict:
        """Return the resource's status block ({} if none is reported)."""


class ResourceAction:
    """Drives one resource through its create or delete lifecycle.

    Attributes:
        kind: Resource kind handled by the subclass
        requires_readiness: Await is_ready() after existence, even when the
            resource already existed
        settle_after_create: Wait one extra poll interval after a fresh create
    """
    kind: ResourceKind
    requires_readiness: bool = False
    settle_after_create: bool = False

    def __init__(
        self,
        definition: ResourceDefinition,
        client: ControlPlane,
        max_wait_seconds: int,
        poll_interval: float = POLL_INTERVAL,
    ):
        if definition.kind != self.kind:
            raise ValueError(
                f"{type(self).__name__} cannot drive a {definition.kind.value} definition"
            )
        self.definition = definition
        self.client = client
        self.max_wait_seconds = max_wait_seconds
        self.poll_interval = poll_interval

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def namespace(self) -> Optional[str]:
        return self.definition.namespace

    @property
    def label(self) -> str:
        return f"{self.kind.value} '{self.name}'"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.definition.display_name})"

    def is_ready(self, status: dict) -> bool:
        """Kind-specific readiness test on the resource's status block."""
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def make_ready(self, cancel_event: Optional[threading.Event] = None) -> None:
        """Create the resource if absent and wait until it is usable.

        Raises:
            ResourceActionError: On control-plane failure or timeout
        """
        if not self._exists():
            self._create()
            self._wait_until_created(cancel_event)
            if self.settle_after_create:
                self._pause(cancel_event)
        if self.requires_readiness:
            self._wait_until_ready(cancel_event)

    def delete(self, cancel_event: Optional[threading.Event] = None) -> None:
        """Delete the resource if present and wait until it is gone.

        Raises:
            ResourceActionError: On control-plane failure or timeout
        """
        if self._exists():
            self._delete()
            self._wait_until_deleted(cancel_event)

    # ------------------------------------------------------------------
    # Control-plane calls
    # ------------------------------------------------------------------

    def _exists(self) -> bool:
        try:
            return self.client.exists(self.kind, self.name, self.namespace)
        except ControlPlaneError as e:
            raise ResourceActionError(f"Unable to get {self.kind.value} info: {e.detail}") from e

    def _ready(self) -> bool:
        try:
            status = self.client.read_status(self.kind, self.name, self.namespace)
        except ControlPlaneError as e:
            raise ResourceActionError(f"Unable to get {self.kind.value} info: {e.detail}") from e
        return self.is_ready(status)

    def _create(self) -> None:
        logger.info(f"[{self.name}] creating {self.label}")
        try:
            self.client.create(self.definition)
        except ControlPlaneError as e:
            raise ResourceActionError(f"Unable to create {self.kind.value}: {e.detail}") from e

    def _delete(self) -> None:
        logger.info(f"[{self.name}] deleting {self.label}")
        try:
            deleted = self.client.delete(self.kind, self.name, self.namespace, DELETE_PROPAGATION)
        except ControlPlaneError as e:
            raise ResourceActionError(f"Unable to delete {self.kind.value}: {e.detail}") from e
        if not deleted:
            logger.debug(f"[{self.name}] {self.label} was already gone")

    # ------------------------------------------------------------------
    # Waits
    # ------------------------------------------------------------------

    def _wait_until_created(self, cancel_event: Optional[threading.Event]) -> None:
        logger.info(f"[{self.name}] waiting for {self.label} to be created")
        self._wait(self._exists, 'created', cancel_event)

    def _wait_until_ready(self, cancel_event: Optional[threading.Event]) -> None:
        if self._ready():
            return
        logger.info(f"[{self.name}] waiting for {self.label} to be ready")
        self._wait(self._ready, 'ready', cancel_event)

    def _wait_until_deleted(self, cancel_event: Optional[threading.Event]) -> None:
        logger.info(f"[{self.name}] waiting for {self.label} to be deleted")
        self._wait(lambda: not self._exists(), 'deleted', cancel_event)

    def _wait(self, condition, state: str, cancel_event: Optional[threading.Event]) -> None:
        """Poll condition within max_wait_seconds, raising on timeout."""
        try:
            met = wait_until(
                condition,
                timeout=self.max_wait_seconds,
                interval=self.poll_interval,
                cancel_event=cancel_event,
            )
        except WaitCancelled as e:
            raise ResourceActionCancelled(
                f"Cancelled while waiting for {self.label} to be {state}"
            ) from e
        if not met:
            raise ResourceTimeoutError(
                f"{self.label} was not {state} in {self.max_wait_seconds} seconds",
                resource=self.name,
                seconds=self.max_wait_seconds,
            )

    def _pause(self, cancel_event: Optional[threading.Event]) -> None:
        """Sleep one poll interval."""
        try:
            wait_until(lambda: True, timeout=0, interval=self.poll_interval,
                       cancel_event=cancel_event)
        except WaitCancelled as e:
            raise ResourceActionCancelled(f"Cancelled while settling {self.label}") from e
