"""
Shared types and helpers for the watch manager threads
"""

# Standard
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from functools import cached_property
from typing import Callable, Optional, Union

# Local
from .. import config
from ..deploy_manager import KubeEventType
from ..managed_object import ManagedObject

## Constants ###################################################################

# Forward declaration of ReconciliationResult
RECONCILIATION_RESULT_TYPE = "ReconciliationResult"

# Minimum wait time between checks in the timer thread
MIN_SLEEP_TIME = 0.1

# Seconds to wait for each running reconcile to finish on shutdown
JOIN_RECONCILE_TIMEOUT = 5


## Resource Identity ###########################################################


@dataclass(eq=True, frozen=True)
class ResourceId:
    """Class containing the information needed to identify a resource"""

    api_version: str
    kind: str
    name: str = None
    namespace: str = None

    @cached_property
    def global_id(self) -> str:
        """Get the global_id for a resource in the form kind.version.group"""
        group_version = self.api_version.split("/")
        return ".".join([self.kind, *reversed(group_version)])

    @cached_property
    def namespaced_id(self) -> str:
        """Get the namespace specific id for a resource"""
        return f"{self.namespace}.{self.global_id}"

    def get_id(self) -> str:
        return self.namespaced_id if self.namespace else self.global_id

    def get_named_id(self) -> str:
        return f"{self.name}.{self.get_id()}"

    def get_resource(self) -> dict:
        """A resource template carrying only this identity"""
        metadata = {"name": self.name}
        if self.namespace:
            metadata["namespace"] = self.namespace
        return {"kind": self.kind, "apiVersion": self.api_version, "metadata": metadata}

    @classmethod
    def from_resource(cls, resource: Union[ManagedObject, dict]) -> "ResourceId":
        metadata = resource.get("metadata", {}) or {}
        return cls(
            api_version=resource.get("apiVersion"),
            kind=resource.get("kind"),
            namespace=metadata.get("namespace"),
            name=metadata.get("name"),
        )

    @classmethod
    def from_owner_ref(cls, owner_ref: dict, namespace: str = None) -> "ResourceId":
        return cls(
            api_version=owner_ref.get("apiVersion"),
            kind=owner_ref.get("kind"),
            namespace=namespace,
            name=owner_ref.get("name"),
        )


## Reconcile Requests ##########################################################


class ReconcileRequestType(Enum):
    """Request types beyond the KubeEventTypes delivered by watches"""

    # A requeue asked for by a finished reconcile
    REQUEUED = "REQUEUED"

    # An event on a resource owned by the primary
    DEPENDENT = "DEPENDENT"

    # Used as a sentinel to alert threads to stop
    STOPPED = "STOPPED"


@dataclass
class ReconcileRequest:
    """One request to the ReconcileThread. Only the identity of the resource
    matters since every pass re-reads it.
    """

    type: Union[ReconcileRequestType, KubeEventType]
    resource: Optional[ResourceId]
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def key(self) -> Optional[str]:
        """The dedup key of the primary resource"""
        return self.resource.get_named_id() if self.resource else None


@dataclass
class ReconcileCompletion:
    """Sent back to the ReconcileThread when a reconcile worker finishes"""

    request: ReconcileRequest
    result: Optional[RECONCILIATION_RESULT_TYPE]

    @property
    def key(self) -> str:
        return self.request.key


## Timer #######################################################################


@dataclass(order=True)
class TimerEvent:
    """Class for keeping track of an item in the timer queue. Time is the
    only comparable field to support the TimerThreads priority queue"""

    time: datetime
    action: Callable = field(compare=False)
    args: tuple = field(default_factory=tuple, compare=False)
    kwargs: dict = field(default_factory=dict, compare=False)
    stale: bool = field(default=False, compare=False)

    def cancel(self):
        """Cancel this event. It will not be executed when read from the
        queue"""
        self.stale = True


## Backoff #####################################################################


def compute_backoff(
    failures: int,
    base_seconds: Optional[float] = None,
    max_seconds: Optional[float] = None,
) -> timedelta:
    """Delay before retrying after the given number of consecutive transient
    failures: base * 2**(failures - 1), capped at max
    """
    base_seconds = float(
        config.backoff.base_seconds if base_seconds is None else base_seconds
    )
    max_seconds = float(
        config.backoff.max_seconds if max_seconds is None else max_seconds
    )
    exponent = max(failures, 1) - 1
    # Cap the exponent so huge failure counts don't overflow the float
    delay = base_seconds * 2 ** min(exponent, 64)
    return timedelta(seconds=min(delay, max_seconds))
