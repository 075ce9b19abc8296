"""
The WatchThread monitors the cluster for events on one kind and turns them
into reconcile requests for the primary resource
"""

# Standard
from typing import List, Optional
import os

# Third Party
from kubernetes import watch

# First Party
import alog

# Local
from ... import config
from ...deploy_manager import DeployManagerBase, KubeEventType, KubeWatchEvent
from ...utils import parse_time_delta
from ..filters import ResourceFilters
from ..utils import ReconcileRequest, ReconcileRequestType, ResourceId
from .base import ThreadBase

log = alog.use_channel("WTCHTHRD")

# Forward declaration of ReconcileThread
RECONCILE_THREAD_TYPE = "ReconcileThread"


class WatchThread(ThreadBase):  # pylint: disable=too-many-instance-attributes
    """Watches one kind either cluster-wide or in one namespace. Events on the
    primary kind pass through the primary filters and request a reconcile of
    that resource. Events on any other kind request a reconcile of the primary
    resource named by the controller owner reference.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        reconcile_thread: RECONCILE_THREAD_TYPE,
        kind: str,
        api_version: str,
        primary: ResourceId,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
        deploy_manager: Optional[DeployManagerBase] = None,
    ):
        """
        Args:
            reconcile_thread:  ReconcileThread
                The reconcile thread to submit requests to
            kind:  str
                The kind to watch
            api_version:  str
                The api_version to watch
            primary:  ResourceId
                The kind and api_version of the primary resource
            namespace:  Optional[str]
                The namespace to watch, all namespaces if None
            label_selector:  Optional[str]
                Restricts the watch to matching objects
            deploy_manager:  Optional[DeployManagerBase]
                The deploy manager to stream events from
        """
        super().__init__(
            name=f"watch_thread_{api_version}_{kind}",
            daemon=True,
            deploy_manager=deploy_manager,
        )
        self.reconcile_thread = reconcile_thread
        self.kind = kind
        self.api_version = api_version
        self.primary = primary
        self.namespace = namespace
        self.label_selector = label_selector

        self.resource_filters = ResourceFilters()
        self.kubernetes_watch = watch.Watch()

        self.attempts_left = config.python_watch_manager.watch_retry_count
        self.retry_delay = parse_time_delta(
            config.python_watch_manager.watch_retry_delay
        )

    @property
    def watches_primary(self) -> bool:
        return (
            self.kind == self.primary.kind
            and self.api_version == self.primary.api_version
        )

    def run(self):
        """Stream events from the deploy manager until stopped, restarting
        the stream on failure a limited number of times
        """
        list_resource_version = 0
        while True:
            try:
                if not self.check_preconditions():
                    log.debug("Checking preconditions failed. Shutting down")
                    return

                for event in self.deploy_manager.watch_objects(
                    self.kind,
                    self.api_version,
                    namespace=self.namespace,
                    label_selector=self.label_selector,
                    resource_version=list_resource_version,
                    watch_manager=self.kubernetes_watch,
                ):
                    if not self.check_preconditions():
                        log.debug("Checking preconditions failed. Shutting down")
                        return

                    for request in self.requests_for_event(event):
                        log.debug2("Requesting reconcile %s for %s", request, event)
                        self.reconcile_thread.push_request(request)

                # Update the resource version to only get new events
                list_resource_version = self.kubernetes_watch.resource_version
            except Exception as exc:  # pylint: disable=broad-except
                log.info(
                    "Exception raised when attempting to watch %s",
                    repr(exc),
                    exc_info=exc,
                )
                if self.attempts_left <= 0:
                    log.error(
                        "Unable to start watch within %d attempts",
                        config.python_watch_manager.watch_retry_count,
                    )
                    os._exit(1)

                if not self.wait_on_precondition(self.retry_delay.total_seconds()):
                    log.debug("Checking preconditions failed during retry")
                    return
                self.attempts_left = self.attempts_left - 1
                log.info("Restarting watch with %d attempts left", self.attempts_left)

    ## Class Interface #########################################################

    def stop_thread(self):
        """Override stop_thread to stop the kubernetes client's Watch as well"""
        super().stop_thread()
        self.kubernetes_watch.stop()

    ## Public Interface ########################################################

    def requests_for_event(self, event: KubeWatchEvent) -> List[ReconcileRequest]:
        """Map one watch event to the reconcile requests it causes

        Args:
            event:  KubeWatchEvent
                The event read from the stream

        Returns:
            requests:  List[ReconcileRequest]
                Zero or more requests for primary resources
        """
        resource = event.resource
        if self.watches_primary:
            if not self.resource_filters.update_and_test(resource, event.type):
                log.debug2("Skipping filtered event %s", event.type.value)
                return []
            return [ReconcileRequest(event.type, ResourceId.from_resource(resource))]

        requests = []
        for owner_ref in resource.owner_references:
            if not owner_ref.get("controller"):
                continue
            if (
                owner_ref.get("kind") != self.primary.kind
                or owner_ref.get("apiVersion") != self.primary.api_version
            ):
                continue

            # The primary kind is cluster-scoped
            owner_id = ResourceId.from_owner_ref(owner_ref)
            if event.type == KubeEventType.DELETED:
                log.info("Owned %s deleted, requeueing %s", resource, owner_id.name)
            requests.append(ReconcileRequest(ReconcileRequestType.DEPENDENT, owner_id))
        return requests
