"""
Utils and common classes for the watch manager tests
"""
# Standard
from collections import defaultdict
from queue import Queue
from typing import List, Optional
from uuid import uuid4
import random
import threading

# First Party
import alog

# Local
from backplane import constants
from backplane.managed_object import ManagedObject
from backplane.reconcile import ReconciliationResult
from backplane.watch_manager.threads.reconcile import ReconcileThread
from backplane.watch_manager.utils import ReconcileRequest

log = alog.use_channel("TEST")


### Mock Classes
class MockReconcileManager:
    """Stand in for the ReconcileManager that hands back canned results and
    records how many passes ran at once for each resource
    """

    def __init__(
        self,
        results: Optional[List[ReconciliationResult]] = None,
        wait_time: float = 0.1,
        default_result: Optional[ReconciliationResult] = None,
    ):
        self.results = list(results or [])
        self.wait_time = wait_time
        self.default_result = default_result or ReconciliationResult(requeue=False)
        self.calls = []
        self.cancelled = []
        self.in_flight = defaultdict(int)
        self.max_in_flight = defaultdict(int)
        self.max_total_in_flight = 0
        self._lock = threading.Lock()

    def safe_reconcile(self, resource, cancel_event=None):
        name = resource["metadata"]["name"]
        with self._lock:
            self.calls.append(name)
            self.in_flight[name] += 1
            self.max_in_flight[name] = max(
                self.max_in_flight[name], self.in_flight[name]
            )
            self.max_total_in_flight = max(
                self.max_total_in_flight, sum(self.in_flight.values())
            )
            result = self.results.pop(0) if self.results else self.default_result

        try:
            if cancel_event is not None and cancel_event.wait(self.wait_time):
                log.debug("Mock reconcile of %s cancelled", name)
                with self._lock:
                    self.cancelled.append(name)
                return ReconciliationResult(requeue=False)
            return result
        finally:
            with self._lock:
                self.in_flight[name] -= 1

    def call_count(self, name: Optional[str] = None) -> int:
        with self._lock:
            if name is None:
                return len(self.calls)
            return self.calls.count(name)


class MockedReconcileThread(ReconcileThread):
    """Subclass of ReconcileThread that records started and finished passes
    and every timer event it creates
    """

    def __init__(self, reconcile_manager=None, deploy_manager=None, **kwargs):
        self.requests = Queue()
        self.timer_events = Queue()
        self.reconciles_started = 0
        self.reconciles_finished = 0
        super().__init__(
            reconcile_manager=reconcile_manager or MockReconcileManager(),
            deploy_manager=deploy_manager,
            **kwargs,
        )

    def push_request(self, request: ReconcileRequest):
        self.requests.put(request)
        super().push_request(request)

    def _start_reconcile(self, request: ReconcileRequest) -> bool:
        started = super()._start_reconcile(request)
        if started:
            self.reconciles_started += 1
        return started

    def _handle_completion(self, completion):
        super()._handle_completion(completion)
        self.reconciles_finished += 1

    def _create_timer_event(self, request, result):
        timer_event = super()._create_timer_event(request, result)
        if timer_event:
            self.timer_events.put(timer_event)
        return timer_event


### Helper functions
def make_ownerref(resource, controller=True):
    metadata = resource.get("metadata", {})
    return {
        "apiVersion": resource.get("apiVersion"),
        "kind": resource.get("kind"),
        "name": metadata.get("name"),
        "uid": metadata.get("uid"),
        "controller": controller,
    }


def make_resource(
    kind=constants.PRIMARY_KIND,
    namespace=None,
    api_version=constants.PRIMARY_API_VERSION,
    name="multiclusterengine",
    spec=None,
    status=None,
    generation=1,
    resource_version=None,
    annotations=None,
    labels=None,
    owner_refs=None,
):
    metadata = {
        "name": name,
        "generation": generation,
        "resourceVersion": resource_version or str(random.randint(1, 1000)),
        "ownerReferences": owner_refs or [],
        "labels": labels or {},
        "uid": str(uuid4()),
        "annotations": annotations or {},
    }
    if namespace:
        metadata["namespace"] = namespace
    return {
        "kind": kind,
        "apiVersion": api_version,
        "metadata": metadata,
        "spec": spec or {},
        "status": status or {},
    }


def make_managed_object(*args, **kwargs):
    return ManagedObject(make_resource(*args, **kwargs))
