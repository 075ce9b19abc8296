"""
The ReconcileThread is the heart of the watch manager. It deduplicates
requests by primary key, runs at most one reconcile per key on a bounded set
of worker threads, and schedules requeues and backoff.
"""

# Standard
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional
import os
import queue
import threading

# First Party
import alog

# Local
from ... import config
from ...deploy_manager import DeployManagerBase, KubeEventType
from ...reconcile import ReconcileManager, ReconciliationResult
from ..utils import (
    JOIN_RECONCILE_TIMEOUT,
    ReconcileCompletion,
    ReconcileRequest,
    ReconcileRequestType,
    TimerEvent,
    compute_backoff,
)
from .base import ThreadBase
from .timer import TimerThread

log = alog.use_channel("RCLTHRD")


@dataclass
class RunningReconcile:
    """A reconcile in flight on a worker thread"""

    request: ReconcileRequest
    thread: threading.Thread
    cancel_event: threading.Event


class ReconcileThread(ThreadBase):  # pylint: disable=too-many-instance-attributes
    """All bookkeeping happens on this thread. Workers only run the reconcile
    and report back through the request queue, so the maps below need no lock.
    """

    def __init__(
        self,
        reconcile_manager: Optional[ReconcileManager] = None,
        deploy_manager: Optional[DeployManagerBase] = None,
        timer_thread: Optional[TimerThread] = None,
        max_concurrent_reconciles: Optional[int] = None,
    ):
        """
        Args:
            reconcile_manager:  Optional[ReconcileManager]
                Runs each pass. Built around the deploy manager if not given.
            deploy_manager:  Optional[DeployManagerBase]
                The deploy manager used throughout the thread
            timer_thread:  Optional[TimerThread]
                Thread used to schedule requeues
            max_concurrent_reconciles:  Optional[int]
                Number of reconciles that may run at once across keys
        """
        super().__init__(
            name="reconcile_thread", daemon=True, deploy_manager=deploy_manager
        )
        self.reconcile_manager = reconcile_manager or ReconcileManager(
            deploy_manager=deploy_manager
        )
        self.timer_thread = timer_thread or TimerThread()
        self.request_queue = queue.Queue()

        self.running_reconciles: Dict[str, RunningReconcile] = {}
        self.pending_reconciles: Dict[str, ReconcileRequest] = {}
        self.event_map: Dict[str, TimerEvent] = {}
        self.failure_counts: Dict[str, int] = {}

        self.max_concurrent_reconciles = (
            max_concurrent_reconciles
            or config.python_watch_manager.max_concurrent_reconciles
            or os.cpu_count()
        )

    def run(self):
        """Wait for either a new request or a finished reconcile. A request for
        a key that is running, or that can't start for lack of workers, is held
        as the key's single pending request.
        """
        while True:
            item = self.request_queue.get()
            if not self.check_preconditions():
                return

            if isinstance(item, ReconcileCompletion):
                self._handle_completion(item)
            elif item.type == ReconcileRequestType.STOPPED:
                return
            else:
                self._handle_request(item)

    ## Class Interface #########################################################

    def start_thread(self):
        """Override start_thread to start the timer as well"""
        self.timer_thread.start_thread()
        super().start_thread()

    def stop_thread(self):
        """Cancel every running reconcile and wait for the workers to end"""
        super().stop_thread()
        self.timer_thread.stop_thread()
        for running in list(self.running_reconciles.values()):
            running.cancel_event.set()

        # Wake the control loop so it sees the shutdown
        self.request_queue.put(ReconcileRequest(ReconcileRequestType.STOPPED, None))
        if self.is_alive() and threading.current_thread() is not self:
            self.join(JOIN_RECONCILE_TIMEOUT)

        log.info("Waiting for running reconciles to end")
        for running in list(self.running_reconciles.values()):
            running.thread.join(JOIN_RECONCILE_TIMEOUT)
            if running.thread.is_alive():
                log.warning("Reconcile for %s did not stop", running.request.key)

    ## Public Interface ########################################################

    def push_request(self, request: ReconcileRequest):
        """Push request to the reconcile queue

        Args:
            request:  ReconcileRequest
                The ReconcileRequest to add to the queue
        """
        log.debug("Pushing request %s to reconcile queue", request)
        self.request_queue.put(request)

    ## Event Handlers ##########################################################

    def _handle_request(self, request: ReconcileRequest):
        key = request.key
        if request.type == KubeEventType.DELETED:
            self._cancel(key)
            return

        if key in self.running_reconciles or not self._start_reconcile(request):
            self._push_to_pending_reconcile(request)

    def _handle_completion(self, completion: ReconcileCompletion):
        key = completion.key
        self.running_reconciles.pop(key, None)
        result = completion.result
        log.info("Reconcile for %s completed with result %s", key, result)

        if key in self.event_map:
            log.debug2("Marking event as stale: %s", self.event_map[key])
            self.event_map.pop(key).cancel()

        # A pending request supersedes any requeue
        if key not in self.pending_reconciles:
            event = self._create_timer_event(completion.request, result)
            if event:
                self.event_map[key] = event

        # Freed a worker, so any pending key may start now
        for pending_key in list(self.pending_reconciles.keys()):
            if pending_key in self.running_reconciles:
                continue
            if not self._start_reconcile(self.pending_reconciles[pending_key]):
                break
            self.pending_reconciles.pop(pending_key)

    def _cancel(self, key: str):
        """The primary is gone: abort its pass and forget its state"""
        log.info("Cancelling reconciles for deleted %s", key)
        running = self.running_reconciles.get(key)
        if running:
            running.cancel_event.set()
        self.pending_reconciles.pop(key, None)
        self.failure_counts.pop(key, None)
        event = self.event_map.pop(key, None)
        if event:
            event.cancel()

    ## Requeue #################################################################

    def _create_timer_event(
        self, request: ReconcileRequest, result: Optional[ReconciliationResult]
    ) -> Optional[TimerEvent]:
        """Schedule the next pass for a key. Transient failures back off
        exponentially per key; the count resets once a pass succeeds.
        """
        key = request.key
        if result is None:
            return None

        if result.exception is None:
            self.failure_counts.pop(key, None)
        if not result.requeue:
            return None

        if result.transient:
            self.failure_counts[key] = self.failure_counts.get(key, 0) + 1
            delay = compute_backoff(self.failure_counts[key])
            log.debug(
                "Backing off %s for %s after %d failures",
                key,
                delay,
                self.failure_counts[key],
            )
        else:
            delay = result.requeue_params.requeue_after

        future_request = ReconcileRequest(
            ReconcileRequestType.REQUEUED, request.resource
        )
        log.debug3("Pushing requeue request to timer: %s", future_request)
        return self.timer_thread.put_event(
            datetime.now() + delay, self.push_request, future_request
        )

    ## Pending Requests ########################################################

    def _push_to_pending_reconcile(self, request: ReconcileRequest):
        """Hold a request as its key's pending request if it is the newest"""
        key = request.key
        current = self.pending_reconciles.get(key)
        if current is None or request.timestamp >= current.timestamp:
            log.debug3("Holding pending request %s", request)
            self.pending_reconciles[key] = request

    ## Workers #################################################################

    def _start_reconcile(self, request: ReconcileRequest) -> bool:
        """Start a worker for the request if the pool has room"""
        if self.should_stop():
            return False

        if len(self.running_reconciles) >= self.max_concurrent_reconciles:
            log.debug("Unable to start reconcile, max concurrent reconciles reached")
            return False

        log.info("Starting reconcile for request %s", request)
        cancel_event = threading.Event()
        worker = threading.Thread(
            target=self._run_reconcile,
            args=(request, cancel_event),
            name=f"reconcile_{request.key}",
            daemon=True,
        )
        self.running_reconciles[request.key] = RunningReconcile(
            request=request, thread=worker, cancel_event=cancel_event
        )
        worker.start()
        return True

    def _run_reconcile(self, request: ReconcileRequest, cancel_event: threading.Event):
        """Worker body. Always reports back so the key is released."""
        result = None
        try:
            result = self.reconcile_manager.safe_reconcile(
                request.resource.get_resource(), cancel_event
            )
        except Exception as exc:  # pylint: disable=broad-except
            log.error("Reconcile for %s raised: %s", request.key, exc, exc_info=True)
        finally:
            self.request_queue.put(ReconcileCompletion(request=request, result=result))
