"""
Thread based watch manager for the MultiClusterEngine controller
"""

# Standard
from typing import List, Optional
import threading

# First Party
import alog

# Local
from .. import constants
from ..components import managed_kinds
from ..controller import MultiClusterEngineController
from ..deploy_manager import DeployManagerBase, OpenshiftDeployManager
from ..reconcile import ReconcileManager
from .threads import ReconcileThread, TimerThread, WatchThread
from .utils import ResourceId

log = alog.use_channel("PYTHW")


class PythonWatchManager:
    """The PythonWatchManager uses the kubernetes watch client to watch the
    primary kind and every kind the components produce, and runs reconciles
    on a ReconcileThread. It owns all of its threads.
    """

    def __init__(
        self,
        controller: Optional[MultiClusterEngineController] = None,
        deploy_manager: Optional[DeployManagerBase] = None,
        reconcile_manager: Optional[ReconcileManager] = None,
    ):
        """
        Args:
            controller:  Optional[MultiClusterEngineController]
                The controller to run
            deploy_manager:  Optional[DeployManagerBase]
                An optional DeployManager override
            reconcile_manager:  Optional[ReconcileManager]
                An optional ReconcileManager override
        """
        self.controller = controller or MultiClusterEngineController()
        if deploy_manager is None:
            log.debug("Using OpenshiftDeployManager")
            deploy_manager = OpenshiftDeployManager()
        self.deploy_manager = deploy_manager
        self.reconcile_manager = reconcile_manager or ReconcileManager(
            deploy_manager=self.deploy_manager, controller=self.controller
        )

        self.shutdown = threading.Event()

        self.timer_thread = TimerThread()
        self.reconcile_thread = ReconcileThread(
            reconcile_manager=self.reconcile_manager,
            deploy_manager=self.deploy_manager,
            timer_thread=self.timer_thread,
        )

        self.primary_id = ResourceId(
            api_version=self.controller.api_version(), kind=self.controller.kind
        )
        self.watch_threads: List[WatchThread] = [self._make_watch(self.primary_id)]
        for api_version, kind in managed_kinds():
            self.watch_threads.append(
                self._make_watch(
                    ResourceId(api_version=api_version, kind=kind),
                    label_selector=constants.OWNER_LABEL_NAME,
                )
            )

    def __str__(self):
        return f"PythonWatchManager({self.controller})"

    ## Interface ###############################################################

    def watch(self) -> bool:
        """Start all threads

        Returns:
            success:  bool
                True if the threads were started
        """
        log.info("Starting %s", self)
        if self.shutdown.is_set():
            return False

        self.reconcile_thread.start_thread()
        for watch_thread in self.watch_threads:
            log.debug("Starting watch_thread: %s", watch_thread.name)
            watch_thread.start_thread()
        return True

    def wait(self):
        """Wait for shutdown to be signaled"""
        self.shutdown.wait()

    def stop(self):
        """Stop all threads, cancelling any in-flight reconcile"""
        log.info("Stopping %s", self)
        self.shutdown.set()
        for watch_thread in self.watch_threads:
            watch_thread.stop_thread()
        self.reconcile_thread.stop_thread()

    ## Helper Functions ########################################################

    def _make_watch(
        self, resource_id: ResourceId, label_selector: Optional[str] = None
    ) -> WatchThread:
        log.debug3("Adding watch for %s", resource_id.global_id)
        return WatchThread(
            self.reconcile_thread,
            resource_id.kind,
            resource_id.api_version,
            primary=self.primary_id,
            label_selector=label_selector,
            deploy_manager=self.deploy_manager,
        )
