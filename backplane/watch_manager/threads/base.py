"""
Module for the ThreadBase Class
"""

# Standard
from typing import Optional
import threading

# First Party
import alog

# Local
from ...deploy_manager import DeployManagerBase

log = alog.use_channel("TRDUTLS")


class ThreadBase(threading.Thread):
    """Base class for all other thread classes. This class handles generic
    starting and stopping
    """

    def __init__(
        self,
        name: Optional[str] = None,
        daemon: Optional[bool] = None,
        deploy_manager: Optional[DeployManagerBase] = None,
    ):
        """
        Args:
            name:  Optional[str]
                The name of the thread
            daemon:  Optional[bool]
                Whether python should wait for this thread to stop before exiting
            deploy_manager:  Optional[DeployManagerBase]
                The deploy manager available to this thread
        """
        self.deploy_manager = deploy_manager
        self.shutdown = threading.Event()
        super().__init__(name=name, daemon=daemon)

    ## Abstract Interface ######################################################

    def run(self):
        """Control loop for the thread. Once this function exits the thread stops"""
        raise NotImplementedError()

    ## Base Class Interface ####################################################

    def start_thread(self):
        """If the thread is not already alive start it"""
        if not self.is_alive():
            log.info("Starting %s: %s", self.__class__.__name__, self.name)
            self.start()

    def stop_thread(self):
        """Set the shutdown event"""
        log.info("Stopping %s: %s", self.__class__.__name__, self.name)
        self.shutdown.set()

    def should_stop(self) -> bool:
        return self.shutdown.is_set()

    def check_preconditions(self) -> bool:
        """Whether the thread should keep running"""
        return not self.should_stop()

    def wait_on_precondition(self, timeout: float) -> bool:
        """Wait for a period of time, only interrupted by shutdown"""
        self.shutdown.wait(timeout)
        return self.check_preconditions()
