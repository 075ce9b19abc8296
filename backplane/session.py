"""
State for a single in-progress reconcile pass
"""

# Standard
from typing import Optional
import threading
import time

# First Party
import aconfig
import alog

# Local
from .deploy_manager import DeployManagerBase
from .exceptions import ReconcileCancelledError

log = alog.use_channel("SESSION")


class Session:
    """Holds the primary resource snapshot, the deploy manager and the
    cancellation state for one pass
    """

    __slots__ = [
        "__id",
        "__primary",
        "__deploy_manager",
        "__operator_namespace",
        "__cancel_event",
        "__deadline",
    ]

    def __init__(  # pylint: disable=too-many-arguments
        self,
        reconciliation_id: str,
        primary: dict,
        deploy_manager: DeployManagerBase,
        operator_namespace: str,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            reconciliation_id:  str
                Short id attached to this pass's logs
            primary:  dict
                The primary resource as read at the start of the pass
            deploy_manager:  DeployManagerBase
                The deploy manager for all cluster calls of the pass
            operator_namespace:  str
                Namespace holding the image override ConfigMap
            cancel_event:  Optional[threading.Event]
                Set by the controller when the primary is deleted or the
                operator shuts down
            timeout:  Optional[float]
                Seconds after which the pass is cancelled
        """
        if not isinstance(primary, aconfig.Config):
            primary = aconfig.Config(primary, override_env_vars=False)
        for key in ["kind", "apiVersion", "metadata"]:
            assert key in primary, f"Primary resource missing {key}"
        assert "name" in primary.metadata, "Primary resource missing metadata.name"

        self.__id = reconciliation_id
        self.__primary = primary
        self.__deploy_manager = deploy_manager
        self.__operator_namespace = operator_namespace
        self.__cancel_event = cancel_event or threading.Event()
        self.__deadline = time.monotonic() + timeout if timeout else None

    ## Properties ##############################################################

    @property
    def id(self) -> str:  # pylint: disable=invalid-name
        return self.__id

    @property
    def primary(self) -> aconfig.Config:
        return self.__primary

    @property
    def deploy_manager(self) -> DeployManagerBase:
        return self.__deploy_manager

    @property
    def operator_namespace(self) -> str:
        return self.__operator_namespace

    @property
    def kind(self) -> str:
        return self.primary.kind

    @property
    def api_version(self) -> str:
        return self.primary.apiVersion

    @property
    def metadata(self) -> aconfig.Config:
        return self.primary.metadata

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def uid(self) -> Optional[str]:
        return self.metadata.get("uid")

    @property
    def spec(self) -> aconfig.Config:
        return self.primary.get("spec") or aconfig.Config({})

    @property
    def status(self) -> dict:
        return self.primary.get("status") or {}

    ## Cancellation ############################################################

    @property
    def cancelled(self) -> bool:
        return self.__cancel_event.is_set() or (
            self.__deadline is not None and time.monotonic() > self.__deadline
        )

    def assert_active(self):
        """Raise ReconcileCancelledError if the pass should stop. Called between
        cluster calls so that no write starts after cancellation.
        """
        if self.__cancel_event.is_set():
            log.debug("Cancel requested for %s", self.name)
            raise ReconcileCancelledError(f"Reconcile of {self.name} was cancelled")
        if self.__deadline is not None and time.monotonic() > self.__deadline:
            log.debug("Deadline passed for %s", self.name)
            raise ReconcileCancelledError(
                f"Reconcile of {self.name} exceeded its deadline"
            )
