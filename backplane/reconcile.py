"""
The ReconcileManager drives a single reconcile pass of a MultiClusterEngine.
It re-reads the primary resource, sets up logging and the session, runs the
controller and turns the outcome into a requeue decision.
"""

# Standard
from dataclasses import dataclass, field
from typing import Optional, Union
import datetime
import logging
import threading

# Third Party
from kubernetes.client.exceptions import ApiException
from openshift.dynamic.exceptions import DynamicApiError

# First Party
import aconfig
import alog

# Local
from . import config, constants, status
from .controller import MultiClusterEngineController
from .deploy_manager import (
    DeployManagerBase,
    DryRunDeployManager,
    OpenshiftDeployManager,
)
from .exceptions import BackplaneError, ReconcileCancelledError, assert_cluster
from .log_format import BackplaneJsonFormatter
from .session import Session
from .utils import generate_id, get_annotation, get_operator_namespace

log = alog.use_channel("RECONCILE")


## Data models #################################################################


@dataclass
class RequeueParams:
    """RequeueParams holds parameters for requeue request"""

    requeue_after: datetime.timedelta = field(
        default_factory=lambda: datetime.timedelta(
            seconds=float(config.requeue_after_seconds)
        )
    )


@dataclass
class ReconciliationResult:
    """ReconciliationResult is the result of a reconciliation session"""

    # Flag to control requeue of current reconcile request
    requeue: bool
    # Parameters for requeue request
    requeue_params: RequeueParams = field(default_factory=RequeueParams)
    # Flag to identify if the reconciliation raised an exception
    exception: Exception = None

    @property
    def transient(self) -> bool:
        """Whether the pass failed with an error expected to clear on its own"""
        return self.exception is not None and is_transient_error(self.exception)


def is_transient_error(error: Exception) -> bool:
    """Expected operator errors and API errors from below the deploy manager
    are transient. Everything else waits the default interval.
    """
    if isinstance(error, BackplaneError):
        return not error.is_fatal_error
    return isinstance(error, (ApiException, DynamicApiError))


## ReconcileManager ############################################################


class ReconcileManager:
    """This class manages reconciliations of MultiClusterEngine resources. Its
    primary function is to run reconciles given a resource and the current
    cluster state via a DeployManager.
    """

    def __init__(
        self,
        deploy_manager: Optional[DeployManagerBase] = None,
        controller: Optional[MultiClusterEngineController] = None,
        operator_namespace: Optional[str] = None,
    ):
        """
        Args:
            deploy_manager:  Optional[DeployManagerBase]
                Deploy manager shared by all passes. If not given, one is built
                from config.dry_run.
            controller:  Optional[MultiClusterEngineController]
                The controller to run
            operator_namespace:  Optional[str]
                Namespace holding the image override ConfigMap
        """
        self.deploy_manager = deploy_manager or self.setup_deploy_manager()
        self.controller = controller or MultiClusterEngineController()
        self.operator_namespace = operator_namespace or get_operator_namespace()

    def reconcile(
        self,
        resource: Union[dict, aconfig.Config],
        cancel_event: Optional[threading.Event] = None,
    ) -> ReconciliationResult:
        """This is the main entrypoint for reconciliations. The general
        reconcile path is as follows:

            1. Generate a reconciliation id and set up logging
            2. Re-read the primary resource, stopping if it is gone or being
               deleted
            3. Stop if the primary resource is paused
            4. Set up the Session
            5. Run the controller

        Args:
            resource:  Union[dict, aconfig.Config]
                The primary resource, or just enough of it to identify it.
                Content beyond the identity is not trusted.
            cancel_event:  Optional[threading.Event]
                Set to abort the pass between cluster calls

        Returns:
            reconcile_result:  ReconciliationResult
                The result of the reconcile
        """
        reconcile_id = generate_id()
        self.configure_logging(resource, reconcile_id)

        current = self.get_current_primary(resource)
        if current is None:
            log.info(
                "%s %s no longer exists",
                resource.get("kind"),
                resource.get("metadata", {}).get("name"),
            )
            return ReconciliationResult(requeue=False)

        if current.get("metadata", {}).get("deletionTimestamp"):
            log.info("%s is being deleted. Exiting reconciliation", self._name(current))
            return ReconciliationResult(requeue=False)

        if self._is_paused(current):
            log.info("%s is paused. Exiting reconciliation", self._name(current))
            self._update_resource_status(
                current,
                status.make_paused_status(
                    previous_status=current.get("status"),
                    observed_generation=current.get("metadata", {}).get("generation"),
                ),
            )
            return ReconciliationResult(requeue=False)

        session = Session(
            reconciliation_id=reconcile_id,
            primary=current,
            deploy_manager=self.deploy_manager,
            operator_namespace=self.operator_namespace,
            cancel_event=cancel_event,
            timeout=float(config.reconcile_timeout_seconds),
        )
        return self.run_controller(session)

    def safe_reconcile(
        self,
        resource: Union[dict, aconfig.Config],
        cancel_event: Optional[threading.Event] = None,
    ) -> ReconciliationResult:
        """This function calls out to reconcile but catches any errors thrown.
        Every error is recorded on the resource's status and the result always
        asks for a requeue, except when the pass was cancelled from outside.

        Args:
            resource:  Union[dict, aconfig.Config]
                The primary resource to reconcile
            cancel_event:  Optional[threading.Event]
                Set to abort the pass between cluster calls

        Returns:
            reconcile_result:  ReconciliationResult
                The result of the reconcile
        """
        try:
            return self.reconcile(resource, cancel_event)

        # Capture all generic exceptions
        except Exception as exc:  # pylint: disable=broad-except
            error = exc

        if (
            isinstance(error, ReconcileCancelledError)
            and cancel_event is not None
            and cancel_event.is_set()
        ):
            log.info("Reconcile of %s cancelled", self._name(resource))
            return ReconciliationResult(requeue=False, exception=error)

        log.warning("Handling caught error in reconcile: %s", error, exc_info=True)
        try:
            self._update_error_status(resource, error)
            log.debug("Updated status with error message")
        except Exception as exc:  # pylint: disable=broad-except
            log.error("Failed to update status: %s", exc, exc_info=True)

        log.info("Requeuing %s due to error during reconcile", self._name(resource))
        return ReconciliationResult(
            requeue=True, requeue_params=RequeueParams(), exception=error
        )

    ## Reconciliation Stages ###################################################

    @classmethod
    def configure_logging(
        cls, resource: Union[dict, aconfig.Config], reconciliation_id: str
    ):
        """Configure the logging for a given reconcile, honoring the log level
        and filter annotations on the resource

        Args:
            resource:  Union[dict, aconfig.Config]
                The resource to get annotation overrides from
            reconciliation_id:  str
                The unique id for the reconciliation
        """
        default_level = (
            get_annotation(resource, constants.LOG_DEFAULT_LEVEL_NAME)
            or config.log_level
        )
        filters = (
            get_annotation(resource, constants.LOG_FILTERS_NAME) or config.log_filters
        )

        # Keep the installed handler so output goes to the same place
        handler_generator = None
        if logging.root.handlers:
            old_handler = logging.root.handlers[0]

            def handler_generator():
                return old_handler

        alog.configure(
            default_level=default_level,
            filters=filters,
            formatter=BackplaneJsonFormatter(resource, reconciliation_id)
            if config.log_json
            else "pretty",
            thread_id=config.log_thread_id,
            handler_generator=handler_generator,
        )
        log.debug("Starting reconcile %s", reconciliation_id)

    @classmethod
    def setup_deploy_manager(cls) -> DeployManagerBase:
        """Build the deploy manager selected by config"""
        if config.dry_run:
            log.debug("Using DryRunDeployManager")
            return DryRunDeployManager()

        log.debug("Using OpenshiftDeployManager")
        return OpenshiftDeployManager()

    def get_current_primary(
        self, resource: Union[dict, aconfig.Config]
    ) -> Optional[dict]:
        """Fetch the primary resource's current content. Queued content may be
        stale, so the pass always works from what the cluster holds now.
        """
        metadata = resource.get("metadata", {})
        success, current = self.deploy_manager.get_object_current_state(
            kind=resource.get("kind", constants.PRIMARY_KIND),
            name=metadata.get("name"),
            namespace=metadata.get("namespace"),
            api_version=resource.get("apiVersion", constants.PRIMARY_API_VERSION),
        )
        assert_cluster(success, f"Failed to fetch {self._name(resource)}")
        return current

    def run_controller(self, session: Session) -> ReconciliationResult:
        """Run the controller against the session and decide on a requeue

        Args:
            session:  Session
                The current Session state

        Returns:
            reconciliation_result:  ReconciliationResult
                The result of the reconcile
        """
        log.info("Reconciling %s/%s", session.kind, session.name)
        with alog.ContextTimer(log.debug, "Reconcile of %s took: ", session.name):
            health = self.controller.run_reconcile(session)

        requeue_after = self.controller.requeue_after(health)
        log.debug("Pass ended %s. Requeue after: %s", health.value, requeue_after)
        if requeue_after is None:
            return ReconciliationResult(requeue=False)
        return ReconciliationResult(
            requeue=True, requeue_params=RequeueParams(requeue_after=requeue_after)
        )

    ## Implementation Details ##################################################

    @staticmethod
    def _is_paused(resource: dict) -> bool:
        paused = get_annotation(resource, constants.PAUSE_ANNOTATION_NAME)
        return bool(paused) and paused.lower() == "true"

    @staticmethod
    def _name(resource: Union[dict, aconfig.Config]) -> str:
        return f"{resource.get('kind')}/{resource.get('metadata', {}).get('name')}"

    def _update_resource_status(self, resource: dict, new_status: dict) -> dict:
        metadata = resource.get("metadata", {})
        return status.update_resource_status(
            self.deploy_manager,
            resource.get("kind"),
            resource.get("apiVersion"),
            metadata.get("name"),
            metadata.get("namespace"),
            new_status,
        )

    def _update_error_status(
        self, resource: Union[dict, aconfig.Config], error: Exception
    ) -> dict:
        """Record a failed pass on the resource. The resource is re-read so
        errors at any stage can still be reported.
        """
        current = self.get_current_primary(resource)
        if current is None:
            log.debug("Not recording error on missing %s", self._name(resource))
            return {}
        return self._update_resource_status(
            current,
            status.make_error_status(
                error,
                previous_status=current.get("status"),
                observed_generation=current.get("metadata", {}).get("generation"),
            ),
        )
