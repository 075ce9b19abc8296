"""
DeployManager that talks to a live cluster through the openshift
DynamicClient. This is the implementation used whenever the operator is not
running in dry-run mode.
"""

# Standard
from typing import Callable, Iterator, List, Optional, Tuple
import copy
import threading
import time

# Third Party
from kubernetes import client
from kubernetes.watch import Watch
from openshift.dynamic import DynamicClient
from openshift.dynamic.apply import LAST_APPLIED_CONFIG_ANNOTATION, recursive_diff
from openshift.dynamic.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ResourceNotFoundError,
    ResourceNotUniqueError,
    UnprocessibleEntityError,
)
from openshift.dynamic.resource import Resource
import kubernetes
import urllib3

# First Party
import alog

# Local
from .. import config
from ..exceptions import assert_cluster
from ..managed_object import ManagedObject
from .base import DeployManagerBase
from .kube_event import KubeEventType, KubeWatchEvent

log = alog.use_channel("OSFTD")

# CITE: https://github.com/kubernetes-client/python/blob/master/examples/watch/timeout-settings.md
SERVER_WATCH_TIMEOUT = 3600
CLIENT_WATCH_TIMEOUT = 30

# Metadata written by the API server that never counts as a change
_SERVER_METADATA = [
    "resourceVersion",
    "generation",
    "managedFields",
    "uid",
    "creationTimestamp",
]


class OpenshiftDeployManager(DeployManagerBase):
    """DeployManager backed by the openshift DynamicClient"""

    def __init__(self):
        self._client = None

        # Concurrent status writes from several reconcile threads would
        # otherwise race into 409s
        self._status_lock = threading.Lock()

    @property
    def client(self) -> DynamicClient:
        if self._client is None:
            self._client = self._setup_client()
        return self._client

    @alog.logged_function(log.debug2)
    def deploy(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        return self._retried_operation(resource_definitions, self._apply)

    @alog.logged_function(log.debug2)
    def disable(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        return self._retried_operation(resource_definitions, self._disable)

    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        resources = self._get_resource_handle(kind, api_version)
        if not resources:
            return True, None
        try:
            resource = resources.get(name=name, namespace=namespace)
        except ForbiddenError:
            log.warning(
                "Fetching [%s/%s] forbidden in namespace [%s]", kind, name, namespace
            )
            return False, None
        except NotFoundError:
            log.debug2("No object [%s/%s] in namespace [%s]", kind, name, namespace)
            return True, None
        return True, resource.to_dict()

    def filter_objects_current_state(
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
    ) -> Tuple[bool, List[dict]]:
        resources = self._get_resource_handle(kind, api_version)
        if not resources:
            return True, []
        try:
            list_obj = resources.get(label_selector=label_selector, namespace=namespace)
        except ForbiddenError:
            log.warning("Listing [%s] forbidden in namespace [%s]", kind, namespace)
            return False, []
        except NotFoundError:
            log.debug2("No objects of kind [%s] in namespace [%s]", kind, namespace)
            return True, []
        return True, list_obj.to_dict().get("items", [])

    def watch_objects(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
        resource_version: Optional[str] = None,
        watch_manager: Optional[Watch] = None,
    ) -> Iterator[KubeWatchEvent]:
        watch_manager = watch_manager or Watch()
        resource_handle = self._get_resource_handle(kind, api_version)
        assert_cluster(
            resource_handle,
            f"Failed to fetch resource handle for {api_version}/{kind}",
        )

        resource_version = resource_version or 0
        while True:
            try:
                for event_obj in watch_manager.stream(
                    resource_handle.get,
                    resource_version=resource_version,
                    namespace=namespace,
                    label_selector=label_selector,
                    serialize=False,
                    timeout_seconds=SERVER_WATCH_TIMEOUT,
                    _request_timeout=CLIENT_WATCH_TIMEOUT,
                ):
                    event_resource = ManagedObject(event_obj["object"])
                    resource_version = (
                        event_resource.metadata.get("resourceVersion")
                        or resource_version
                    )
                    yield KubeWatchEvent(
                        KubeEventType(event_obj["type"]), event_resource
                    )
            except client.exceptions.ApiException as exception:
                if exception.status != 410:
                    log.info("Unknown ApiException received, re-raising")
                    raise
                log.debug2("Resource version expired, restarting watch %s", kind)
                resource_version = None
            except urllib3.exceptions.ReadTimeoutError:
                log.debug4("Watch socket closed, restarting watch %s", kind)
            except urllib3.exceptions.ProtocolError:
                log.debug2("Invalid chunk from server, restarting watch %s", kind)

            if watch_manager._stop:  # pylint: disable=protected-access
                log.debug("Watch stopped for %s/%s", api_version, kind)
                return

    def set_status(
        self,
        kind: str,
        name: str,
        namespace: Optional[str],
        status: dict,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, bool]:
        # The identifiers alone are enough for the shared retry wrapper
        resource_definitions = [
            {
                "kind": kind,
                "apiVersion": api_version,
                "metadata": {"name": name, "namespace": namespace},
            }
        ]
        return self._retried_operation(
            resource_definitions,
            self._set_status,
            status=status,
        )

    ## Implementation Helpers ##################################################

    @staticmethod
    def _setup_client() -> DynamicClient:
        """Use in-cluster config when available and fall back to kubeconfig"""
        try:
            log.debug2("Running with in-cluster config")
            kube_config = kubernetes.client.Configuration()
            kubernetes.config.load_incluster_config(client_configuration=kube_config)
            return DynamicClient(kubernetes.client.ApiClient(kube_config))
        except kubernetes.config.ConfigException:
            log.debug2("Running with out-of-cluster config")
            return DynamicClient(kubernetes.config.new_client_from_config())

    def _get_resource_handle(
        self, kind: str, api_version: Optional[str]
    ) -> Optional[Resource]:
        try:
            return self.client.resources.get(kind=kind, api_version=api_version)
        except (ResourceNotFoundError, ResourceNotUniqueError):
            log.debug("No unique resource kind [%s/%s] found", api_version, kind)
            return None

    @staticmethod
    def _clean_manifest(manifest: dict) -> dict:
        manifest = copy.deepcopy(manifest)
        metadata = manifest.get("metadata", {})
        for field in _SERVER_METADATA:
            metadata.pop(field, None)
        annotations = metadata.get("annotations") or {}
        annotations.pop(LAST_APPLIED_CONFIG_ANNOTATION, None)
        if "annotations" in metadata and not annotations:
            del metadata["annotations"]
        manifest.pop("status", None)
        return manifest

    @classmethod
    def _manifest_diff(cls, current: dict, desired: dict) -> bool:
        """Whether the desired manifest differs from the current object in any
        field other than server-managed metadata
        """
        diff = recursive_diff(
            cls._clean_manifest(current), cls._clean_manifest(desired)
        )
        log.debug3("Manifest diff: %s", diff)
        return bool(diff)

    @staticmethod
    def _get_resource_identifiers(resource_definition: dict):
        metadata = resource_definition.get("metadata", {})
        return (
            resource_definition.get("apiVersion"),
            resource_definition.get("kind"),
            metadata.get("name"),
            metadata.get("namespace"),
        )

    def _retried_operation(
        self,
        resource_definitions: List[dict],
        operation: Callable,
        **kwargs,
    ) -> Tuple[bool, bool]:
        """Run the operation on each resource in order, stopping at the first
        failure so that later resources are never written ahead of earlier ones
        """
        if not resource_definitions:
            return True, False

        success = True
        changed = False
        for resource_definition in resource_definitions:
            try:
                changed = (
                    self._run_with_retries(
                        operation,
                        config.deploy_retries,
                        resource_definition=resource_definition,
                        **kwargs,
                    )
                    or changed
                )
            except Exception as err:  # pylint: disable=broad-except
                log.warning(
                    "Operation [%s] failed to execute: %s",
                    operation.__name__,
                    err,
                    exc_info=True,
                )
                success = False
                break
        return success, changed

    def _run_with_retries(
        self,
        operation: Callable,
        remaining_retries: int,
        resource_definition: dict,
        **kwargs,
    ) -> bool:
        """Run a single operation, retrying conflicts with a refreshed
        resourceVersion and a linearly growing sleep
        """
        try:
            return operation(resource_definition=resource_definition, **kwargs)
        except ConflictError as err:
            if not remaining_retries:
                raise
            log.debug2("Handling ConflictError: %s", err)
            attempt = config.deploy_retries - remaining_retries + 1
            time.sleep(config.retry_backoff_base_seconds * attempt)

            api_version, kind, name, namespace = self._get_resource_identifiers(
                resource_definition
            )
            success, content = self.get_object_current_state(
                kind=kind, name=name, namespace=namespace, api_version=api_version
            )
            assert_cluster(
                success and content is not None,
                f"Failed to refresh resourceVersion for {api_version}/{kind}/{name}",
            )
            resource_definition.setdefault("metadata", {})["resourceVersion"] = (
                content["metadata"]["resourceVersion"]
            )
            return self._run_with_retries(
                operation, remaining_retries - 1, resource_definition, **kwargs
            )

    ## Operations ##############################################################

    def _server_side_apply(self, resource_handle: Resource, resource_definition: dict):
        api_version, kind, name, namespace = self._get_resource_identifiers(
            resource_definition
        )
        log.debug2("Applying [%s/%s/%s] in %s", api_version, kind, name, namespace)
        try:
            return resource_handle.server_side_apply(
                resource_definition,
                name=name,
                namespace=namespace,
                field_manager=config.field_manager,
            ).to_dict()
        except ConflictError:
            log.debug("Forcing field manager conflict for [%s/%s]", kind, name)
            return resource_handle.server_side_apply(
                resource_definition,
                name=name,
                namespace=namespace,
                field_manager=config.field_manager,
                force_conflicts=True,
            ).to_dict()

    def _apply(self, resource_definition: dict) -> bool:
        """Create or update one object in place

        Returns:
            changed:  bool
                Whether the live object changed meaningfully
        """
        api_version, kind, name, namespace = self._get_resource_identifiers(
            resource_definition
        )
        success, current = self.get_object_current_state(
            kind=kind, name=name, namespace=namespace, api_version=api_version
        )
        assert_cluster(success, f"Failed to fetch {api_version}/{kind}/{name}")
        current = current or {}
        if not self._manifest_diff(current, resource_definition):
            log.debug2("No change for [%s/%s]", kind, name)
            return False

        resource_definition.setdefault("metadata", {})["managedFields"] = None
        resource_handle = self._get_resource_handle(kind, api_version)
        assert_cluster(
            resource_handle,
            f"Failed to fetch resource handle for {api_version}/{kind}",
        )
        try:
            applied = self._server_side_apply(resource_handle, resource_definition)
        except UnprocessibleEntityError as err:
            if not (config.deploy_unprocessable_put_fallback and current):
                raise
            log.debug("Falling back to PUT on 422: %s", err)
            applied = resource_handle.replace(
                resource_definition,
                name=name,
                namespace=namespace,
                field_manager=config.field_manager,
            ).to_dict()

        # The applied object may still equal the current one, e.g. when a
        # field was only dropped from the applied manifest
        return self._manifest_diff(current, applied)

    def _disable(self, resource_definition: dict) -> bool:
        """Delete one object, treating a missing kind or object as success"""
        api_version, kind, name, namespace = self._get_resource_identifiers(
            resource_definition
        )
        try:
            resource_handle = self.client.resources.get(
                api_version=api_version, kind=kind
            )
            log.debug2(
                "Deleting [%s/%s/%s] from %s", api_version, kind, name, namespace
            )
            resource_handle.delete(name=name, namespace=namespace)
        except (ResourceNotFoundError, NotFoundError) as err:
            log.debug2("Nothing to delete for [%s/%s]: %s", kind, name, err)
            return False
        return True

    def _set_status(self, resource_definition: dict, status: dict) -> bool:
        api_version, kind, name, namespace = self._get_resource_identifiers(
            resource_definition
        )
        resource_handle = self.client.resources.get(api_version=api_version, kind=kind)
        with self._status_lock:
            resource = resource_handle.get(name=name, namespace=namespace).to_dict()
            if resource.get("status") == status:
                log.debug("Status has not changed. No update")
                return False
            resource["status"] = status
            resource_handle.status.replace(body=resource)
            log.debug2("Set status for [%s/%s] in %s", kind, name, namespace)
            return True
