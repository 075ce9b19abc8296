"""
The DryRunDeployManager implements the DeployManager interface against an
in-memory cluster. It backs --dry-run and the unit tests.
"""

# Standard
from datetime import datetime, timedelta
from queue import Empty, Queue
from threading import RLock
from typing import Callable, Dict, Iterator, List, Optional, Tuple
import copy
import itertools
import uuid

# First Party
import alog

# Local
from ..managed_object import ManagedObject
from .base import DeployManagerBase
from .kube_event import KubeEventType, KubeWatchEvent

log = alog.use_channel("DRY-RUN")

# Metadata the cluster owns and which never counts as a change
_SERVER_METADATA = ["uid", "resourceVersion", "creationTimestamp", "generation"]


class DryRunDeployManager(DeployManagerBase):
    """Deploy manager holding cluster state in a dict keyed by
    (apiVersion, kind, namespace, name)
    """

    def __init__(self, resources: Optional[List[dict]] = None):
        self._cluster_content: Dict[tuple, dict] = {}
        self._lock = RLock()
        self._resource_versions = itertools.count(1)

        # Callbacks keyed by (apiVersion, kind)
        self._watches = {}
        self._delete_watches = {}

        self._deploy(resources or [], call_watches=False)

    ## Interface ###############################################################

    def deploy(self, resource_definitions):
        log.info("DRY RUN deploy")
        return self._deploy(resource_definitions)

    def disable(self, resource_definitions):
        log.info("DRY RUN disable")
        changed = False
        for resource in resource_definitions:
            key = ManagedObject(resource).key
            with self._lock:
                removed = self._cluster_content.pop(key, None)
            if removed is None:
                log.debug2("Nothing to delete for %s", key)
                continue
            changed = True
            for callback in self._get_callbacks(self._delete_watches, key):
                log.debug2("Calling delete watch [%s] for %s", callback, key)
                callback(copy.deepcopy(removed))
        return True, changed

    def get_object_current_state(self, kind, name, namespace=None, api_version=None):
        log.debug2(
            "DRY RUN get_object_current_state of [%s/%s] in [%s]", kind, name, namespace
        )
        with self._lock:
            matches = [
                obj
                for (obj_api_version, obj_kind, obj_namespace, obj_name), obj in (
                    self._cluster_content.items()
                )
                if obj_kind == kind
                and obj_name == name
                and obj_namespace == namespace
                and (api_version is None or obj_api_version == api_version)
            ]
            if len(matches) == 1:
                return True, copy.deepcopy(matches[0])
        return True, None

    def filter_objects_current_state(
        self,
        kind,
        namespace=None,
        api_version=None,
        label_selector=None,
    ):
        log.debug2(
            "DRY RUN filter_objects_current_state of [%s] in [%s] with [%s]",
            kind,
            namespace,
            label_selector,
        )
        matches = []
        with self._lock:
            for (obj_api_version, obj_kind, obj_namespace, _), obj in (
                self._cluster_content.items()
            ):
                if obj_kind != kind:
                    continue
                if api_version is not None and obj_api_version != api_version:
                    continue
                if namespace is not None and obj_namespace != namespace:
                    continue
                labels = obj.get("metadata", {}).get("labels") or {}
                if label_selector and not match_selector(labels, label_selector):
                    continue
                matches.append(copy.deepcopy(obj))
        return True, matches

    def set_status(self, kind, name, namespace, status, api_version=None):
        log.debug2("DRY RUN set_status of [%s/%s] in %s", kind, name, namespace)
        with self._lock:
            _, current = self.get_object_current_state(
                kind, name, namespace, api_version
            )
            if current is None:
                log.debug("Did not find [%s/%s] in %s", kind, name, namespace)
                return False, False
            changed = current.get("status") != status
            current["status"] = copy.deepcopy(status)
            current["metadata"]["resourceVersion"] = str(next(self._resource_versions))
            self._cluster_content[ManagedObject(current).key] = current
        return True, changed

    def watch_objects(  # pylint: disable=too-many-arguments,unused-argument
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
        resource_version: Optional[str] = None,
        timeout: Optional[int] = 15,
        **_,
    ) -> Iterator[KubeWatchEvent]:
        """Stream the current objects as ADDED events followed by any deploy or
        delete events until the timeout passes
        """
        event_queue = Queue()
        seen = set()

        def on_deploy(manifest: dict):
            resource = ManagedObject(manifest)
            if namespace is not None and resource.namespace != namespace:
                return
            event_type = (
                KubeEventType.MODIFIED if resource.key in seen else KubeEventType.ADDED
            )
            seen.add(resource.key)
            event_queue.put(KubeWatchEvent(type=event_type, resource=resource))

        def on_delete(manifest: dict):
            resource = ManagedObject(manifest)
            if namespace is not None and resource.namespace != namespace:
                return
            seen.discard(resource.key)
            event_queue.put(
                KubeWatchEvent(type=KubeEventType.DELETED, resource=resource)
            )

        # Register before listing so no event is missed in between
        self.register_watch(api_version, kind, on_deploy)
        self.register_delete_watch(api_version, kind, on_delete)
        try:
            _, manifests = self.filter_objects_current_state(
                kind=kind,
                api_version=api_version,
                namespace=namespace,
                label_selector=label_selector,
            )
            for manifest in manifests:
                resource = ManagedObject(manifest)
                seen.add(resource.key)
                yield KubeWatchEvent(type=KubeEventType.ADDED, resource=resource)

            end_time = datetime.now() + timedelta(seconds=timeout or 0)
            while timeout is None or datetime.now() < end_time:
                try:
                    event = event_queue.get(timeout=1)
                except Empty:
                    continue
                log.debug3("Yielding event %s", event)
                yield event
        finally:
            self.unregister_watch(api_version, kind, on_deploy)
            self.unregister_delete_watch(api_version, kind, on_delete)

    ## Dry Run Methods #########################################################

    def register_watch(
        self, api_version: Optional[str], kind: str, callback: Callable[[dict], None]
    ):
        """Call the callback with the stored object after every deploy of the
        given kind. An api_version of None matches every version.
        """
        log.debug("Registering watch for %s/%s", api_version, kind)
        with self._lock:
            self._watches.setdefault((api_version, kind), []).append(callback)

    def register_delete_watch(
        self, api_version: Optional[str], kind: str, callback: Callable[[dict], None]
    ):
        """Call the callback with the removed object after every delete of the
        given kind
        """
        log.debug("Registering delete watch for %s/%s", api_version, kind)
        with self._lock:
            self._delete_watches.setdefault((api_version, kind), []).append(callback)

    def unregister_watch(self, api_version, kind, callback):
        with self._lock:
            self._remove_callback(self._watches, api_version, kind, callback)

    def unregister_delete_watch(self, api_version, kind, callback):
        with self._lock:
            self._remove_callback(self._delete_watches, api_version, kind, callback)

    ## Implementation Details ##################################################

    @staticmethod
    def _remove_callback(callback_map, api_version, kind, callback):
        callbacks = callback_map.get((api_version, kind), [])
        if callback in callbacks:
            callbacks.remove(callback)

    def _get_callbacks(self, callback_map: dict, key: tuple) -> List[Callable]:
        api_version, kind, _, _ = key
        with self._lock:
            return list(callback_map.get((api_version, kind), [])) + list(
                callback_map.get((None, kind), [])
            )

    def _deploy(
        self,
        resource_definitions: List[dict],
        call_watches: bool = True,
    ) -> Tuple[bool, bool]:
        changes = False
        for resource in resource_definitions:
            resource = copy.deepcopy(resource)
            resource.setdefault("metadata", {})

            key = ManagedObject(resource).key
            log.debug("DRY RUN deploy %s", key)
            log.debug4(resource)
            with self._lock:
                current = self._cluster_content.get(key)
                if current is None:
                    changed = True
                    resource["metadata"].setdefault("uid", str(uuid.uuid4()))
                    resource["metadata"].setdefault(
                        "creationTimestamp", datetime.now().isoformat()
                    )
                    resource["metadata"].setdefault("generation", 1)
                else:
                    # Status is a subresource and survives spec writes
                    if "status" not in resource and "status" in current:
                        resource["status"] = current["status"]
                    changed = _strip_server_metadata(current) != _strip_server_metadata(
                        resource
                    )
                    for field in _SERVER_METADATA:
                        if field in current["metadata"]:
                            resource["metadata"][field] = current["metadata"][field]
                    if changed:
                        resource["metadata"]["generation"] = (
                            current["metadata"].get("generation", 1) + 1
                        )
                resource["metadata"]["resourceVersion"] = str(
                    next(self._resource_versions)
                )
                self._cluster_content[key] = resource
            changes = changes or changed

            if call_watches and changed:
                for callback in self._get_callbacks(self._watches, key):
                    log.debug2("Calling registered watch [%s] for %s", callback, key)
                    callback(copy.deepcopy(resource))

        return True, changes


def _strip_server_metadata(resource: dict) -> dict:
    stripped = copy.deepcopy(resource)
    for field in _SERVER_METADATA:
        stripped.get("metadata", {}).pop(field, None)
    return stripped


def match_selector(labels: dict, selector: str) -> bool:
    """Match labels against an equality-based label selector. Supports
    "key=value", "key==value", "key!=value", "key" and "!key" terms joined by
    commas.
    """
    for term in filter(None, (part.strip() for part in selector.split(","))):
        if "!=" in term:
            key, value = (part.strip() for part in term.split("!=", 1))
            if labels.get(key) == value:
                return False
        elif "=" in term:
            key, value = (part.strip() for part in term.split("=", 1))
            if labels.get(key) != value.lstrip("="):
                return False
        elif term.startswith("!"):
            if term[1:].strip() in labels:
                return False
        elif term not in labels:
            return False
    return True
