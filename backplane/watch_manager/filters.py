"""
Filters limit the events on the primary resource that lead to a reconcile.
They follow the kubernetes controller runtime's "predicates": status-only
updates of the primary are dropped since every pass writes status itself.
"""

# Standard
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type
import json

# First Party
import alog

# Local
from ..deploy_manager import KubeEventType
from ..managed_object import ManagedObject

log = alog.use_channel("PWMFLT")


class Filter(ABC):
    """A filter instance is created per resource. test() returns True to
    reconcile, False to skip, or None when it has no opinion. Subclasses that
    need state store it in update().
    """

    def __init__(self, resource: ManagedObject):  # noqa: B027
        """Even though a resource is provided no state is set until update"""

    @abstractmethod
    def test(self, resource: ManagedObject, event: KubeEventType) -> Optional[bool]:
        """Test whether the resource and event pass the filter"""

    def update(self, resource: ManagedObject):  # noqa: B027
        """Update the instance's view of the resource"""

    def update_and_test(
        self, resource: ManagedObject, event: KubeEventType
    ) -> Optional[bool]:
        """First test a resource/event against the filter then update state"""
        result = self.test(resource, event)
        self.update(resource)
        return result


class CreationDeletionFilter(Filter):
    """Always reconcile on creation and deletion"""

    def test(  # pylint: disable=inconsistent-return-statements
        self, resource: ManagedObject, event: KubeEventType
    ) -> Optional[bool]:
        if event in [KubeEventType.ADDED, KubeEventType.DELETED]:
            return True


class GenerationFilter(Filter):
    """Reconcile when the generation, and so the spec, changes"""

    def __init__(self, resource: ManagedObject):
        super().__init__(resource)
        self.generation = None

    def test(  # pylint: disable=inconsistent-return-statements
        self, resource: ManagedObject, event: KubeEventType
    ) -> Optional[bool]:
        if self.generation is None or event != KubeEventType.MODIFIED:
            return
        return self.generation != resource.metadata.get("generation")

    def update(self, resource: ManagedObject):
        self.generation = resource.metadata.get("generation")


class AnnotationFilter(Filter):
    """Reconcile when annotations change, e.g. image overrides or pause"""

    def __init__(self, resource: ManagedObject):
        super().__init__(resource)
        self.annotations = None

    def test(  # pylint: disable=inconsistent-return-statements
        self, resource: ManagedObject, event: KubeEventType
    ) -> Optional[bool]:
        if self.annotations is None or event != KubeEventType.MODIFIED:
            return
        return self.annotations != self._hash(resource)

    def update(self, resource: ManagedObject):
        self.annotations = self._hash(resource)

    @staticmethod
    def _hash(resource: ManagedObject) -> str:
        return json.dumps(resource.metadata.get("annotations") or {}, sort_keys=True)


class DeletionTimestampFilter(Filter):
    """Reconcile once deletion of the resource starts"""

    def test(  # pylint: disable=inconsistent-return-statements
        self, resource: ManagedObject, event: KubeEventType
    ) -> Optional[bool]:
        if resource.metadata.get("deletionTimestamp"):
            return True


DEFAULT_FILTERS: List[Type[Filter]] = [
    CreationDeletionFilter,
    GenerationFilter,
    AnnotationFilter,
    DeletionTimestampFilter,
]


class FilterManager:
    """Combines filters for one resource. Any True passes, and an event no
    filter has an opinion on passes too; otherwise the event is dropped.
    """

    def __init__(self, filters: List[Type[Filter]], resource: ManagedObject):
        self.filters = [filter_type(resource) for filter_type in filters]

    def update_and_test(self, resource: ManagedObject, event: KubeEventType) -> bool:
        results = [
            filter_obj.update_and_test(resource, event) for filter_obj in self.filters
        ]
        if any(results):
            return True
        passed = all(result is None for result in results)
        if not passed:
            log.debug3("Event %s for %s failed filters", event.value, resource)
        return passed


class ResourceFilters:
    """FilterManagers for every resource seen by a watch, keyed by uid"""

    def __init__(self, filters: Optional[List[Type[Filter]]] = None):
        self.filters = DEFAULT_FILTERS if filters is None else filters
        self.managers: Dict[str, FilterManager] = {}

    def update_and_test(self, resource: ManagedObject, event: KubeEventType) -> bool:
        key = resource.uid or str(resource)
        manager = self.managers.setdefault(
            key, FilterManager(self.filters, resource)
        )
        result = manager.update_and_test(resource, event)
        if event == KubeEventType.DELETED:
            self.managers.pop(key, None)
        return result
