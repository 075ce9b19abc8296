"""
Tests for the primary resource event filters
"""

# Third Party
import pytest

# Local
from backplane.deploy_manager import KubeEventType
from backplane.managed_object import ManagedObject
from backplane.test_helpers.pwm_helpers import make_managed_object
from backplane.watch_manager.filters import (
    AnnotationFilter,
    CreationDeletionFilter,
    DeletionTimestampFilter,
    FilterManager,
    GenerationFilter,
    ResourceFilters,
)

## Helpers #####################################################################


def resource(generation=1, annotations=None, uid="uid-1", **metadata):
    return ManagedObject(
        {
            "apiVersion": "multicluster.openshift.io/v1",
            "kind": "MultiClusterEngine",
            "metadata": {
                "name": "mce",
                "uid": uid,
                "generation": generation,
                "annotations": annotations or {},
                **metadata,
            },
        }
    )


## Individual filters ##########################################################


@pytest.mark.parametrize(
    ["event", "expected"],
    [
        (KubeEventType.ADDED, True),
        (KubeEventType.DELETED, True),
        (KubeEventType.MODIFIED, None),
    ],
)
def test_creation_deletion_filter(event, expected):
    res = resource()
    assert CreationDeletionFilter(res).update_and_test(res, event) == expected


def test_generation_filter():
    res = resource()
    filt = GenerationFilter(res)
    assert filt.update_and_test(res, KubeEventType.ADDED) is None
    assert filt.update_and_test(res, KubeEventType.MODIFIED) is False
    assert filt.update_and_test(resource(generation=2), KubeEventType.MODIFIED)


def test_annotation_filter():
    res = resource(annotations={"pause": "true"})
    filt = AnnotationFilter(res)
    assert filt.update_and_test(res, KubeEventType.ADDED) is None
    assert filt.update_and_test(res, KubeEventType.MODIFIED) is False
    assert filt.update_and_test(
        resource(annotations={"pause": "false"}), KubeEventType.MODIFIED
    )


def test_deletion_timestamp_filter():
    res = resource()
    assert DeletionTimestampFilter(res).test(res, KubeEventType.MODIFIED) is None
    deleting = resource(deletionTimestamp="2024-01-01T00:00:00Z")
    assert DeletionTimestampFilter(deleting).test(deleting, KubeEventType.MODIFIED)


## FilterManager ###############################################################


def test_filter_manager_drops_status_only_updates():
    res = resource()
    manager = FilterManager([GenerationFilter, AnnotationFilter], res)
    assert manager.update_and_test(res, KubeEventType.ADDED)

    # Only status changed; generation and annotations did not
    assert not manager.update_and_test(resource(), KubeEventType.MODIFIED)
    assert manager.update_and_test(resource(generation=2), KubeEventType.MODIFIED)


def test_filter_manager_no_opinion_passes():
    res = resource()
    manager = FilterManager([DeletionTimestampFilter], res)
    assert manager.update_and_test(res, KubeEventType.MODIFIED)


## ResourceFilters #############################################################


def test_resource_filters_track_each_resource():
    filters = ResourceFilters()
    first = resource(uid="a")
    second = resource(uid="b")
    assert filters.update_and_test(first, KubeEventType.ADDED)
    assert filters.update_and_test(second, KubeEventType.ADDED)

    assert not filters.update_and_test(first, KubeEventType.MODIFIED)
    updated = resource(uid="b", generation=3)
    assert filters.update_and_test(updated, KubeEventType.MODIFIED)


def test_resource_filters_forget_deleted():
    filters = ResourceFilters()
    res = resource()
    filters.update_and_test(res, KubeEventType.ADDED)
    assert filters.update_and_test(res, KubeEventType.DELETED)
    assert not filters.managers

    # A recreated resource is reconciled on its first event
    assert filters.update_and_test(res, KubeEventType.MODIFIED)


def test_resource_filters_custom_list():
    filters = ResourceFilters(filters=[])
    res = make_managed_object()
    assert filters.update_and_test(res, KubeEventType.MODIFIED)
