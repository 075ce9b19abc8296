"""
Tests for the shared watch manager types and helpers
"""
# Standard
from datetime import datetime, timedelta

# Third Party
import pytest

# Local
from backplane.deploy_manager import KubeEventType
from backplane.test_helpers.helpers import library_config
from backplane.test_helpers.pwm_helpers import make_ownerref, make_resource
from backplane.watch_manager.utils import (
    ReconcileRequest,
    ResourceId,
    TimerEvent,
    compute_backoff,
)

## ResourceId ##################################################################


def test_resource_id_ids():
    cluster_scoped = ResourceId(
        api_version="multicluster.openshift.io/v1",
        kind="MultiClusterEngine",
        name="mce",
    )
    assert cluster_scoped.global_id == "MultiClusterEngine.v1.multicluster.openshift.io"
    assert cluster_scoped.get_id() == cluster_scoped.global_id
    assert cluster_scoped.get_named_id() == (
        "mce.MultiClusterEngine.v1.multicluster.openshift.io"
    )

    namespaced = ResourceId(
        api_version="v1", kind="ConfigMap", name="cm", namespace="ns"
    )
    assert namespaced.global_id == "ConfigMap.v1"
    assert namespaced.get_id() == "ns.ConfigMap.v1"
    assert namespaced.get_named_id() == "cm.ns.ConfigMap.v1"


def test_resource_id_get_resource():
    assert ResourceId("v1", "ConfigMap", "cm", "ns").get_resource() == {
        "kind": "ConfigMap",
        "apiVersion": "v1",
        "metadata": {"name": "cm", "namespace": "ns"},
    }
    assert ResourceId("v1", "Namespace", "ns").get_resource()["metadata"] == {
        "name": "ns"
    }


def test_resource_id_from_resource():
    resource = make_resource(namespace="ns")
    resource_id = ResourceId.from_resource(resource)
    assert resource_id.kind == resource["kind"]
    assert resource_id.api_version == resource["apiVersion"]
    assert resource_id.name == resource["metadata"]["name"]
    assert resource_id.namespace == "ns"


def test_resource_id_from_owner_ref():
    owner = make_resource()
    resource_id = ResourceId.from_owner_ref(make_ownerref(owner))
    assert resource_id == ResourceId.from_resource(owner)


def test_resource_id_hashable():
    first = ResourceId("v1", "ConfigMap", "a")
    second = ResourceId("v1", "ConfigMap", "a")
    assert len({first, second}) == 1


## ReconcileRequest ############################################################


def test_reconcile_request_key():
    resource_id = ResourceId.from_resource(make_resource())
    request = ReconcileRequest(KubeEventType.ADDED, resource_id)
    assert request.key == resource_id.get_named_id()
    assert isinstance(request.timestamp, datetime)


## TimerEvent ##################################################################


def test_timer_event_ordering():
    now = datetime.now()
    later = TimerEvent(time=now + timedelta(seconds=1), action=print)
    sooner = TimerEvent(time=now, action=len)
    assert sorted([later, sooner]) == [sooner, later]


def test_timer_event_cancel():
    event = TimerEvent(time=datetime.now(), action=print)
    assert not event.stale
    event.cancel()
    assert event.stale


## compute_backoff #############################################################


@pytest.mark.parametrize(
    ["failures", "expected"],
    [(0, 1), (1, 1), (2, 2), (3, 4), (5, 16), (9, 256), (10, 300), (1000, 300)],
)
def test_compute_backoff_defaults(failures, expected):
    assert compute_backoff(failures) == timedelta(seconds=expected)


def test_compute_backoff_arguments():
    assert compute_backoff(3, base_seconds=0.5, max_seconds=10) == timedelta(
        seconds=2
    )
    assert compute_backoff(10, base_seconds=0.5, max_seconds=10) == timedelta(
        seconds=10
    )


def test_compute_backoff_config():
    with library_config(backoff={"base_seconds": 2, "max_seconds": 5}):
        assert compute_backoff(2) == timedelta(seconds=4)
        assert compute_backoff(3) == timedelta(seconds=5)
