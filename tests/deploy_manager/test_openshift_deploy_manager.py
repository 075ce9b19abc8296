"""
Tests for the OpenshiftDeployManager against a mocked DynamicClient
"""

# Standard
from unittest import mock
import copy

# Third Party
from kubernetes.client.exceptions import ApiException
from openshift.dynamic.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ResourceNotFoundError,
    UnprocessibleEntityError,
)
import pytest

# First Party
import alog

# Local
from backplane import config
from backplane.deploy_manager import KubeEventType, OpenshiftDeployManager
from backplane.deploy_manager.owner_references import set_controller_owner_reference
from backplane.test_helpers.helpers import TEST_INSTANCE_UID, library_config, setup_cr

log = alog.use_channel("TEST")

## Helpers #####################################################################

NAMESPACE = "test-ns"


def make_cm(name="test", data=None, **metadata):
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": NAMESPACE, **metadata},
        "data": data or {"foo": "bar"},
    }


def api_error(error_class, status):
    return error_class(ApiException(status=status, reason=error_class.__name__))


def as_response(obj):
    """Wrap a dict the way the DynamicClient wraps responses"""
    response = mock.MagicMock()
    response.to_dict.side_effect = lambda: copy.deepcopy(obj)
    return response


@pytest.fixture
def handle():
    return mock.MagicMock()


@pytest.fixture
def dm(handle):
    deploy_manager = OpenshiftDeployManager()
    deploy_manager._client = mock.MagicMock()
    deploy_manager._client.resources.get.return_value = handle
    return deploy_manager


class FakeWatch:
    """Watch replacement streaming canned batches. Each stream call consumes
    one batch, which is either a list of raw events or an exception.
    """

    def __init__(self, *batches):
        self.batches = list(batches)
        self.calls = []
        self._stop = False

    def stream(self, func, **kwargs):
        self.calls.append(kwargs)
        batch = self.batches.pop(0)
        if not self.batches:
            self._stop = True
        if isinstance(batch, Exception):
            raise batch
        yield from batch


## Tests #######################################################################

###################
## Current state ##
###################


def test_get_object_current_state_found(dm, handle):
    handle.get.return_value = as_response(make_cm())
    assert dm.get_object_current_state("ConfigMap", "test", NAMESPACE, "v1") == (
        True,
        make_cm(),
    )
    handle.get.assert_called_with(name="test", namespace=NAMESPACE)


def test_get_object_current_state_not_found(dm, handle):
    handle.get.side_effect = api_error(NotFoundError, 404)
    assert dm.get_object_current_state("ConfigMap", "test", NAMESPACE) == (True, None)


def test_get_object_current_state_forbidden(dm, handle):
    handle.get.side_effect = api_error(ForbiddenError, 403)
    assert dm.get_object_current_state("ConfigMap", "test", NAMESPACE) == (
        False,
        None,
    )


def test_get_object_current_state_unknown_kind(dm):
    dm._client.resources.get.side_effect = ResourceNotFoundError("no kind")
    assert dm.get_object_current_state("Unknown", "test", NAMESPACE) == (True, None)


def test_filter_objects_current_state(dm, handle):
    handle.get.return_value = as_response({"items": [make_cm("a"), make_cm("b")]})
    success, objs = dm.filter_objects_current_state(
        "ConfigMap", NAMESPACE, "v1", label_selector="app=a"
    )
    assert success
    assert [obj["metadata"]["name"] for obj in objs] == ["a", "b"]
    handle.get.assert_called_with(label_selector="app=a", namespace=NAMESPACE)


def test_filter_objects_current_state_forbidden(dm, handle):
    handle.get.side_effect = api_error(ForbiddenError, 403)
    assert dm.filter_objects_current_state("ConfigMap", NAMESPACE) == (False, [])


############
## deploy ##
############


def test_deploy_new_object(dm, handle):
    handle.get.side_effect = api_error(NotFoundError, 404)
    applied = make_cm(uid="abc", resourceVersion="1")
    handle.server_side_apply.return_value = as_response(applied)

    assert dm.deploy([make_cm()]) == (True, True)
    handle.server_side_apply.assert_called_once()
    kwargs = handle.server_side_apply.call_args.kwargs
    assert kwargs["name"] == "test"
    assert kwargs["namespace"] == NAMESPACE
    assert kwargs["field_manager"] == config.field_manager


def test_deploy_unchanged_skips_apply(dm, handle):
    handle.get.return_value = as_response(
        make_cm(uid="abc", resourceVersion="7", generation=1)
    )
    assert dm.deploy([make_cm()]) == (True, False)
    assert not handle.server_side_apply.called


def test_deploy_changed_object(dm, handle):
    handle.get.return_value = as_response(make_cm(uid="abc", resourceVersion="7"))
    handle.server_side_apply.return_value = as_response(
        make_cm(data={"foo": "baz"}, uid="abc", resourceVersion="8")
    )
    assert dm.deploy([make_cm(data={"foo": "baz"})]) == (True, True)


def test_deploy_keeps_owner_reference(dm, handle):
    manifest = make_cm()
    set_controller_owner_reference(setup_cr(), manifest)
    handle.get.side_effect = api_error(NotFoundError, 404)
    handle.server_side_apply.return_value = as_response(manifest)

    dm.deploy([manifest])
    applied = handle.server_side_apply.call_args.args[0]
    refs = applied["metadata"]["ownerReferences"]
    assert [ref["uid"] for ref in refs] == [TEST_INSTANCE_UID]


def test_deploy_forces_field_manager_conflicts(dm, handle):
    handle.get.side_effect = api_error(NotFoundError, 404)
    handle.server_side_apply.side_effect = [
        api_error(ConflictError, 409),
        as_response(make_cm()),
    ]
    assert dm.deploy([make_cm()]) == (True, True)
    assert handle.server_side_apply.call_count == 2
    assert handle.server_side_apply.call_args.kwargs["force_conflicts"] is True


def test_deploy_stops_at_first_failure(dm, handle):
    """Later resources are never written ahead of a failed earlier one"""
    handle.get.side_effect = api_error(NotFoundError, 404)
    handle.server_side_apply.side_effect = api_error(UnprocessibleEntityError, 422)

    assert dm.deploy([make_cm("first"), make_cm("second")]) == (False, False)
    assert handle.server_side_apply.call_count == 1


def test_deploy_put_fallback(dm, handle):
    handle.get.return_value = as_response(make_cm(uid="abc"))
    handle.server_side_apply.side_effect = api_error(UnprocessibleEntityError, 422)
    handle.replace.return_value = as_response(make_cm(data={"foo": "baz"}))

    with library_config(deploy_unprocessable_put_fallback=True):
        assert dm.deploy([make_cm(data={"foo": "baz"})]) == (True, True)
    handle.replace.assert_called_once()


def test_deploy_no_put_fallback_for_new_objects(dm, handle):
    handle.get.side_effect = api_error(NotFoundError, 404)
    handle.server_side_apply.side_effect = api_error(UnprocessibleEntityError, 422)
    with library_config(deploy_unprocessable_put_fallback=True):
        assert dm.deploy([make_cm()]) == (False, False)
    assert not handle.replace.called


def test_deploy_empty():
    assert OpenshiftDeployManager().deploy([]) == (True, False)


#############
## disable ##
#############


def test_disable(dm, handle):
    assert dm.disable([make_cm()]) == (True, True)
    handle.delete.assert_called_once_with(name="test", namespace=NAMESPACE)


def test_disable_missing_object(dm, handle):
    handle.delete.side_effect = api_error(NotFoundError, 404)
    assert dm.disable([make_cm()]) == (True, False)


def test_disable_missing_kind(dm):
    dm._client.resources.get.side_effect = ResourceNotFoundError("no kind")
    assert dm.disable([make_cm()]) == (True, False)


def test_disable_failure(dm, handle):
    handle.delete.side_effect = api_error(ForbiddenError, 403)
    assert dm.disable([make_cm()]) == (False, False)


################
## set_status ##
################


def test_set_status(dm, handle):
    handle.get.return_value = as_response(make_cm())
    assert dm.set_status("ConfigMap", "test", NAMESPACE, {"a": 1}, "v1") == (
        True,
        True,
    )
    body = handle.status.replace.call_args.kwargs["body"]
    assert body["status"] == {"a": 1}


def test_set_status_unchanged(dm, handle):
    cm = make_cm()
    cm["status"] = {"a": 1}
    handle.get.return_value = as_response(cm)
    assert dm.set_status("ConfigMap", "test", NAMESPACE, {"a": 1}, "v1") == (
        True,
        False,
    )
    assert not handle.status.replace.called


def test_set_status_retries_conflicts(dm, handle):
    """A conflict refreshes the resourceVersion and tries again"""
    handle.get.return_value = as_response(make_cm(resourceVersion="2"))
    handle.status.replace.side_effect = [api_error(ConflictError, 409), None]
    with mock.patch("time.sleep") as sleep_mock:
        assert dm.set_status("ConfigMap", "test", NAMESPACE, {"a": 1}, "v1") == (
            True,
            True,
        )
    assert handle.status.replace.call_count == 2
    sleep_mock.assert_called_once()


def test_set_status_conflict_retries_exhausted(dm, handle):
    handle.get.return_value = as_response(make_cm(resourceVersion="2"))
    handle.status.replace.side_effect = api_error(ConflictError, 409)
    with mock.patch("time.sleep"):
        assert dm.set_status("ConfigMap", "test", NAMESPACE, {"a": 1}, "v1") == (
            False,
            False,
        )
    assert handle.status.replace.call_count == config.deploy_retries + 1


def test_set_status_missing_object(dm, handle):
    handle.get.side_effect = api_error(NotFoundError, 404)
    assert dm.set_status("ConfigMap", "test", NAMESPACE, {}, "v1") == (False, False)


###########
## Watch ##
###########


def test_watch_objects(dm):
    watch = FakeWatch(
        [
            {"type": "ADDED", "object": make_cm("a", resourceVersion="5")},
            {"type": "DELETED", "object": make_cm("a", resourceVersion="6")},
        ]
    )
    events = list(
        dm.watch_objects("ConfigMap", "v1", namespace=NAMESPACE, watch_manager=watch)
    )
    assert [event.type for event in events] == [
        KubeEventType.ADDED,
        KubeEventType.DELETED,
    ]
    assert events[0].resource.name == "a"
    assert watch.calls[0]["namespace"] == NAMESPACE
    assert watch.calls[0]["resource_version"] == 0


def test_watch_objects_restarts_on_expired_version(dm):
    watch = FakeWatch(
        ApiException(status=410),
        [{"type": "MODIFIED", "object": make_cm("a", resourceVersion="9")}],
    )
    events = list(dm.watch_objects("ConfigMap", "v1", watch_manager=watch))
    assert [event.type for event in events] == [KubeEventType.MODIFIED]
    assert len(watch.calls) == 2
    assert watch.calls[1]["resource_version"] is None


def test_watch_objects_resumes_from_last_version(dm):
    watch = FakeWatch(
        [{"type": "ADDED", "object": make_cm("a", resourceVersion="5")}],
        [],
    )
    list(dm.watch_objects("ConfigMap", "v1", watch_manager=watch))
    assert watch.calls[1]["resource_version"] == "5"


def test_watch_objects_other_api_errors_raise(dm):
    watch = FakeWatch(ApiException(status=500))
    with pytest.raises(ApiException):
        list(dm.watch_objects("ConfigMap", "v1", watch_manager=watch))
