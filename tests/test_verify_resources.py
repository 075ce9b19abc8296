"""
Tests for owned resource readiness checks
"""
# Third Party
import pytest

# Local
from backplane.verify_resources import (
    Health,
    check_deployment,
    check_resource,
)

## Helpers #####################################################################


def make_condition(
    type_, status, reason=None, timestamp="2024-01-01T00:00:00Z", message=None
):
    condition = {"type": type_, "status": status, "lastUpdateTime": timestamp}
    if reason:
        condition["reason"] = reason
    if message:
        condition["message"] = message
    return condition


def make_deployment(conditions=None, generation=1, observed_generation=1):
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "test", "namespace": "test", "generation": generation},
        "status": {
            "observedGeneration": observed_generation,
            "conditions": conditions or [],
        },
    }


AVAILABLE = make_condition("Available", "True")
ROLLED_OUT = make_condition("Progressing", "True", "NewReplicaSetAvailable")

## Tests #######################################################################


def test_missing_resource_is_progressing():
    assert check_resource("Deployment", None)[0] == Health.PROGRESSING
    assert check_resource("ConfigMap", None)[0] == Health.PROGRESSING


def test_deleting_resource_is_progressing():
    obj = {"metadata": {"name": "x", "deletionTimestamp": "2024-01-01T00:00:00Z"}}
    assert check_resource("ConfigMap", obj)[0] == Health.PROGRESSING


def test_other_kinds_ready_when_present():
    assert check_resource("ConfigMap", {"metadata": {"name": "x"}}) == (
        Health.READY,
        "",
    )


def test_deployment_ready():
    assert check_deployment(make_deployment([AVAILABLE, ROLLED_OUT]))[0] == Health.READY


def test_deployment_without_status_is_progressing():
    deployment = make_deployment()
    del deployment["status"]
    assert check_deployment(deployment)[0] == Health.PROGRESSING


def test_deployment_rolling_out():
    progressing = make_condition("Progressing", "True", "ReplicaSetUpdated")
    assert check_deployment(make_deployment([AVAILABLE, progressing]))[0] == (
        Health.PROGRESSING
    )


def test_deployment_generation_not_observed():
    deployment = make_deployment(
        [AVAILABLE, ROLLED_OUT], generation=2, observed_generation=1
    )
    assert check_deployment(deployment)[0] == Health.PROGRESSING


def test_deployment_replica_failure():
    failure = make_condition(
        "ReplicaFailure", "True", "FailedCreate", message="quota exceeded"
    )
    deployment = make_deployment([AVAILABLE, ROLLED_OUT, failure])
    health, message = check_deployment(deployment)
    assert health == Health.DEGRADED
    assert message == "quota exceeded"


def test_deployment_deadline_exceeded():
    stuck = make_condition("Progressing", "False", "ProgressDeadlineExceeded")
    assert check_deployment(make_deployment([stuck]))[0] == Health.DEGRADED


@pytest.mark.parametrize(
    ["conditions", "expected"],
    [
        # The newest condition of a type decides
        (
            [
                make_condition(
                    "Progressing",
                    "False",
                    "ProgressDeadlineExceeded",
                    timestamp="2024-01-01T00:00:00Z",
                ),
                AVAILABLE,
                make_condition(
                    "Progressing",
                    "True",
                    "NewReplicaSetAvailable",
                    timestamp="2024-01-02T00:00:00Z",
                ),
            ],
            Health.READY,
        ),
        (
            [
                ROLLED_OUT,
                AVAILABLE,
                make_condition(
                    "Progressing",
                    "False",
                    "ProgressDeadlineExceeded",
                    timestamp="2024-01-02T00:00:00Z",
                ),
            ],
            Health.DEGRADED,
        ),
    ],
)
def test_deployment_latest_condition_wins(conditions, expected):
    assert check_deployment(make_deployment(conditions))[0] == expected


def test_boolean_condition_status():
    available = make_condition("Available", True)
    rolled_out = make_condition("Progressing", True, "NewReplicaSetAvailable")
    assert check_deployment(make_deployment([available, rolled_out]))[0] == Health.READY
