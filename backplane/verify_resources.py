"""
Readiness checks for owned resources. Each check reads the live object and
classifies it as ready, still progressing, or degraded.
"""

# Standard
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

# Third Party
import dateutil.parser

# First Party
import alog

log = alog.use_channel("VERFY")

AVAILABLE_CONDITION_KEY = "Available"
PROGRESSING_CONDITION_KEY = "Progressing"
REPLICA_FAILURE_CONDITION_KEY = "ReplicaFailure"
NEW_RS_AVAILABLE_REASON = "NewReplicaSetAvailable"
PROGRESS_DEADLINE_EXCEEDED_REASON = "ProgressDeadlineExceeded"
DEFAULT_TIMESTAMP_KEY = "lastUpdateTime"


class Health(Enum):
    READY = "Ready"
    PROGRESSING = "Progressing"
    DEGRADED = "Degraded"


HealthCheck = Callable[[dict], Tuple[Health, str]]

## Public ######################################################################


def check_resource(kind: str, object_state: Optional[dict]) -> Tuple[Health, str]:
    """Classify one owned resource

    Args:
        kind:  str
            The kind of the resource, used to pick the check
        object_state:  Optional[dict]
            The live object, or None when it does not exist

    Returns:
        health:  Health
            The classification
        message:  str
            Human readable reason for anything other than READY
    """
    if object_state is None:
        return Health.PROGRESSING, "not found"
    if object_state.get("metadata", {}).get("deletionTimestamp"):
        return Health.PROGRESSING, "being deleted"
    return _HEALTH_CHECKS.get(kind, _check_exists)(object_state)


def check_deployment(object_state: dict) -> Tuple[Health, str]:
    """A Deployment is degraded on a replica failure or an exceeded progress
    deadline and ready once it is available with its new replica set rolled
    out
    """
    if _check_latest(object_state, REPLICA_FAILURE_CONDITION_KEY, True):
        return Health.DEGRADED, _latest_message(
            object_state, REPLICA_FAILURE_CONDITION_KEY
        )
    if _check_latest(
        object_state,
        PROGRESSING_CONDITION_KEY,
        False,
        expected_reason=PROGRESS_DEADLINE_EXCEEDED_REASON,
    ):
        return Health.DEGRADED, _latest_message(object_state, PROGRESSING_CONDITION_KEY)

    status = object_state.get("status") or {}
    generation = object_state.get("metadata", {}).get("generation")
    observed = status.get("observedGeneration")
    if generation is not None and observed is not None and observed < generation:
        return Health.PROGRESSING, "new generation not yet observed"

    if _check_latest(object_state, AVAILABLE_CONDITION_KEY, True) and _check_latest(
        object_state,
        PROGRESSING_CONDITION_KEY,
        True,
        expected_reason=NEW_RS_AVAILABLE_REASON,
    ):
        return Health.READY, ""
    return Health.PROGRESSING, "rollout in progress"


def _check_exists(_: dict) -> Tuple[Health, str]:
    return Health.READY, ""


_HEALTH_CHECKS: Dict[str, HealthCheck] = {
    "Deployment": check_deployment,
}

## Helpers #####################################################################


def _get_conditions(object_state: dict, type_val: str) -> List[dict]:
    return [
        cond
        for cond in (object_state.get("status") or {}).get("conditions") or []
        if cond.get("type") == type_val
    ]


def _parse_timestamp(condition: dict) -> datetime:
    timestamp = condition.get(DEFAULT_TIMESTAMP_KEY) or condition.get(
        "lastTransitionTime"
    )
    if isinstance(timestamp, str):
        return dateutil.parser.parse(timestamp).replace(tzinfo=None)
    if isinstance(timestamp, datetime):
        return timestamp.replace(tzinfo=None)
    return datetime.fromtimestamp(0)


def _latest_condition(object_state: dict, type_val: str) -> Optional[dict]:
    conditions = _get_conditions(object_state, type_val)
    if not conditions:
        return None
    return max(conditions, key=_parse_timestamp)


def _latest_message(object_state: dict, type_val: str) -> str:
    condition = _latest_condition(object_state, type_val) or {}
    return condition.get("message") or condition.get("reason") or type_val


def _check_latest(
    object_state: dict,
    type_val: str,
    expected_status: bool,
    expected_reason: Optional[str] = None,
) -> bool:
    """Whether the newest condition of a type has the expected status and,
    when given, the expected reason
    """
    condition = _latest_condition(object_state, type_val)
    log.debug3("Latest '%s' condition: %s", type_val, condition)
    if condition is None:
        return False
    obj_status = condition.get("status")
    if isinstance(obj_status, str):
        status_matches = obj_status.lower() == str(expected_status).lower()
    else:
        status_matches = obj_status is not None and bool(obj_status) == expected_status
    return status_matches and (
        expected_reason is None or condition.get("reason") == expected_reason
    )
