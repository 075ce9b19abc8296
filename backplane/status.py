"""
Status aggregation for the MultiClusterEngine. The status is rebuilt from the
live state of the owned resources on every pass; the previous status is only
consulted to carry condition transition times forward.
"""

# Standard
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

# Third Party
from deepdiff import DeepDiff

# First Party
import alog

# Local
from .exceptions import (
    ClusterError,
    ConfigError,
    ReconcileCancelledError,
    SynthesisError,
    assert_cluster,
)
from .managed_object import ManagedObject
from .session import Session
from .verify_resources import Health, check_resource

log = alog.use_channel("STATUS")

## Constants ###################################################################

AVAILABLE_CONDITION = "Available"
PROGRESSING_CONDITION = "Progressing"
DEGRADED_CONDITION = "Degraded"
CONDITION_TYPES = [AVAILABLE_CONDITION, PROGRESSING_CONDITION, DEGRADED_CONDITION]

TIMESTAMP_KEY = "lastTransitionTime"
PHASE_KEY = "phase"
COMPONENTS_KEY = "components"
OBSERVED_GENERATION_KEY = "observedGeneration"


class Phase(Enum):
    """Summary phase published alongside the conditions"""

    AVAILABLE = "Available"
    PROGRESSING = "Progressing"
    ERROR = "Error"
    PAUSED = "Paused"


class ConditionReason(Enum):
    """Reasons used on the published conditions"""

    COMPONENTS_AVAILABLE = "ComponentsAvailable"
    COMPONENTS_PROGRESSING = "ComponentsProgressing"
    COMPONENTS_DEGRADED = "ComponentsDegraded"
    CONFIG_ERROR = "ConfigError"
    SYNTHESIS_ERROR = "SynthesisError"
    CLUSTER_ERROR = "ClusterError"
    RECONCILE_CANCELLED = "ReconcileCancelled"
    PAUSED = "Paused"
    UNKNOWN_ERROR = "UnknownError"


# Ordered most specific first so subclasses match before their parents
_ERROR_REASONS = [
    (ConfigError, ConditionReason.CONFIG_ERROR),
    (SynthesisError, ConditionReason.SYNTHESIS_ERROR),
    (ReconcileCancelledError, ConditionReason.RECONCILE_CANCELLED),
    (ClusterError, ConditionReason.CLUSTER_ERROR),
]


## Observations ################################################################


@dataclass
class ResourceHealth:
    """Observed health of one owned resource"""

    resource: str
    health: Health
    message: str = ""


@dataclass
class ComponentHealth:
    """Observed health of one component, the worst of its resources"""

    name: str
    health: Health
    resources: List[ResourceHealth] = field(default_factory=list)

    @property
    def message(self) -> str:
        return "; ".join(
            f"{res.resource}: {res.message}"
            for res in self.resources
            if res.health != Health.READY
        )

    def to_dict(self) -> dict:
        entry = {"name": self.name, "status": self.health.value}
        if self.message:
            entry["message"] = self.message
        return entry


def observe(
    session: Session, desired_by_component: Dict[str, List[dict]]
) -> Dict[str, List[ResourceHealth]]:
    """Read the live state of every desired resource

    Args:
        session:  Session
            The current pass
        desired_by_component:  Dict[str, List[dict]]
            The desired manifests grouped by component name

    Returns:
        observations:  Dict[str, List[ResourceHealth]]
            The health of each resource grouped the same way
    """
    observations = {}
    for component_name, manifests in desired_by_component.items():
        results = []
        for manifest in manifests:
            session.assert_active()
            resource = ManagedObject(manifest)
            success, current = session.deploy_manager.get_object_current_state(
                kind=resource.kind,
                name=resource.name,
                namespace=resource.namespace,
                api_version=resource.api_version,
            )
            assert_cluster(success, f"Failed to read {resource}")
            health, message = check_resource(resource.kind, current)
            log.debug3("%s is %s", resource, health.value)
            results.append(ResourceHealth(str(resource), health, message))
        observations[component_name] = results
    return observations


def aggregate(
    observations: Dict[str, List[ResourceHealth]]
) -> Tuple[Health, List[ComponentHealth]]:
    """Reduce observations to one health per component and one overall. Any
    degraded resource makes the whole degraded, otherwise any progressing
    resource makes it progressing.
    """
    components = [
        ComponentHealth(
            name=name, health=_worst(res.health for res in results), resources=results
        )
        for name, results in observations.items()
    ]
    overall = _worst(comp.health for comp in components)
    log.debug2("Aggregated health: %s", overall.value)
    return overall, components


## Status Construction #########################################################


def make_status(
    health: Health,
    components: List[ComponentHealth],
    previous_status: Optional[dict] = None,
    observed_generation: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Build the full status object for an aggregated health"""
    previous_status = previous_status or {}
    now = now or _now()
    not_ready = [comp.name for comp in components if comp.health != Health.READY]

    if health == Health.READY:
        reason = ConditionReason.COMPONENTS_AVAILABLE
        message = "All components are available"
        phase = Phase.AVAILABLE
    elif health == Health.PROGRESSING:
        reason = ConditionReason.COMPONENTS_PROGRESSING
        message = f"Waiting on components: {', '.join(not_ready)}"
        phase = Phase.PROGRESSING
    else:
        reason = ConditionReason.COMPONENTS_DEGRADED
        message = f"Components failing: {', '.join(not_ready)}"
        phase = Phase.ERROR

    conditions = [
        _make_condition(
            AVAILABLE_CONDITION,
            health == Health.READY,
            reason,
            message,
            previous_status,
            now,
        ),
        _make_condition(
            PROGRESSING_CONDITION,
            health == Health.PROGRESSING,
            reason,
            message,
            previous_status,
            now,
        ),
        _make_condition(
            DEGRADED_CONDITION,
            health == Health.DEGRADED,
            reason,
            message,
            previous_status,
            now,
        ),
    ]
    status = {
        "conditions": conditions,
        PHASE_KEY: phase.value,
        COMPONENTS_KEY: [comp.to_dict() for comp in components],
    }
    if observed_generation is not None:
        status[OBSERVED_GENERATION_KEY] = observed_generation
    return status


def make_error_status(
    error: Exception,
    previous_status: Optional[dict] = None,
    observed_generation: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Build the Degraded status recorded when a pass fails. The per-component
    entries of the previous status are kept since nothing was observed.
    """
    previous_status = previous_status or {}
    now = now or _now()
    reason = error_reason(error)
    message = str(error) or error.__class__.__name__
    status = {
        "conditions": [
            _make_condition(
                AVAILABLE_CONDITION, False, reason, message, previous_status, now
            ),
            _make_condition(
                PROGRESSING_CONDITION, False, reason, message, previous_status, now
            ),
            _make_condition(
                DEGRADED_CONDITION, True, reason, message, previous_status, now
            ),
        ],
        PHASE_KEY: Phase.ERROR.value,
        COMPONENTS_KEY: list(previous_status.get(COMPONENTS_KEY) or []),
    }
    if observed_generation is not None:
        status[OBSERVED_GENERATION_KEY] = observed_generation
    return status


def make_paused_status(
    previous_status: Optional[dict] = None,
    observed_generation: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict:
    """A paused primary keeps its last observations with a Paused phase and a
    Progressing condition that says why nothing moves
    """
    previous_status = previous_status or {}
    now = now or _now()
    message = "Reconciliation is paused"
    conditions = [
        cond
        for cond in previous_status.get("conditions") or []
        if cond.get("type") != PROGRESSING_CONDITION
    ]
    conditions.append(
        _make_condition(
            PROGRESSING_CONDITION,
            False,
            ConditionReason.PAUSED,
            message,
            previous_status,
            now,
        )
    )
    status = {
        "conditions": conditions,
        PHASE_KEY: Phase.PAUSED.value,
        COMPONENTS_KEY: list(previous_status.get(COMPONENTS_KEY) or []),
    }
    if observed_generation is not None:
        status[OBSERVED_GENERATION_KEY] = observed_generation
    return status


def error_reason(error: Exception) -> ConditionReason:
    """Map an error to the reason recorded on the Degraded condition"""
    for error_class, reason in _ERROR_REASONS:
        if isinstance(error, error_class):
            return reason
    return ConditionReason.UNKNOWN_ERROR


## Status Access ###############################################################


def update_resource_status(
    deploy_manager,
    kind: str,
    api_version: str,
    name: str,
    namespace: Optional[str],
    status: dict,
) -> dict:
    """Write a status to a resource if it differs in more than timestamps from
    the one stored on the cluster

    Args:
        deploy_manager:  DeployManagerBase
            The deploy manager used to read and write the resource
        kind:  str
            The kind of the resource
        api_version:  str
            The api_version of the resource
        name:  str
            The name of the resource
        namespace:  Optional[str]
            The namespace, None for cluster-scoped resources
        status:  dict
            The complete new status

    Returns:
        status:  dict
            The status now on the resource

    Raises:
        ClusterError: when the resource cannot be read or its status cannot
            be written
    """
    success, current_state = deploy_manager.get_object_current_state(
        kind=kind, name=name, namespace=namespace, api_version=api_version
    )
    assert_cluster(success, f"Failed to fetch current state of {kind}/{name}")
    current_status = (current_state or {}).get("status", {})

    if not status_changed(current_status, status):
        log.debug2("No meaningful status change for %s/%s", kind, name)
        return current_status

    log.debug("Updating status of %s/%s", kind, name)
    log.debug3("(current) %s != (updated) %s", current_status, status)
    success, _ = deploy_manager.set_status(
        kind=kind,
        name=name,
        namespace=namespace,
        api_version=api_version,
        status=status,
    )
    assert_cluster(success, f"Failed to update status for {kind}/{name}")
    return status


def status_changed(current_status: dict, new_status: dict) -> bool:
    """A meaningful change is any change besides a transition timestamp"""
    if not isinstance(current_status, dict) or not isinstance(new_status, dict):
        return True
    return bool(
        DeepDiff(
            current_status,
            new_status,
            exclude_obj_callback=lambda _, path: path.endswith(f"{TIMESTAMP_KEY}']"),
        )
    )


def get_condition(type_name: str, current_status: dict) -> dict:
    """Extract one condition by type, or an empty dict"""
    matches = [
        cond
        for cond in (current_status or {}).get("conditions") or []
        if cond.get("type") == type_name
    ]
    if matches:
        assert len(matches) == 1, f"Found multiple condition entries for {type_name}"
        return matches[0]
    return {}


## Implementation Details ######################################################


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _worst(healths) -> Health:
    healths = set(healths)
    if Health.DEGRADED in healths:
        return Health.DEGRADED
    if Health.PROGRESSING in healths:
        return Health.PROGRESSING
    return Health.READY


def _make_condition(  # pylint: disable=too-many-arguments
    type_name: str,
    status: bool,
    reason: ConditionReason,
    message: str,
    previous_status: dict,
    now: datetime,
) -> dict:
    """Construct a condition, keeping the previous transition time when the
    condition's status did not change
    """
    previous = get_condition(type_name, previous_status)
    if previous.get("status") == str(status) and previous.get(TIMESTAMP_KEY):
        transition_time = previous[TIMESTAMP_KEY]
    else:
        transition_time = now.isoformat()
    return {
        "type": type_name,
        "status": str(status),
        "reason": reason.value,
        "message": message,
        TIMESTAMP_KEY: transition_time,
    }
