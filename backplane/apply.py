"""
Apply and ownership engine. Writes every desired manifest in place and prunes
owned resources that are no longer desired, e.g. those of a component that
was just disabled.
"""

# Standard
from typing import List, Set, Tuple

# First Party
import alog

# Local
from . import constants
from .components import managed_kinds
from .deploy_manager.owner_references import is_owned_by
from .exceptions import assert_cluster
from .managed_object import ManagedObject
from .session import Session
from .synthesizer import validate_manifest

log = alog.use_channel("APPLY")


def reconcile_resources(session: Session, desired: List[dict]) -> Tuple[bool, int]:
    """Bring the cluster in line with the desired manifests

    Args:
        session:  Session
            The current pass
        desired:  List[dict]
            Every manifest that should exist, each already carrying its owner
            reference

    Returns:
        changed:  bool
            Whether any object was created, updated or deleted
        pruned:  int
            Number of owned resources deleted

    Raises:
        SynthesisError: before any write, if a manifest cannot be identified
        ClusterError: if a write or list fails
        ReconcileCancelledError: if the pass is cancelled between writes
    """
    for manifest in desired:
        validate_manifest(manifest, "desired state")

    with alog.ContextTimer(log.debug2, "Apply duration for %s: ", session.name):
        changed = apply_resources(session, desired)
        pruned = prune_resources(
            session, {ManagedObject(obj).key for obj in desired}
        )
    return changed or bool(pruned), pruned


def apply_resources(session: Session, desired: List[dict]) -> bool:
    """Create or update each desired manifest in order"""
    changed = False
    for manifest in desired:
        session.assert_active()
        success, obj_changed = session.deploy_manager.deploy([manifest])
        assert_cluster(success, f"Failed to apply {ManagedObject(manifest)}")
        if obj_changed:
            log.debug("Applied changes to %s", ManagedObject(manifest))
        changed = changed or obj_changed
    return changed


def prune_resources(session: Session, desired_keys: Set[tuple]) -> int:
    """Delete owned resources of every managed kind that are not desired.
    Only objects carrying this primary's label and controller reference are
    considered.
    """
    label_selector = f"{constants.OWNER_LABEL_NAME}={session.name}"
    stale = []
    for api_version, kind in managed_kinds():
        session.assert_active()
        success, current = session.deploy_manager.filter_objects_current_state(
            kind=kind,
            api_version=api_version,
            label_selector=label_selector,
        )
        assert_cluster(success, f"Failed to list {api_version}/{kind}")
        for obj in current:
            resource = ManagedObject(obj)
            if resource.key in desired_keys:
                continue
            if not is_owned_by(obj, session.uid):
                log.debug2("Not pruning %s owned by someone else", resource)
                continue
            stale.append(obj)

    for obj in stale:
        session.assert_active()
        log.info("Deleting no longer desired %s", ManagedObject(obj))
        success, _ = session.deploy_manager.disable([obj])
        assert_cluster(success, f"Failed to delete {ManagedObject(obj)}")
    return len(stale)
