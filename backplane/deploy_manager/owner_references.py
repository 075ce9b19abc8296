"""
Controller owner references linking every managed resource to its primary
"""

# First Party
import alog

log = alog.use_channel("OWNRF")


def make_owner_reference(owner: dict) -> dict:
    """Build the controller owner reference pointing at the given primary

    Args:
        owner:  dict
            The full manifest of the owning primary resource

    Returns:
        owner_reference:  dict
            Entry for metadata.ownerReferences of an owned object
    """
    metadata = owner.get("metadata", {})
    return {
        "apiVersion": owner.get("apiVersion"),
        "kind": owner.get("kind"),
        "name": metadata.get("name"),
        "uid": metadata.get("uid"),
        "controller": True,
        # The primary is not removed until its children finish deleting
        "blockOwnerDeletion": True,
    }


def set_controller_owner_reference(owner: dict, child: dict):
    """Replace the child's owner references with exactly one controller
    reference to the owner. The owner itself is never given a reference.
    """
    _validate_object_struct(owner)
    _validate_object_struct(child)

    owner_uid = owner["metadata"].get("uid")
    child_metadata = child["metadata"]
    if owner_uid is not None and owner_uid == child_metadata.get("uid"):
        log.debug2("Owner is same as child; Not adding owner ref")
        return
    if (
        owner.get("kind") == child.get("kind")
        and owner.get("apiVersion") == child.get("apiVersion")
        and owner["metadata"]["name"] == child_metadata["name"]
    ):
        log.debug2("Owner is same as child; Not adding owner ref")
        return

    child_metadata["ownerReferences"] = [make_owner_reference(owner)]
    log.debug3(
        "Set owner reference on %s/%s", child.get("kind"), child_metadata["name"]
    )


def is_owned_by(obj: dict, owner_uid: str) -> bool:
    """Whether the object's controller owner reference names owner_uid"""
    for ref in (obj.get("metadata") or {}).get("ownerReferences") or []:
        if ref.get("controller") and ref.get("uid") == owner_uid:
            return True
    return False


def _validate_object_struct(obj: dict):
    """Ensure kind, apiVersion and metadata.name are present"""
    assert "kind" in obj, "Got object without 'kind'"
    assert "apiVersion" in obj, "Got object without 'apiVersion'"
    metadata = obj.get("metadata")
    assert isinstance(metadata, dict), "Got object with non-dict 'metadata'"
    assert "name" in metadata, "Got object without 'metadata.name'"
