"""
Resolution of the override block on a MultiClusterEngine into one effective
configuration per pass
"""

# Standard
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import copy

# First Party
import alog

# Local
from . import constants
from .components import ComponentName, get_component
from .exceptions import assert_cluster

log = alog.use_channel("OVRDS")


@dataclass(frozen=True)
class EffectiveConfig:
    """Resolved overrides with exactly one entry per known component"""

    components: Dict[ComponentName, bool]
    image_pull_policy: str

    def is_enabled(self, name: ComponentName) -> bool:
        return self.components[name]


## Components ##################################################################


def default_enablement() -> Dict[ComponentName, bool]:
    """Compiled-in enablement of every known component. A name without a
    registered template defaults to enabled so synthesis reports it.
    """
    defaults = {}
    for name in ComponentName:
        comp = get_component(name)
        defaults[name] = comp.enabled_by_default if comp is not None else True
    return defaults


def resolve_components(
    raw_components: Optional[Sequence[dict]],
) -> Dict[ComponentName, bool]:
    """Apply the override entries in order on top of the defaults so that the
    last entry for a name wins

    Args:
        raw_components:  Optional[Sequence[dict]]
            The spec.overrides.components list, entries shaped {name, enabled}

    Returns:
        components:  Dict[ComponentName, bool]
            Enablement for every known component
    """
    components = default_enablement()
    for entry in raw_components or []:
        name = ComponentName.parse(entry.get("name"))
        if name is None:
            log.warning(
                "Ignoring override for unknown component [%s]", entry.get("name")
            )
            continue
        components[name] = bool(entry.get("enabled"))
    log.debug2("Resolved components: %s", components)
    return components


def deduplicate_components(raw_components: Optional[Sequence[dict]]) -> List[dict]:
    """Collapse the override list to one entry per name. Each name keeps the
    position of its first entry and the value of its last one.
    """
    deduped: Dict[str, dict] = {}
    for entry in raw_components or []:
        name = entry.get("name")
        if name in deduped:
            deduped[name]["enabled"] = bool(entry.get("enabled"))
        else:
            deduped[name] = {"name": name, "enabled": bool(entry.get("enabled"))}
    return list(deduped.values())


## Pull Policy #################################################################


def resolve_pull_policy(declared: Optional[str]) -> str:
    """An unset policy becomes IfNotPresent; anything declared passes through"""
    return declared or constants.DEFAULT_PULL_POLICY


## Public ######################################################################


def resolve(primary: dict) -> EffectiveConfig:
    """Build the effective config from the primary resource's spec"""
    overrides = (primary.get("spec") or {}).get("overrides") or {}
    return EffectiveConfig(
        components=resolve_components(overrides.get("components")),
        image_pull_policy=resolve_pull_policy(overrides.get("imagePullPolicy")),
    )


def persist_deduplicated_components(primary: dict, deploy_manager) -> bool:
    """Write the deduplicated override list back to the primary resource when
    it differs from the stored list. A list that is already deduplicated
    causes no write.

    Args:
        primary:  dict
            The current primary resource. It is updated in place on write.
        deploy_manager:  DeployManagerBase
            The deploy manager to write through

    Returns:
        written:  bool
            Whether a spec update was sent
    """
    overrides = (primary.get("spec") or {}).get("overrides") or {}
    stored = overrides.get("components")
    if not stored:
        return False
    deduped = deduplicate_components(stored)
    if deduped == list(stored):
        return False

    log.info(
        "Collapsing %d component overrides to %d", len(stored), len(deduped)
    )
    metadata = primary.get("metadata", {})
    updated = {
        "apiVersion": primary.get("apiVersion"),
        "kind": primary.get("kind"),
        "metadata": {
            key: copy.deepcopy(metadata[key])
            for key in ["name", "labels", "annotations"]
            if key in metadata
        },
        "spec": copy.deepcopy(primary.get("spec") or {}),
    }
    updated["spec"]["overrides"]["components"] = deduped
    success, _ = deploy_manager.deploy([updated])
    assert_cluster(success, "Failed to write deduplicated component overrides")
    primary.setdefault("spec", {}).setdefault("overrides", {})["components"] = deduped
    return True
