"""
Desired state synthesis. Given the effective config and an image resolver,
produce every manifest the primary resource implies. No cluster I/O happens
here.
"""

# Standard
from typing import Callable, Dict, List, Optional
import copy

# First Party
import alog

# Local
from . import config, constants
from .components import (
    ComponentName,
    TemplateContext,
    get_component,
    registered_components,
)
from .deploy_manager.owner_references import set_controller_owner_reference
from .exceptions import SynthesisError, assert_synthesis
from .overrides import EffectiveConfig

log = alog.use_channel("SYNTH")


def build_template_context(
    effective_config: EffectiveConfig,
    image_resolver: Callable[[str], str],
    primary: dict,
    monitoring_namespace: Optional[str] = None,
    trusted_ca_bundle_name: Optional[str] = None,
) -> TemplateContext:
    spec = primary.get("spec") or {}
    return TemplateContext(
        primary_name=primary.get("metadata", {}).get("name"),
        target_namespace=spec.get("targetNamespace")
        or constants.DEFAULT_TARGET_NAMESPACE,
        image=image_resolver,
        pull_policy=effective_config.image_pull_policy,
        monitoring_namespace=monitoring_namespace or config.monitoring_namespace,
        trusted_ca_bundle_name=trusted_ca_bundle_name or config.trusted_ca_bundle_name,
        pull_secret=spec.get("imagePullSecret") or None,
        node_selector=dict(spec.get("nodeSelector") or {}),
        tolerations=list(spec.get("tolerations") or []),
    )


def synthesize_by_component(
    effective_config: EffectiveConfig,
    image_resolver: Callable[[str], str],
    primary: dict,
    **kwargs,
) -> Dict[str, List[dict]]:
    """Build the manifests of every enabled or mandatory component, keyed by
    component name in emission order

    Raises:
        SynthesisError: if an enabled component has no template or a template
            produces a manifest without apiVersion, kind or name
    """
    for name in ComponentName:
        assert_synthesis(
            not effective_config.is_enabled(name) or get_component(name) is not None,
            f"Component {name.value} is enabled but has no template",
        )

    ctx = build_template_context(effective_config, image_resolver, primary, **kwargs)
    desired = {}
    for comp in registered_components():
        if not comp.mandatory and not effective_config.is_enabled(comp.name):
            log.debug2("Skipping disabled component %s", comp.display_name())
            continue
        manifests = comp().build(ctx)
        for manifest in manifests:
            _finalize_manifest(manifest, primary, comp.display_name())
        log.debug2(
            "Component %s produced %d manifests", comp.display_name(), len(manifests)
        )
        desired[comp.display_name()] = manifests
    return desired


def synthesize(
    effective_config: EffectiveConfig,
    image_resolver: Callable[[str], str],
    primary: dict,
    **kwargs,
) -> List[dict]:
    """The ordered list of every desired manifest"""
    return [
        manifest
        for manifests in synthesize_by_component(
            effective_config, image_resolver, primary, **kwargs
        ).values()
        for manifest in manifests
    ]


def validate_manifest(manifest: dict, source: str = ""):
    """Raise SynthesisError unless the manifest can be identified"""
    if not isinstance(manifest, dict):
        raise SynthesisError(f"{source} produced a non-dict manifest: {manifest!r}")
    metadata = manifest.get("metadata")
    assert_synthesis(
        isinstance(manifest.get("apiVersion"), str)
        and manifest["apiVersion"]
        and isinstance(manifest.get("kind"), str)
        and manifest["kind"]
        and isinstance(metadata, dict)
        and isinstance(metadata.get("name"), str)
        and metadata["name"],
        f"{source} produced a manifest without apiVersion, kind or name",
    )


def _finalize_manifest(manifest: dict, primary: dict, source: str):
    """Label the manifest and give it its single controller owner reference"""
    validate_manifest(manifest, source)
    labels = manifest["metadata"].setdefault("labels", {})
    labels[constants.OWNER_LABEL_NAME] = primary["metadata"]["name"]
    set_controller_owner_reference(_owner_identity(primary), manifest)


def _owner_identity(primary: dict) -> dict:
    metadata = primary.get("metadata", {})
    return {
        "apiVersion": primary.get("apiVersion"),
        "kind": primary.get("kind"),
        "metadata": copy.deepcopy(
            {key: metadata[key] for key in ["name", "uid"] if key in metadata}
        ),
    }
