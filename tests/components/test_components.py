"""
Tests for the compiled-in component templates and their registry
"""

# Standard
import copy

# Third Party
import pytest

# Local
from backplane.components import (
    ComponentName,
    TemplateContext,
    all_image_keys,
    get_component,
    managed_kinds,
    registered_components,
)
from backplane.components.base import container, deployment

## Helpers #####################################################################


class RecordingResolver:
    """Image resolver that hands back a fixed image and records the keys"""

    def __init__(self):
        self.keys = []

    def __call__(self, image_key):
        self.keys.append(image_key)
        return f"registry.example.com/{image_key}:1.0"


def make_context(image=None, **kwargs):
    kwargs.setdefault("primary_name", "multiclusterengine")
    kwargs.setdefault("target_namespace", "multicluster-engine")
    kwargs.setdefault("pull_policy", "IfNotPresent")
    kwargs.setdefault("monitoring_namespace", "openshift-monitoring")
    kwargs.setdefault("trusted_ca_bundle_name", "trusted-ca-bundle")
    return TemplateContext(image=image or RecordingResolver(), **kwargs)


def pod_containers(manifests):
    return [
        cont
        for manifest in manifests
        if manifest["kind"] == "Deployment"
        for cont in manifest["spec"]["template"]["spec"]["containers"]
    ]


## Registry ####################################################################


def test_every_component_name_is_registered():
    for name in ComponentName:
        comp = get_component(name)
        assert comp is not None, f"No template for {name.value}"
        assert comp.name == name
        assert not comp.mandatory


def test_mandatory_components_first():
    components = registered_components()
    assert components[0].mandatory
    assert components[0].display_name() == "backplane-base"
    assert sum(comp.mandatory for comp in components) == 1


def test_default_enablement():
    assert not get_component(ComponentName.MANAGED_SERVICE_ACCOUNT).enabled_by_default
    assert get_component(ComponentName.HIVE).enabled_by_default


def test_component_name_parse():
    assert ComponentName.parse("hive") == ComponentName.HIVE
    assert ComponentName.parse("not-a-component") is None


def test_all_image_keys_unique():
    keys = all_image_keys()
    assert len(keys) == len(set(keys))
    assert "openshift_hive" in keys
    assert "discovery_operator" in keys


def test_managed_kinds():
    kinds = managed_kinds()
    assert len(kinds) == len(set(kinds))
    assert ("apps/v1", "Deployment") in kinds
    assert ("hive.openshift.io/v1", "HiveConfig") in kinds


## Templates ###################################################################


@pytest.mark.parametrize(
    "comp", registered_components(), ids=lambda comp: comp.display_name()
)
def test_template_declares_what_it_produces(comp):
    """Every manifest kind and image key a template uses is declared on it"""
    resolver = RecordingResolver()
    manifests = comp().build(make_context(image=resolver))
    assert manifests
    for manifest in manifests:
        assert (manifest["apiVersion"], manifest["kind"]) in comp.kinds
        assert manifest["metadata"]["name"]
    assert set(resolver.keys) <= set(comp.image_keys)


@pytest.mark.parametrize(
    "comp", registered_components(), ids=lambda comp: comp.display_name()
)
def test_template_is_pure(comp):
    ctx = make_context()
    first = comp().build(ctx)
    snapshot = copy.deepcopy(first)
    first[0]["metadata"]["name"] = "changed"
    assert comp().build(ctx) == snapshot


def test_templates_use_target_namespace():
    ctx = make_context(target_namespace="other")
    manifests = get_component(ComponentName.DISCOVERY)().build(ctx)
    assert all(
        manifest["metadata"]["namespace"] == "other"
        for manifest in manifests
        if manifest["kind"] == "Deployment"
    )


## Builders ####################################################################


def test_container_builder():
    ctx = make_context(pull_policy="Always")
    cont = container(
        ctx, "manager", "discovery_operator", args=["--x"], env={"A": "b"}, ports=[80]
    )
    assert cont == {
        "name": "manager",
        "image": "registry.example.com/discovery_operator:1.0",
        "imagePullPolicy": "Always",
        "args": ["--x"],
        "env": [{"name": "A", "value": "b"}],
        "ports": [{"containerPort": 80}],
    }


def test_deployment_builder_pod_settings():
    ctx = make_context(
        pull_secret="pull-secret",
        node_selector={"node-role": "infra"},
        tolerations=[{"key": "infra", "effect": "NoSchedule"}],
    )
    manifest = deployment(ctx, "test", [container(ctx, "c", "key")], replicas=2)
    pod_spec = manifest["spec"]["template"]["spec"]
    assert manifest["spec"]["replicas"] == 2
    assert manifest["metadata"]["namespace"] == "multicluster-engine"
    assert pod_spec["imagePullSecrets"] == [{"name": "pull-secret"}]
    assert pod_spec["nodeSelector"] == {"node-role": "infra"}
    assert pod_spec["tolerations"] == [{"key": "infra", "effect": "NoSchedule"}]


def test_deployment_builder_minimal():
    ctx = make_context()
    pod_spec = deployment(ctx, "test", [container(ctx, "c", "key")])["spec"][
        "template"
    ]["spec"]
    assert set(pod_spec.keys()) == {"containers"}


def test_every_container_gets_pull_policy():
    ctx = make_context(pull_policy="Never")
    for comp in registered_components():
        for cont in pod_containers(comp().build(ctx)):
            assert cont["imagePullPolicy"] == "Never"
