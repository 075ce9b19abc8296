"""
Tests for desired state synthesis
"""
# Standard
from typing import List
from unittest import mock
import copy

# Third Party
import pytest

# Local
from backplane import constants, overrides
from backplane.components import Component, ComponentName, TemplateContext, component
from backplane.components import base as components_base
from backplane.exceptions import SynthesisError
from backplane.images import ImageResolver
from backplane.managed_object import ManagedObject
from backplane.synthesizer import synthesize, synthesize_by_component
from backplane.test_helpers.helpers import (
    TEST_INSTANCE_NAME,
    TEST_INSTANCE_UID,
    TEST_TARGET_NAMESPACE,
    image_environ,
    setup_cr,
)

## Helpers #####################################################################


def run_synthesis(cr, resolver=None):
    return synthesize(
        overrides.resolve(cr), resolver or ImageResolver(environ=image_environ()), cr
    )


def containers_of(manifests: List[dict]) -> List[dict]:
    return [
        cont
        for manifest in manifests
        if manifest["kind"] == "Deployment"
        for cont in manifest["spec"]["template"]["spec"]["containers"]
    ]


def names_of(manifests: List[dict], kind: str) -> List[str]:
    return [
        manifest["metadata"]["name"]
        for manifest in manifests
        if manifest["kind"] == kind
    ]


## Tests #######################################################################


def test_defaults():
    """The default components are all present, default-off ones are absent"""
    manifests = run_synthesis(setup_cr())
    deployments = names_of(manifests, "Deployment")
    assert "discovery-operator" in deployments
    assert "hive-operator" in deployments
    assert "managed-serviceaccount-addon-manager" not in deployments
    assert names_of(manifests, "Namespace") == [TEST_TARGET_NAMESPACE]


def test_every_manifest_has_exactly_one_controller_owner():
    manifests = run_synthesis(setup_cr())
    assert manifests
    for manifest in manifests:
        refs = manifest["metadata"]["ownerReferences"]
        assert len(refs) == 1
        assert refs[0]["controller"] is True
        assert refs[0]["uid"] == TEST_INSTANCE_UID
        assert refs[0]["name"] == TEST_INSTANCE_NAME
        assert refs[0]["kind"] == constants.PRIMARY_KIND
        assert refs[0]["apiVersion"] == constants.PRIMARY_API_VERSION


def test_every_manifest_is_labeled():
    for manifest in run_synthesis(setup_cr()):
        assert (
            manifest["metadata"]["labels"][constants.OWNER_LABEL_NAME]
            == TEST_INSTANCE_NAME
        )


def test_identities_are_unique():
    manifests = run_synthesis(setup_cr())
    keys = [ManagedObject(manifest).key for manifest in manifests]
    assert len(keys) == len(set(keys))


def test_disabled_component_is_absent():
    cr = setup_cr(components=[{"name": "discovery", "enabled": False}])
    manifests = run_synthesis(cr)
    assert "discovery-operator" not in names_of(manifests, "Deployment")
    assert "hive-operator" in names_of(manifests, "Deployment")


def test_enable_default_off_component():
    cr = setup_cr(components=[{"name": "managedserviceaccount", "enabled": True}])
    manifests = run_synthesis(cr)
    assert "managed-serviceaccount-addon-manager" in names_of(manifests, "Deployment")


@pytest.mark.parametrize(
    ["declared", "expected"],
    [(None, "IfNotPresent"), ("Always", "Always"), ("Never", "Never")],
)
def test_pull_policy_on_every_container(declared, expected):
    cr = setup_cr(
        image_pull_policy=declared,
        components=[{"name": "managedserviceaccount", "enabled": True}],
    )
    containers = containers_of(run_synthesis(cr))
    assert containers
    assert {cont["imagePullPolicy"] for cont in containers} == {expected}


def test_images_come_from_resolver():
    cr = setup_cr(
        annotations={constants.IMAGE_REPOSITORY_ANNOTATION_NAME: "quay.io/testrepo"}
    )
    resolver = ImageResolver(repository="quay.io/testrepo", environ=image_environ())
    for cont in containers_of(run_synthesis(cr, resolver)):
        assert cont["image"].startswith("quay.io/testrepo/")


def test_service_monitor_in_monitoring_namespace():
    manifests = run_synthesis(setup_cr())
    monitors = [m for m in manifests if m["kind"] == "ServiceMonitor"]
    assert len(monitors) == 1
    assert monitors[0]["metadata"]["namespace"] == "openshift-monitoring"
    assert monitors[0]["spec"]["namespaceSelector"]["matchNames"] == [
        TEST_TARGET_NAMESPACE
    ]


def test_pod_spec_from_primary():
    cr = setup_cr(
        spec={
            "imagePullSecret": "pull-secret",
            "nodeSelector": {"node-role": "infra"},
            "tolerations": [{"key": "infra", "effect": "NoSchedule"}],
        }
    )
    manifests = run_synthesis(cr)
    for manifest in manifests:
        if manifest["kind"] != "Deployment":
            continue
        pod_spec = manifest["spec"]["template"]["spec"]
        assert pod_spec["imagePullSecrets"] == [{"name": "pull-secret"}]
        assert pod_spec["nodeSelector"] == {"node-role": "infra"}
        assert pod_spec["tolerations"] == [{"key": "infra", "effect": "NoSchedule"}]


def test_synthesis_is_pure():
    """Synthesis does not touch the primary and is repeatable"""
    cr = setup_cr(components=[{"name": "hive", "enabled": False}])
    original = copy.deepcopy(cr)
    first = run_synthesis(cr)
    second = run_synthesis(cr)
    assert first == second
    assert cr == original


def test_by_component_grouping():
    cr = setup_cr(components=[{"name": "hive", "enabled": False}])
    by_component = synthesize_by_component(
        overrides.resolve(cr), ImageResolver(environ=image_environ()), cr
    )
    assert "backplane-base" in by_component
    assert "discovery" in by_component
    assert "hive" not in by_component
    assert list(by_component.keys())[0] == "backplane-base"


## Errors ######################################################################


def test_enabled_component_without_template():
    registry = dict(components_base._REGISTRY)
    registry.pop(ComponentName.DISCOVERY.value)
    with mock.patch.object(components_base, "_REGISTRY", registry):
        with pytest.raises(SynthesisError):
            run_synthesis(setup_cr())


def test_disabled_component_without_template_is_fine():
    registry = dict(components_base._REGISTRY)
    registry.pop(ComponentName.DISCOVERY.value)
    cr = setup_cr(components=[{"name": "discovery", "enabled": False}])
    with mock.patch.object(components_base, "_REGISTRY", registry):
        assert "discovery-operator" not in names_of(run_synthesis(cr), "Deployment")


def test_manifest_without_name():
    with mock.patch.object(
        components_base, "_REGISTRY", dict(components_base._REGISTRY)
    ):

        @component("nameless", mandatory=True)
        class Nameless(Component):  # pylint: disable=unused-variable
            def build(self, ctx: TemplateContext) -> List[dict]:
                return [{"apiVersion": "v1", "kind": "ConfigMap", "metadata": {}}]

        with pytest.raises(SynthesisError):
            run_synthesis(setup_cr())


def test_component_registration_rules():
    with mock.patch.object(
        components_base, "_REGISTRY", dict(components_base._REGISTRY)
    ):
        # Optional components must use a ComponentName
        with pytest.raises(TypeError):

            @component("free-form")
            class FreeForm(Component):  # pylint: disable=unused-variable
                def build(self, ctx):
                    return []

        # Names are registered once
        with pytest.raises(ValueError):

            @component("backplane-base", mandatory=True)
            class Duplicate(Component):  # pylint: disable=unused-variable
                def build(self, ctx):
                    return []
