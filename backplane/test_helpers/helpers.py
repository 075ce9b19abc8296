"""
This module holds common helper functions for making testing easy
"""

# Standard
from contextlib import contextmanager
from typing import Dict, List, Optional
from unittest import mock
import copy
import inspect
import os
import uuid

# First Party
import aconfig
import alog

# Local
from backplane import constants
from backplane.components import all_image_keys
from backplane.config import library_config as config_detail_dict
from backplane.deploy_manager.dry_run_deploy_manager import DryRunDeployManager
from backplane.images import env_var_name
from backplane.session import Session
from backplane.status import get_condition

log = alog.use_channel("TEST")


def configure_logging():
    alog.configure(
        os.environ.get("LOG_LEVEL", "off"),
        os.environ.get("LOG_FILTERS", ""),
        formatter="json"
        if os.environ.get("LOG_JSON", "").lower() == "true"
        else "pretty",
        thread_id=os.environ.get("LOG_THREAD_ID", "").lower() == "true",
    )


configure_logging()

TEST_INSTANCE_NAME = "multiclusterengine"
TEST_INSTANCE_UID = "12345678-1234-1234-1234-123456789012"
TEST_TARGET_NAMESPACE = "multicluster-engine"
TEST_OPERATOR_NAMESPACE = "backplane-operator"
TEST_REGISTRY = "quay.io/stolostron"
TEST_TAG = "2.4.0"


## Resources ###################################################################


def setup_cr(
    name: str = TEST_INSTANCE_NAME,
    components: Optional[List[dict]] = None,
    image_pull_policy: Optional[str] = None,
    annotations: Optional[Dict[str, str]] = None,
    target_namespace: str = TEST_TARGET_NAMESPACE,
    **kwargs,
) -> dict:
    """Build a MultiClusterEngine manifest"""
    cr_dict = copy.deepcopy(kwargs)
    cr_dict.setdefault("kind", constants.PRIMARY_KIND)
    cr_dict.setdefault("apiVersion", constants.PRIMARY_API_VERSION)
    metadata = cr_dict.setdefault("metadata", {})
    metadata.setdefault("name", name)
    metadata.setdefault("uid", TEST_INSTANCE_UID)
    metadata.setdefault("generation", 1)
    if annotations:
        metadata.setdefault("annotations", {}).update(annotations)
    spec = cr_dict.setdefault("spec", {})
    spec.setdefault("targetNamespace", target_namespace)
    if components is not None or image_pull_policy is not None:
        overrides = spec.setdefault("overrides", {})
        if components is not None:
            overrides["components"] = copy.deepcopy(components)
        if image_pull_policy is not None:
            overrides["imagePullPolicy"] = image_pull_policy
    return cr_dict


def setup_session(
    full_cr: Optional[dict] = None,
    deploy_manager: Optional[DryRunDeployManager] = None,
    deploy_initial_cr: bool = True,
    **kwargs,
) -> Session:
    full_cr = full_cr or setup_cr()
    if not deploy_manager:
        deploy_manager = (
            MockDeployManager(resources=[full_cr])
            if deploy_initial_cr
            else MockDeployManager()
        )
    kwargs.setdefault("operator_namespace", TEST_OPERATOR_NAMESPACE)
    return Session(
        reconciliation_id=str(uuid.uuid4()),
        primary=full_cr,
        deploy_manager=deploy_manager,
        **kwargs,
    )


def default_image(image_key: str) -> str:
    """The image the test environment provides for a key"""
    return f"{TEST_REGISTRY}/{image_key.replace('_', '-')}:{TEST_TAG}"


def image_environ(
    image_keys: Optional[List[str]] = None, **overrides
) -> Dict[str, str]:
    """An environment dict with an OPERAND_IMAGE_ default for every key"""
    environ = {
        env_var_name(key): default_image(key) for key in image_keys or all_image_keys()
    }
    environ.update(overrides)
    return environ


@contextmanager
def image_environment(image_keys: Optional[List[str]] = None, **overrides):
    """Set the OPERAND_IMAGE_ defaults in os.environ for the duration"""
    with mock.patch.dict(os.environ, image_environ(image_keys, **overrides)):
        yield


def make_deployment_ready(deploy_manager: DryRunDeployManager, manifest: dict):
    """Give a deployed Deployment the status of a finished rollout"""
    metadata = manifest["metadata"]
    _, current = deploy_manager.get_object_current_state(
        kind="Deployment",
        name=metadata["name"],
        namespace=metadata.get("namespace"),
        api_version="apps/v1",
    )
    assert current, f"Deployment {metadata['name']} not found"
    deploy_manager.set_status(
        kind="Deployment",
        name=metadata["name"],
        namespace=metadata.get("namespace"),
        api_version="apps/v1",
        status={
            "observedGeneration": current["metadata"].get("generation", 1),
            "conditions": [
                {
                    "type": "Available",
                    "status": "True",
                    "lastUpdateTime": "2024-01-01T00:00:00Z",
                },
                {
                    "type": "Progressing",
                    "status": "True",
                    "reason": "NewReplicaSetAvailable",
                    "lastUpdateTime": "2024-01-01T00:00:00Z",
                },
            ],
        },
    )


def make_all_deployments_ready(deploy_manager: DryRunDeployManager):
    _, deployments = deploy_manager.filter_objects_current_state(
        kind="Deployment", api_version="apps/v1"
    )
    for deployment in deployments:
        make_deployment_ready(deploy_manager, deployment)


def is_condition_true(type_name: str, current_status: dict) -> bool:
    return get_condition(type_name, current_status).get("status") == str(True)


## Config ######################################################################


@contextmanager
def library_config(**config_overrides):
    """This context manager sets library config values temporarily and reverts
    them on completion. Dict values are merged over the nested section they
    replace.
    """
    old_vals = {}
    for key, val in config_overrides.items():
        if key in config_detail_dict:
            old_vals[key] = config_detail_dict[key]
        if isinstance(val, dict):
            merged = dict(old_vals.get(key) or {})
            merged.update(val)
            val = aconfig.Config(merged, override_env_vars=False)
        config_detail_dict[key] = val

    try:
        yield
    finally:
        for key in config_overrides:
            if key in old_vals:
                config_detail_dict[key] = old_vals[key]
            else:
                del config_detail_dict[key]


## Deploy Manager ##############################################################


def get_failable_method(fail_flag, method, failure_return=False):
    def failable_method(*args, **kwargs):
        if isinstance(fail_flag, Exception) or (
            inspect.isclass(fail_flag) and issubclass(fail_flag, Exception)
        ):
            raise fail_flag
        if callable(fail_flag):
            res = fail_flag()
            if res is not None:
                return res
        elif fail_flag == "assert":
            raise AssertionError(f"You told me to fail {method}!")
        elif fail_flag:
            return failure_return
        return method(*args, **kwargs)

    return failable_method


class MockDeployManager(DryRunDeployManager):
    """The MockDeployManager wraps a standard DryRunDeployManager and adds
    configuration options to simulate failures in each of its operations.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        deploy_fail=False,
        deploy_raise=False,
        disable_fail=False,
        disable_raise=False,
        get_state_fail=False,
        get_state_raise=False,
        filter_fail=False,
        set_status_fail=False,
        set_status_raise=False,
        auto_enable=True,
        resources=None,
        **kwargs,
    ):
        super().__init__(resources=resources, **kwargs)

        self.deploy_fail = "assert" if deploy_raise else deploy_fail
        self.disable_fail = "assert" if disable_raise else disable_fail
        self.get_state_fail = "assert" if get_state_raise else get_state_fail
        self.filter_fail = filter_fail
        self.set_status_fail = "assert" if set_status_raise else set_status_fail

        if auto_enable:
            self.enable_mocks()

    def enable_mocks(self):
        """Turn the mocks on"""
        self.deploy = mock.Mock(
            side_effect=get_failable_method(
                self.deploy_fail, super().deploy, (False, False)
            )
        )
        self.disable = mock.Mock(
            side_effect=get_failable_method(
                self.disable_fail, super().disable, (False, False)
            )
        )
        self.get_object_current_state = mock.Mock(
            side_effect=get_failable_method(
                self.get_state_fail, super().get_object_current_state, (False, None)
            )
        )
        self.filter_objects_current_state = mock.Mock(
            side_effect=get_failable_method(
                self.filter_fail, super().filter_objects_current_state, (False, [])
            )
        )
        self.set_status = mock.Mock(
            side_effect=get_failable_method(
                self.set_status_fail, super().set_status, (False, False)
            )
        )

    def get_obj(self, kind, name, namespace=None, api_version=None):
        return self.get_object_current_state(kind, name, namespace, api_version)[1]
