"""
Shared pieces for component templates: the closed set of component names, the
Component base class with its registration decorator, and the manifest
builders every template uses
"""

# Standard
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Type, Union
import abc

# First Party
import alog

log = alog.use_channel("COMP")

## Names #######################################################################


class ComponentName(Enum):
    """The known optional components that overrides may toggle"""

    SERVER_FOUNDATION = "server-foundation"
    CLUSTER_MANAGER = "cluster-manager"
    HIVE = "hive"
    DISCOVERY = "discovery"
    CLUSTER_LIFECYCLE = "cluster-lifecycle"
    ASSISTED_SERVICE = "assisted-service"
    CONSOLE_MCE = "console-mce"
    MANAGED_SERVICE_ACCOUNT = "managedserviceaccount"

    @classmethod
    def parse(cls, name: str) -> Optional["ComponentName"]:
        """Look up a name from an override entry, None when unknown"""
        try:
            return cls(name)
        except ValueError:
            return None


## Kinds #######################################################################

# (apiVersion, kind) pairs for every kind a template may produce
NAMESPACE = ("v1", "Namespace")
CONFIG_MAP = ("v1", "ConfigMap")
SERVICE = ("v1", "Service")
SERVICE_ACCOUNT = ("v1", "ServiceAccount")
DEPLOYMENT = ("apps/v1", "Deployment")
SERVICE_MONITOR = ("monitoring.coreos.com/v1", "ServiceMonitor")
CLUSTER_MANAGEMENT_ADDON = (
    "addon.open-cluster-management.io/v1alpha1",
    "ClusterManagementAddOn",
)
CLUSTER_MANAGER = ("operator.open-cluster-management.io/v1", "ClusterManager")
HIVE_CONFIG = ("hive.openshift.io/v1", "HiveConfig")

KindKey = Tuple[str, str]

## Context #####################################################################


@dataclass
class TemplateContext:
    """Everything a template needs, passed explicitly so templates stay pure

    image:  Callable[[str], str]
        Resolves a logical image key to the final image reference
    """

    primary_name: str
    target_namespace: str
    image: Callable[[str], str]
    pull_policy: str
    monitoring_namespace: str
    trusted_ca_bundle_name: str
    pull_secret: Optional[str] = None
    node_selector: Dict[str, str] = field(default_factory=dict)
    tolerations: List[dict] = field(default_factory=list)


## Component ###################################################################

# Registration order is the order manifests are emitted in
_REGISTRY: Dict[str, Type["Component"]] = {}


class Component(abc.ABC):
    """A compiled-in unit of desired state. Templates are pure: build() only
    reads the context and returns fresh manifest dicts.
    """

    name: Union[ComponentName, str] = None
    mandatory: bool = False
    enabled_by_default: bool = True
    image_keys: List[str] = []
    kinds: List[KindKey] = []

    @abc.abstractmethod
    def build(self, ctx: TemplateContext) -> List[dict]:
        """Produce the manifests for this component"""

    @classmethod
    def display_name(cls) -> str:
        return cls.name.value if isinstance(cls.name, ComponentName) else cls.name


def component(
    name: Union[ComponentName, str],
    mandatory: bool = False,
) -> Callable[[Type[Component]], Type[Component]]:
    """Register a Component subclass under a name. Optional components use a
    ComponentName while always-on components use a plain string.
    """

    def decorator(cls: Type[Component]) -> Type[Component]:
        if not issubclass(cls, Component):
            raise TypeError(f"{cls} is not a Component")
        if mandatory == isinstance(name, ComponentName):
            raise TypeError(
                f"{name}: mandatory components take a str name, optional ones a "
                "ComponentName"
            )
        cls.name = name
        cls.mandatory = mandatory
        key = cls.display_name()
        if key in _REGISTRY:
            raise ValueError(f"Component {key} registered twice")
        log.debug3("Registering component %s", key)
        _REGISTRY[key] = cls
        return cls

    return decorator


def registered_components() -> List[Type[Component]]:
    return list(_REGISTRY.values())


def get_component(name: ComponentName) -> Optional[Type[Component]]:
    return _REGISTRY.get(name.value)


def all_image_keys() -> List[str]:
    """Every image key any component may resolve, in registration order"""
    keys = []
    for comp in registered_components():
        keys.extend(key for key in comp.image_keys if key not in keys)
    return keys


def managed_kinds() -> List[KindKey]:
    kinds = []
    for comp in registered_components():
        kinds.extend(kind for kind in comp.kinds if kind not in kinds)
    return kinds


## Builders ####################################################################


def metadata(
    name: str,
    namespace: Optional[str] = None,
    labels: Optional[Dict[str, str]] = None,
    annotations: Optional[Dict[str, str]] = None,
) -> dict:
    meta = {"name": name}
    if namespace:
        meta["namespace"] = namespace
    if labels:
        meta["labels"] = dict(labels)
    if annotations:
        meta["annotations"] = dict(annotations)
    return meta


def container(  # pylint: disable=too-many-arguments
    ctx: TemplateContext,
    name: str,
    image_key: str,
    args: Optional[List[str]] = None,
    env: Optional[Dict[str, str]] = None,
    ports: Optional[List[int]] = None,
) -> dict:
    """A container whose image and pull policy come from the context"""
    spec = {
        "name": name,
        "image": ctx.image(image_key),
        "imagePullPolicy": ctx.pull_policy,
    }
    if args:
        spec["args"] = list(args)
    if env:
        spec["env"] = [{"name": key, "value": value} for key, value in env.items()]
    if ports:
        spec["ports"] = [{"containerPort": port} for port in ports]
    return spec


def deployment(  # pylint: disable=too-many-arguments
    ctx: TemplateContext,
    name: str,
    containers: List[dict],
    replicas: int = 1,
    service_account: Optional[str] = None,
    namespace: Optional[str] = None,
) -> dict:
    """A Deployment in the target namespace carrying the pull secret, node
    selector and tolerations from the primary resource
    """
    selector = {"app": name}
    pod_spec = {"containers": containers}
    if service_account:
        pod_spec["serviceAccountName"] = service_account
    if ctx.pull_secret:
        pod_spec["imagePullSecrets"] = [{"name": ctx.pull_secret}]
    if ctx.node_selector:
        pod_spec["nodeSelector"] = dict(ctx.node_selector)
    if ctx.tolerations:
        pod_spec["tolerations"] = [dict(tol) for tol in ctx.tolerations]
    return {
        "apiVersion": DEPLOYMENT[0],
        "kind": DEPLOYMENT[1],
        "metadata": metadata(name, namespace or ctx.target_namespace, labels=selector),
        "spec": {
            "replicas": replicas,
            "selector": {"matchLabels": selector},
            "template": {
                "metadata": {"labels": selector},
                "spec": pod_spec,
            },
        },
    }


def service(
    ctx: TemplateContext,
    name: str,
    port: int,
    target_port: Optional[int] = None,
    app: Optional[str] = None,
) -> dict:
    return {
        "apiVersion": SERVICE[0],
        "kind": SERVICE[1],
        "metadata": metadata(name, ctx.target_namespace, labels={"app": app or name}),
        "spec": {
            "selector": {"app": app or name},
            "ports": [
                {"name": "http", "port": port, "targetPort": target_port or port}
            ],
        },
    }


def service_account(ctx: TemplateContext, name: str) -> dict:
    return {
        "apiVersion": SERVICE_ACCOUNT[0],
        "kind": SERVICE_ACCOUNT[1],
        "metadata": metadata(name, ctx.target_namespace),
    }


def cluster_management_addon(name: str, display_name: str, description: str) -> dict:
    return {
        "apiVersion": CLUSTER_MANAGEMENT_ADDON[0],
        "kind": CLUSTER_MANAGEMENT_ADDON[1],
        "metadata": metadata(name),
        "spec": {
            "addOnMeta": {"displayName": display_name, "description": description}
        },
    }
