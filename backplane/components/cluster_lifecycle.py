"""
Cluster lifecycle controllers, the state metrics exporter and its
ServiceMonitor
"""

# Standard
from typing import List

# Local
from .base import (
    DEPLOYMENT,
    SERVICE,
    SERVICE_MONITOR,
    Component,
    ComponentName,
    TemplateContext,
    component,
    container,
    deployment,
    metadata,
    service,
)

STATE_METRICS_NAME = "clusterlifecycle-state-metrics-v2"
STATE_METRICS_PORT = 8443

# (deployment name, image key, args)
_CONTROLLERS = [
    (
        "managedcluster-import-controller-v2",
        "managedcluster_import_controller",
        [],
    ),
    (
        "cluster-curator-controller",
        "cluster_curator_controller",
        ["curator", "controller"],
    ),
    ("clusterclaims-controller", "clusterclaims_controller", []),
    (
        "provider-credential-controller",
        "provider_credential_controller",
        ["/manager"],
    ),
]


@component(ComponentName.CLUSTER_LIFECYCLE)
class ClusterLifecycle(Component):
    image_keys = [image_key for _, image_key, _ in _CONTROLLERS] + [
        "clusterlifecycle_state_metrics"
    ]
    kinds = [DEPLOYMENT, SERVICE, SERVICE_MONITOR]

    def build(self, ctx: TemplateContext) -> List[dict]:
        manifests = [
            deployment(
                ctx,
                name,
                [container(ctx, name, image_key, args=args)],
                service_account=name,
            )
            for name, image_key, args in _CONTROLLERS
        ]
        manifests.append(
            deployment(
                ctx,
                STATE_METRICS_NAME,
                [
                    container(
                        ctx,
                        STATE_METRICS_NAME,
                        "clusterlifecycle_state_metrics",
                        args=[f"--port={STATE_METRICS_PORT}"],
                        ports=[STATE_METRICS_PORT],
                    )
                ],
                service_account=STATE_METRICS_NAME,
            )
        )
        manifests.append(service(ctx, STATE_METRICS_NAME, STATE_METRICS_PORT))
        manifests.append(
            {
                "apiVersion": SERVICE_MONITOR[0],
                "kind": SERVICE_MONITOR[1],
                "metadata": metadata(STATE_METRICS_NAME, ctx.monitoring_namespace),
                "spec": {
                    "endpoints": [
                        {"port": "http", "scheme": "https", "interval": "60s"}
                    ],
                    "namespaceSelector": {"matchNames": [ctx.target_namespace]},
                    "selector": {"matchLabels": {"app": STATE_METRICS_NAME}},
                },
            }
        )
        return manifests
