"""
Registration operator and the ClusterManager it reconciles
"""

# Standard
from typing import List

# Local
from .base import (
    CLUSTER_MANAGER,
    DEPLOYMENT,
    Component,
    ComponentName,
    TemplateContext,
    component,
    container,
    deployment,
    metadata,
)


@component(ComponentName.CLUSTER_MANAGER)
class ClusterManager(Component):
    image_keys = ["registration_operator", "registration", "work", "placement"]
    kinds = [DEPLOYMENT, CLUSTER_MANAGER]

    def build(self, ctx: TemplateContext) -> List[dict]:
        operator = deployment(
            ctx,
            "cluster-manager",
            [
                container(
                    ctx,
                    "registration-operator",
                    "registration_operator",
                    args=["/registration-operator", "hub"],
                )
            ],
            replicas=2,
            service_account="cluster-manager",
        )
        # Cluster scoped; the operator above deploys its hub components
        cluster_manager = {
            "apiVersion": CLUSTER_MANAGER[0],
            "kind": CLUSTER_MANAGER[1],
            "metadata": metadata("cluster-manager"),
            "spec": {
                "registrationImagePullSpec": ctx.image("registration"),
                "workImagePullSpec": ctx.image("work"),
                "placementImagePullSpec": ctx.image("placement"),
                "deployOption": {"mode": "Default"},
            },
        }
        if ctx.node_selector or ctx.tolerations:
            cluster_manager["spec"]["nodePlacement"] = {
                "nodeSelector": dict(ctx.node_selector),
                "tolerations": [dict(tol) for tol in ctx.tolerations],
            }
        return [operator, cluster_manager]
