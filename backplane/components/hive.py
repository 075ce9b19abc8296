"""
Hive operator and its HiveConfig
"""

# Standard
from typing import List

# Local
from .base import (
    DEPLOYMENT,
    HIVE_CONFIG,
    Component,
    ComponentName,
    TemplateContext,
    component,
    container,
    deployment,
    metadata,
)


@component(ComponentName.HIVE)
class Hive(Component):
    image_keys = ["openshift_hive"]
    kinds = [DEPLOYMENT, HIVE_CONFIG]

    def build(self, ctx: TemplateContext) -> List[dict]:
        return [
            deployment(
                ctx,
                "hive-operator",
                [
                    container(
                        ctx,
                        "hive-operator",
                        "openshift_hive",
                        args=["/opt/services/hive-operator", "--log-level", "info"],
                        env={
                            "HIVE_OPERATOR_NS": ctx.target_namespace,
                            "TARGET_NAMESPACE": "hive",
                        },
                    )
                ],
                service_account="hive-operator",
            ),
            {
                "apiVersion": HIVE_CONFIG[0],
                "kind": HIVE_CONFIG[1],
                "metadata": metadata("hive"),
                "spec": {"targetNamespace": "hive"},
            },
        ]
