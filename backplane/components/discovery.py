"""
Discovery operator
"""

# Standard
from typing import List

# Local
from .base import (
    DEPLOYMENT,
    Component,
    ComponentName,
    TemplateContext,
    component,
    container,
    deployment,
)


@component(ComponentName.DISCOVERY)
class Discovery(Component):
    image_keys = ["discovery_operator"]
    kinds = [DEPLOYMENT]

    def build(self, ctx: TemplateContext) -> List[dict]:
        return [
            deployment(
                ctx,
                "discovery-operator",
                [
                    container(
                        ctx,
                        "discovery-operator",
                        "discovery_operator",
                        args=["--leader-elect"],
                        env={"POD_NAMESPACE": ctx.target_namespace},
                    )
                ],
                service_account="discovery-operator",
            )
        ]
