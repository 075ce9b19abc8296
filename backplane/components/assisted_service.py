"""
Infrastructure operator for the assisted installer
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


@component(ComponentName.ASSISTED_SERVICE)
class AssistedService(Component):
    image_keys = [
        "assisted_service_operator",
        "assisted_service",
        "assisted_image_service",
    ]
    kinds = [DEPLOYMENT]

    def build(self, ctx: TemplateContext) -> List[dict]:
        # The operator rolls out the service images it is handed here
        env = {
            "SERVICE_IMAGE": ctx.image("assisted_service"),
            "IMAGE_SERVICE_IMAGE": ctx.image("assisted_image_service"),
            "NAMESPACE": ctx.target_namespace,
        }
        return [
            deployment(
                ctx,
                "infrastructure-operator",
                [
                    container(
                        ctx,
                        "manager",
                        "assisted_service_operator",
                        args=["--leader-elect"],
                        env=env,
                    )
                ],
                service_account="assisted-service",
            )
        ]
