"""
Managed service account addon, disabled unless explicitly enabled
"""

# Standard
from typing import List

# Local
from .base import (
    CLUSTER_MANAGEMENT_ADDON,
    DEPLOYMENT,
    SERVICE_ACCOUNT,
    Component,
    ComponentName,
    TemplateContext,
    cluster_management_addon,
    component,
    container,
    deployment,
    service_account,
)

NAME = "managed-serviceaccount"


@component(ComponentName.MANAGED_SERVICE_ACCOUNT)
class ManagedServiceAccount(Component):
    enabled_by_default = False
    image_keys = ["managed_serviceaccount"]
    kinds = [DEPLOYMENT, SERVICE_ACCOUNT, CLUSTER_MANAGEMENT_ADDON]

    def build(self, ctx: TemplateContext) -> List[dict]:
        image = ctx.image("managed_serviceaccount")
        return [
            service_account(ctx, NAME),
            deployment(
                ctx,
                "managed-serviceaccount-addon-manager",
                [
                    container(
                        ctx,
                        "manager",
                        "managed_serviceaccount",
                        args=["--leader-elect=true", f"--agent-image-name={image}"],
                    )
                ],
                service_account=NAME,
            ),
            cluster_management_addon(
                NAME,
                "Managed ServiceAccount",
                "Synchronizes ServiceAccount to the managed clusters",
            ),
        ]
