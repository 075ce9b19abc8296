"""
Server foundation: the ocm webhook, controller and proxy server plus the
work-manager addon registration
"""

# Standard
from typing import List

# Local
from .base import (
    CLUSTER_MANAGEMENT_ADDON,
    DEPLOYMENT,
    Component,
    ComponentName,
    TemplateContext,
    cluster_management_addon,
    component,
    container,
    deployment,
)

IMAGE_KEY = "multicloud_manager"


@component(ComponentName.SERVER_FOUNDATION)
class ServerFoundation(Component):
    image_keys = [IMAGE_KEY]
    kinds = [DEPLOYMENT, CLUSTER_MANAGEMENT_ADDON]

    def build(self, ctx: TemplateContext) -> List[dict]:
        manifests = [
            deployment(
                ctx,
                "ocm-webhook",
                [
                    container(
                        ctx, "ocm-webhook", IMAGE_KEY, args=["/webhook"], ports=[8000]
                    )
                ],
                replicas=2,
                service_account="ocm-foundation-sa",
            ),
            deployment(
                ctx,
                "ocm-controller",
                [
                    container(
                        ctx,
                        "ocm-controller",
                        IMAGE_KEY,
                        args=["/controller", "--enable-inventory=false"],
                    )
                ],
                replicas=2,
                service_account="ocm-foundation-sa",
            ),
            deployment(
                ctx,
                "ocm-proxyserver",
                [
                    container(
                        ctx,
                        "ocm-proxyserver",
                        IMAGE_KEY,
                        args=["/proxyserver", "--secure-port=6443"],
                        ports=[6443],
                    )
                ],
                replicas=2,
                service_account="ocm-foundation-sa",
            ),
            cluster_management_addon(
                "work-manager",
                "Work Manager",
                "work-manager provides action, view and rbac settings",
            ),
        ]
        return manifests
