"""
Console plugin serving the multicluster engine pages
"""

# Standard
from typing import List

# Local
from .base import (
    DEPLOYMENT,
    SERVICE,
    Component,
    ComponentName,
    TemplateContext,
    component,
    container,
    deployment,
    service,
)

NAME = "console-mce-console"
PORT = 3000


@component(ComponentName.CONSOLE_MCE)
class ConsoleMCE(Component):
    image_keys = ["console_mce"]
    kinds = [DEPLOYMENT, SERVICE]

    def build(self, ctx: TemplateContext) -> List[dict]:
        return [
            deployment(
                ctx,
                NAME,
                [container(ctx, "console", "console_mce", ports=[PORT])],
                replicas=2,
                service_account="console-mce",
            ),
            service(ctx, NAME, PORT),
        ]
