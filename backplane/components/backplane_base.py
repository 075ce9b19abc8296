"""
Always-on resources: the target namespace and the trusted CA bundle
"""

# Standard
from typing import List

# Local
from .. import constants
from .base import (
    CONFIG_MAP,
    NAMESPACE,
    Component,
    TemplateContext,
    component,
    metadata,
)


@component("backplane-base", mandatory=True)
class BackplaneBase(Component):
    kinds = [NAMESPACE, CONFIG_MAP]

    def build(self, ctx: TemplateContext) -> List[dict]:
        return [
            {
                "apiVersion": NAMESPACE[0],
                "kind": NAMESPACE[1],
                "metadata": metadata(ctx.target_namespace),
            },
            # The cluster network operator fills in data; the label is the ask
            {
                "apiVersion": CONFIG_MAP[0],
                "kind": CONFIG_MAP[1],
                "metadata": metadata(
                    ctx.trusted_ca_bundle_name,
                    ctx.target_namespace,
                    labels={constants.TRUSTED_CA_INJECT_LABEL_NAME: "true"},
                ),
            },
        ]
