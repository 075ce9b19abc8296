"""
Compiled-in component templates. Importing this package registers every
component in emission order.
"""

# Local
from . import (
    backplane_base,
    server_foundation,
    cluster_manager,
    hive,
    discovery,
    cluster_lifecycle,
    assisted_service,
    console_mce,
    managed_service_account,
)
from .base import (
    Component,
    ComponentName,
    TemplateContext,
    all_image_keys,
    component,
    get_component,
    managed_kinds,
    registered_components,
)
