"""
Load the operator config at import time and apply the initial log setup
"""

# Standard
import os

# First Party
import aconfig
import alog

# Local
from .validation import get_invalid_params

_CONFIG_DIR = os.path.dirname(__file__)

# Environment variables may override any key
library_config = aconfig.Config.from_yaml(
    os.path.join(_CONFIG_DIR, "config.yaml"),
    override_env_vars=True,
)

# Validation rules are never overridden from the environment
validation_config = aconfig.Config.from_yaml(
    os.path.join(_CONFIG_DIR, "config_validation.yaml"),
    override_env_vars=False,
)

invalid_params = get_invalid_params(library_config, validation_config)
if invalid_params:
    raise ValueError(f"Operator configuration has invalid values: {invalid_params}")

alog.configure(
    default_level=library_config.log_level,
    filters=library_config.log_filters,
    formatter="json" if library_config.log_json else "pretty",
    thread_id=library_config.log_thread_id,
)
