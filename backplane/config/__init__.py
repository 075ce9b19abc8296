"""
Operator configuration. Attribute access on this module reads from the loaded
library config so that callers can write `config.backoff.max_seconds`.
"""

# Local
from .config import library_config


def __getattr__(name):
    if name in library_config or hasattr({}, name):
        return getattr(library_config, name)
    raise AttributeError(f"No such config attribute {name}")


__all__ = list(library_config.keys())
