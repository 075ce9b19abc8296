"""
Common utilities shared across the operator
"""

# Standard
from datetime import timedelta
from typing import Any, Optional
import base64
import os
import pathlib
import re
import uuid

# First Party
import alog

# Local
from . import config, constants

log = alog.use_channel("UTILS")

# Sentinel for missing dict values
__MISSING__ = "__MISSING__"

SERVICE_ACCOUNT_NAMESPACE_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"

## Dicts #######################################################################


def nested_get(dct: dict, key: str, dflt=None) -> Any:
    """Get a value from a dict using 'foo.bar' key notation

    Args:
        dct:  dict
            The dict to read from
        key:  str
            Key that may contain '.' notation indicating dict nesting

    Returns:
        val:  Any
            The value at the key, or dflt if any part of the path is missing
    """
    parts = key.split(constants.NESTED_DICT_DELIM)
    for part in parts[:-1]:
        dct = dct.get(part, __MISSING__)
        if dct is __MISSING__ or dct is None:
            return dflt
        if not isinstance(dct, dict):
            raise TypeError(f"Intermediate key {part} in {key} is not a dict")
    return dct.get(parts[-1], dflt)


## Identity ####################################################################


def get_operator_namespace() -> str:
    """Get the namespace the operator runs in from the service account file,
    the POD_NAMESPACE variable, or config, in that order
    """
    namespace_file = pathlib.Path(SERVICE_ACCOUNT_NAMESPACE_FILE)
    if namespace_file.is_file():
        return namespace_file.read_text(encoding="utf-8").strip()
    return os.environ.get("POD_NAMESPACE") or config.operator_namespace


def generate_id() -> str:
    """Short random id used to tag the logs of a single reconcile pass"""
    uuid_str = uuid.uuid4().bytes
    return base64.b32encode(uuid_str).decode("utf-8").rstrip("=").lower()[:22]


def get_annotation(resource: dict, name: str) -> Optional[str]:
    """Read one annotation from a resource dict"""
    annotations = (resource.get("metadata") or {}).get("annotations") or {}
    return annotations.get(name)


## Time ########################################################################

TIME_DELTA_REGEX = re.compile(
    r"^((?P<hours>\d+?)hr)?((?P<minutes>\d+?)m)?((?P<seconds>\d*\.?\d+?)s)?$"
)


def parse_time_delta(time_str: str) -> Optional[timedelta]:
    """Parse a string such as 1hr, 5m, 10s or 1hr30m into a timedelta

    Args:
        time_str:  str
            The string representation of a timedelta

    Returns:
        result:  Optional[timedelta]
            The parsed timedelta, or None if the string is empty or invalid
    """
    parts = TIME_DELTA_REGEX.match(time_str or "")
    if not parts or all(part is None for part in parts.groupdict().values()):
        return None
    return timedelta(
        **{name: float(value) for name, value in parts.groupdict().items() if value}
    )
