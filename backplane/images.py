"""
Image resolution for component containers. A logical image key resolves, in
order of precedence, through a pin in the override ConfigMap, substitution of
the repository named by the imageRepository annotation, and finally the
build-time default in OPERAND_IMAGE_<KEY>.
"""

# Standard
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional
import json
import os

# First Party
import alog

# Local
from . import constants
from .components import all_image_keys
from .exceptions import ConfigError, assert_cluster, assert_config
from .utils import get_annotation

log = alog.use_channel("IMAGE")


@dataclass(frozen=True)
class ImageOverrideEntry:
    """One pin from the override ConfigMap"""

    image_key: str
    remote: str
    name: str
    digest: Optional[str] = None
    tag: Optional[str] = None

    @property
    def reference(self) -> str:
        base = f"{self.remote.rstrip('/')}/{self.name}"
        if self.digest:
            return f"{base}@{self.digest}"
        if self.tag:
            return f"{base}:{self.tag}"
        return base

    @classmethod
    def from_dict(cls, entry: dict) -> "ImageOverrideEntry":
        assert_config(
            isinstance(entry, dict)
            and entry.get("image-key")
            and entry.get("image-remote")
            and entry.get("image-name"),
            "Image override entry missing image-key, image-remote or image-name: "
            f"{entry}",
        )
        return cls(
            image_key=entry["image-key"],
            remote=entry["image-remote"],
            name=entry["image-name"],
            digest=entry.get("image-digest") or None,
            tag=entry.get("image-tag") or None,
        )


def env_var_name(image_key: str) -> str:
    return constants.OPERAND_IMAGE_ENV_PREFIX + image_key.upper()


def parse_image_overrides(raw: str) -> Dict[str, ImageOverrideEntry]:
    """Parse the JSON array held by the override ConfigMap. When a key is
    pinned twice the later entry wins.

    Raises:
        ConfigError: if the data is not a JSON array of well-formed entries
    """
    try:
        entries = json.loads(raw)
    except json.JSONDecodeError as err:
        raise ConfigError(f"Image override data is not valid JSON: {err}") from err
    assert_config(isinstance(entries, list), "Image override data must be a JSON array")
    pins = {}
    for entry in entries:
        pin = ImageOverrideEntry.from_dict(entry)
        pins[pin.image_key] = pin
    return pins


class ImageResolver:
    """Resolves image keys against a snapshot of the primary's annotations, the
    override ConfigMap and the environment taken at the start of a pass.
    resolve() has no side effects.
    """

    def __init__(
        self,
        repository: Optional[str] = None,
        pins: Optional[Dict[str, ImageOverrideEntry]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.repository = repository.rstrip("/") if repository else None
        self.pins = pins or {}
        self.environ = os.environ if environ is None else environ

    def default_image(self, image_key: str) -> str:
        image = self.environ.get(env_var_name(image_key))
        assert_config(
            bool(image),
            f"No default image for [{image_key}]; set {env_var_name(image_key)}",
        )
        return image

    def resolve(self, image_key: str) -> str:
        pin = self.pins.get(image_key)
        if pin is not None:
            log.debug3("Image [%s] pinned to %s", image_key, pin.reference)
            return pin.reference

        default = self.default_image(image_key)
        if self.repository:
            # Only the registry and path change; name and tag/digest are kept
            image = f"{self.repository}/{default.rsplit('/', 1)[-1]}"
            log.debug3("Image [%s] moved to repository %s", image_key, image)
            return image

        return default

    __call__ = resolve

    @classmethod
    def from_primary(
        cls,
        primary: dict,
        deploy_manager,
        operator_namespace: str,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ImageResolver":
        """Snapshot the inputs named by the primary resource's annotations.
        A missing ConfigMap or data key falls through to the lower tiers.
        """
        repository = get_annotation(primary, constants.IMAGE_REPOSITORY_ANNOTATION_NAME)
        cm_name = get_annotation(primary, constants.IMAGE_OVERRIDES_CM_ANNOTATION_NAME)
        pins = {}
        if cm_name:
            success, config_map = deploy_manager.get_object_current_state(
                kind="ConfigMap",
                name=cm_name,
                namespace=operator_namespace,
                api_version="v1",
            )
            assert_cluster(
                success, f"Failed to fetch image override ConfigMap {cm_name}"
            )
            raw = ((config_map or {}).get("data") or {}).get(
                constants.IMAGE_OVERRIDES_DATA_KEY
            )
            if config_map is None:
                log.warning(
                    "Image override ConfigMap %s/%s not found",
                    operator_namespace,
                    cm_name,
                )
            elif raw is None:
                log.warning(
                    "Image override ConfigMap %s has no %s key",
                    cm_name,
                    constants.IMAGE_OVERRIDES_DATA_KEY,
                )
            else:
                pins = parse_image_overrides(raw)
                log.debug("Loaded %d image pins from %s", len(pins), cm_name)
        return cls(repository=repository, pins=pins, environ=environ)


def missing_image_defaults(
    image_keys: Iterable[str], environ: Optional[Mapping[str, str]] = None
) -> List[str]:
    environ = os.environ if environ is None else environ
    return [key for key in image_keys if not environ.get(env_var_name(key))]


def validate_image_environment(
    image_keys: Optional[Iterable[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
):
    """Check at startup that every known image key has a default

    Raises:
        ConfigError: naming every key without an OPERAND_IMAGE_ variable
    """
    if image_keys is None:
        image_keys = all_image_keys()
    missing = missing_image_defaults(image_keys, environ)
    if missing:
        raise ConfigError(
            "Missing default images: "
            + ", ".join(f"{env_var_name(key)}" for key in missing)
        )
