"""
Type and bounds validation for the loaded operator config
"""

# Standard
from typing import Any, Dict, List, Optional, Union
import abc
import builtins

# First Party
import aconfig
import alog

# Local
from .. import constants
from ..utils import nested_get  # pylint: disable=cyclic-import

log = alog.use_channel("CONFG")


## Public ######################################################################


def get_invalid_params(
    config: aconfig.Config,
    validation_config: aconfig.Config,
) -> List[str]:
    """Collect the nested keys of every config value that fails validation

    Args:
        config:  aconfig.Config
            The loaded config, including environment overrides
        validation_config:  aconfig.Config
            Parallel config whose leaves describe each value's validator

    Returns:
        invalid_params:  List[str]
            Dot-delimited keys for all invalid values
    """
    invalid_params = []
    for key, validator in parse_validation_config(validation_config).items():
        if not validator.validate(nested_get(config, key)):
            log.warning("Found invalid config key [%s]", key)
            invalid_params.append(key)
    return invalid_params


def parse_validation_config(
    validation_config: Dict[str, Any],
    prefix_parts: Optional[List[str]] = None,
) -> Dict[str, "Validator"]:
    """Walk the validation tree and build a validator for every leaf that
    declares a known "type"
    """
    validators = {}
    prefix_parts = prefix_parts or []
    for key, val in validation_config.items():
        if not isinstance(val, dict):
            continue
        key_parts = prefix_parts + [key]
        nested_key = constants.NESTED_DICT_DELIM.join(key_parts)
        validator = _build_validator(val) if "type" in val else None
        if validator is not None:
            log.debug3("Found validator for [%s]", nested_key)
            validators[nested_key] = validator
        else:
            log.debug3("Recursing into [%s]", nested_key)
            validators.update(parse_validation_config(val, key_parts))
    return validators


## Validators ##################################################################

# pylint: disable=too-few-public-methods


class Validator(abc.ABC):
    """A config value check made of a type check and a value check"""

    TYPE_KEY = None
    TYPES = ()

    def __init__(self, optional: bool = False):
        self.optional = optional

    def validate(self, value: Any) -> bool:
        if value is None and self.optional:
            return True
        if not isinstance(value, self.TYPES):
            log.warning("Invalid type <%s>", type(value))
            return False
        if not self._check_value(value):
            log.warning("Invalid value [%s]", value)
            return False
        return True

    @abc.abstractmethod
    def _check_value(self, value: Any) -> bool:
        """Check the value once its type is known to be valid"""


class NumberValidator(Validator):
    """Any int or float with optional inclusive bounds"""

    TYPE_KEY = "number"
    TYPES = (int, float)

    def __init__(
        self,
        min: Optional[Union[int, float]] = None,  # pylint: disable=redefined-builtin
        max: Optional[Union[int, float]] = None,  # pylint: disable=redefined-builtin
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.lower = min
        self.upper = max

    def validate(self, value: Any) -> bool:
        # bool is an int subclass but never a valid number here
        if isinstance(value, bool):
            return False
        return super().validate(value)

    def _check_value(self, value: Union[int, float]) -> bool:
        return (self.lower is None or value >= self.lower) and (
            self.upper is None or value <= self.upper
        )


class IntValidator(NumberValidator):
    TYPE_KEY = "int"
    TYPES = (int,)


class FloatValidator(NumberValidator):
    TYPE_KEY = "float"
    TYPES = (float,)


class StrValidator(Validator):
    """A string with optional length bounds"""

    TYPE_KEY = "str"
    TYPES = (str,)

    def __init__(
        self,
        min_len: Optional[int] = None,
        max_len: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.min_len = min_len
        self.max_len = max_len

    def _check_value(self, value: Any) -> bool:
        return (self.min_len is None or len(value) >= self.min_len) and (
            self.max_len is None or len(value) <= self.max_len
        )


class BoolValidator(Validator):
    TYPE_KEY = "bool"
    TYPES = (bool,)

    def _check_value(self, value: bool) -> bool:
        return True


class EnumValidator(Validator):
    """One of a fixed set of values"""

    TYPE_KEY = "enum"
    TYPES = (str, int, type(None))

    def __init__(self, values: List[Any], **kwargs):
        super().__init__(**kwargs)
        if not isinstance(values, list) or not values:
            raise ValueError("Enum validators need at least one value")
        self.values = values

    def _check_value(self, value: Any) -> bool:
        return value in self.values


class ListValidator(StrValidator):
    """A list with optional length bounds and item type"""

    TYPE_KEY = "list"
    TYPES = (list,)

    def __init__(self, item_type: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.item_type = None
        if item_type is not None:
            self.item_type = getattr(builtins, item_type, None)
            if not isinstance(self.item_type, type):
                raise ValueError(f"Unsupported item_type: {item_type}")

    def _check_value(self, value: Any) -> bool:
        return super()._check_value(value) and (
            self.item_type is None
            or all(isinstance(item, self.item_type) for item in value)
        )


# pylint: enable=too-few-public-methods

VALIDATORS = {
    validator.TYPE_KEY: validator
    for validator in [
        NumberValidator,
        IntValidator,
        FloatValidator,
        StrValidator,
        BoolValidator,
        EnumValidator,
        ListValidator,
    ]
}


def _build_validator(param_args: Dict[str, Any]) -> Optional[Validator]:
    """Construct the validator named by the "type" key or None when the type
    is not a known validator
    """
    args = dict(param_args)
    validator_type = VALIDATORS.get(args.pop("type"))
    if validator_type is None:
        return None
    return validator_type(**args)
