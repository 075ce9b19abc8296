"""
Error types raised while reconciling a MultiClusterEngine
"""

## Base Error ##################################################################


class BackplaneError(Exception):
    """Base class for all operator errors"""

    def __init__(self, message: str, is_fatal_error: bool):
        super().__init__(message)
        self._is_fatal_error = is_fatal_error

    @property
    def is_fatal_error(self):
        """Fatal errors are retried at the default interval while expected
        errors are retried with exponential backoff
        """
        return self._is_fatal_error


## Fatal Errors ################################################################


class BackplaneFatalError(BackplaneError):
    """A failure that will not resolve by simply retrying sooner. These end the
    pass with a Degraded condition.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=True)


class ConfigError(BackplaneFatalError):
    """Exception caused by operator configuration such as a missing image
    default or a malformed image override ConfigMap
    """


class SynthesisError(BackplaneFatalError):
    """Exception caused when the desired state could not be built, e.g. an
    enabled component with no template or a manifest without a name
    """


## Expected Errors #############################################################


class BackplaneExpectedError(BackplaneError):
    """A failure that is expected to resolve on a later pass"""

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=False)


class ClusterError(BackplaneExpectedError):
    """Exception caused when a cluster operation fails"""


class ReconcileCancelledError(BackplaneExpectedError):
    """Raised between cluster calls once the pass deadline has passed, the
    primary resource was deleted, or the operator is shutting down
    """


## Assertions ##################################################################


def assert_config(condition: bool, message: str = ""):
    """assert() replacement raising ConfigError"""
    if not condition:
        raise ConfigError(message)


def assert_synthesis(condition: bool, message: str = ""):
    """assert() replacement raising SynthesisError"""
    if not condition:
        raise SynthesisError(message)


def assert_cluster(condition: bool, message: str = ""):
    """assert() replacement raising ClusterError. Use this when an operation
    against the cluster (such as fetching the override ConfigMap) must succeed.
    """
    if not condition:
        raise ClusterError(message)
