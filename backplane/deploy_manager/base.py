"""
Base class for all DeployManager types. A DeployManager is the only path by
which the operator reads or writes cluster state.
"""

# Standard
from typing import Iterator, List, Optional, Tuple
import abc

# Local
from .kube_event import KubeWatchEvent


class DeployManagerBase(abc.ABC):
    """Every operation reports success as its first return value rather than
    raising, so that callers decide which failures are fatal for the pass
    """

    @abc.abstractmethod
    def deploy(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        """Create or update each resource in place

        Args:
            resource_definitions:  List[dict]
                Resource dicts to apply to the cluster

        Returns:
            success:  bool
                Whether or not every write succeeded
            changed:  bool
                Whether or not any object in the cluster changed
        """

    @abc.abstractmethod
    def disable(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        """Delete each resource, treating absent resources as already deleted

        Returns:
            success:  bool
                Whether or not every delete succeeded
            changed:  bool
                Whether or not anything was deleted
        """

    @abc.abstractmethod
    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        """Fetch one object by name

        Returns:
            success:  bool
                Whether or not the lookup succeeded
            current_state:  Optional[dict]
                The object, or None when it does not exist
        """

    @abc.abstractmethod
    def filter_objects_current_state(
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
    ) -> Tuple[bool, List[dict]]:
        """List the objects of a kind matching a label selector. A namespace of
        None lists across all namespaces.

        Returns:
            success:  bool
                Whether or not the list succeeded
            current_state:  List[dict]
                The matching objects
        """

    @abc.abstractmethod
    def watch_objects(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
        resource_version: Optional[str] = None,
    ) -> Iterator[KubeWatchEvent]:
        """Stream change events for a kind until the stream ends"""

    @abc.abstractmethod
    def set_status(
        self,
        kind: str,
        name: str,
        namespace: Optional[str],
        status: dict,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, bool]:
        """Replace the status subresource of an object

        Returns:
            success:  bool
                Whether or not the write succeeded
            changed:  bool
                Whether or not the stored status changed
        """
