"""Domain port for provider compute backends."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Optional

from pyclouds.domain.compute.models import (
    Hardware,
    Image,
    Location,
    NodeAndInitialCredentials,
    NodeMetadata,
    Template,
)


class ComputeServiceAdapter(ABC):
    """Provider-side operations that ``ComputeService`` orchestrates."""

    provider_id: str = "unknown"

    @abstractmethod
    def create_node_with_group_encoded_into_name(
        self, group: str, name: str, template: Template
    ) -> NodeAndInitialCredentials:
        """Create a single node. The group must be recoverable from the node."""

    @abstractmethod
    def list_hardware_profiles(self) -> Iterable[Hardware]:
        """Return available hardware profiles."""

    @abstractmethod
    def list_images(self) -> Iterable[Image]:
        """Return available images."""

    @abstractmethod
    def list_locations(self) -> Iterable[Location]:
        """Return assignable locations."""

    @abstractmethod
    def list_nodes(self) -> Iterable[NodeMetadata]:
        """Return every node visible to the credentials."""

    @abstractmethod
    def get_node(self, node_id: str) -> Optional[NodeMetadata]:
        """Return a node or None."""

    @abstractmethod
    def destroy_node(self, node_id: str) -> None:
        """Destroy a node."""

    @abstractmethod
    def reboot_node(self, node_id: str) -> None:
        """Reboot a node."""

    @abstractmethod
    def suspend_node(self, node_id: str) -> None:
        """Suspend a node."""

    @abstractmethod
    def resume_node(self, node_id: str) -> None:
        """Resume a suspended node."""

    def get_image(self, image_id: str) -> Optional[Image]:
        return next((i for i in self.list_images() if i.id == image_id), None)
