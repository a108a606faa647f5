"""In-memory compute adapter backing the ``stub`` provider."""

import itertools
import secrets
import threading
from collections.abc import Iterable
from typing import Optional

from pyclouds.domain.base.exceptions import IllegalStateError, ResourceNotFoundError
from pyclouds.domain.base.ports.compute_port import ComputeServiceAdapter
from pyclouds.domain.compute.models import (
    Hardware,
    Image,
    Location,
    LocationScope,
    LoginCredentials,
    NodeAndInitialCredentials,
    NodeMetadata,
    NodeStatus,
    OsFamily,
    Processor,
    Template,
    Volume,
)
from pyclouds.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

PROVIDER_LOCATION = Location(id="stub", scope=LocationScope.PROVIDER, description="stub")
REGION_LOCATION = Location(
    id="stub-region-1", scope=LocationScope.REGION, description="stub region", parent_id="stub"
)
ZONE_LOCATION = Location(
    id="stub-region-1a", scope=LocationScope.ZONE, description="stub zone", parent_id="stub-region-1"
)

DEFAULT_LOCATIONS = (PROVIDER_LOCATION, REGION_LOCATION, ZONE_LOCATION)

DEFAULT_HARDWARE = (
    Hardware(
        id="small",
        name="small",
        ram_mb=1740,
        processors=(Processor(cores=1, speed=1.0),),
        volumes=(Volume(size_gb=160, boot_device=True),),
    ),
    Hardware(
        id="medium",
        name="medium",
        ram_mb=3750,
        processors=(Processor(cores=2, speed=2.0),),
        volumes=(Volume(size_gb=410, boot_device=True),),
    ),
    Hardware(
        id="large",
        name="large",
        ram_mb=7680,
        processors=(Processor(cores=4, speed=2.0),),
        volumes=(Volume(size_gb=850, boot_device=True),),
    ),
)

DEFAULT_IMAGES = (
    Image(id="ubuntu-22.04", name="ubuntu", os_family=OsFamily.UBUNTU, os_version="22.04"),
    Image(id="ubuntu-24.04", name="ubuntu", os_family=OsFamily.UBUNTU, os_version="24.04"),
    Image(id="centos-7", name="centos", os_family=OsFamily.CENTOS, os_version="7"),
)


class StubComputeServiceAdapter(ComputeServiceAdapter):
    """
    Keeps nodes in a dictionary.

    New nodes start PENDING and report RUNNING after ``pending_polls`` calls
    to ``get_node``. Destroyed nodes are removed.
    """

    def __init__(
        self,
        provider_id: str = "stub",
        hardware: Optional[Iterable[Hardware]] = None,
        images: Optional[Iterable[Image]] = None,
        locations: Optional[Iterable[Location]] = None,
        pending_polls: int = 0,
        public_ip_prefix: str = "144.175.1.",
        private_ip_prefix: str = "10.1.1.",
    ) -> None:
        self.provider_id = provider_id
        self._hardware = tuple(hardware) if hardware is not None else DEFAULT_HARDWARE
        self._images = tuple(images) if images is not None else DEFAULT_IMAGES
        self._locations = tuple(locations) if locations is not None else DEFAULT_LOCATIONS
        self.pending_polls = pending_polls
        self.public_ip_prefix = public_ip_prefix
        self.private_ip_prefix = private_ip_prefix
        self._lock = threading.Lock()
        self._nodes: dict[str, NodeMetadata] = {}
        self._polls_left: dict[str, int] = {}
        self._ids = itertools.count(1)

    def create_node_with_group_encoded_into_name(
        self, group: str, name: str, template: Template
    ) -> NodeAndInitialCredentials:
        with self._lock:
            number = next(self._ids)
            node_id = str(number)
            credentials = LoginCredentials(
                user=template.options.login_user or "root",
                password=template.options.login_password or secrets.token_urlsafe(12),
            )
            status = NodeStatus.PENDING if self.pending_polls > 0 else NodeStatus.RUNNING
            node = NodeMetadata(
                id=node_id,
                provider_id=self.provider_id,
                name=name,
                group=group,
                status=status,
                location_id=template.location.id,
                hardware_id=template.hardware.id,
                image_id=template.image.id,
                public_addresses=(f"{self.public_ip_prefix}{number}",),
                private_addresses=(f"{self.private_ip_prefix}{number}",),
                tags=tuple(template.options.tags),
                user_metadata=dict(template.options.user_metadata),
                credentials=credentials,
            )
            self._nodes[node_id] = node
            self._polls_left[node_id] = self.pending_polls
        logger.debug("Created stub node %s (%s) in group %s", node_id, name, group)
        return NodeAndInitialCredentials(node=node, node_id=node_id, credentials=credentials)

    def list_hardware_profiles(self) -> Iterable[Hardware]:
        return list(self._hardware)

    def list_images(self) -> Iterable[Image]:
        return list(self._images)

    def list_locations(self) -> Iterable[Location]:
        return list(self._locations)

    def list_nodes(self) -> Iterable[NodeMetadata]:
        with self._lock:
            return list(self._nodes.values())

    def get_node(self, node_id: str) -> Optional[NodeMetadata]:
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                return None
            left = self._polls_left.get(node_id, 0)
            if node.status == NodeStatus.PENDING:
                if left <= 0:
                    node = self._set_status(node_id, NodeStatus.RUNNING)
                else:
                    self._polls_left[node_id] = left - 1
            return node

    def destroy_node(self, node_id: str) -> None:
        with self._lock:
            self._nodes.pop(node_id, None)
            self._polls_left.pop(node_id, None)

    def reboot_node(self, node_id: str) -> None:
        with self._lock:
            self._require(node_id)
            self._set_status(node_id, NodeStatus.RUNNING)

    def suspend_node(self, node_id: str) -> None:
        with self._lock:
            node = self._require(node_id)
            if node.status != NodeStatus.RUNNING:
                raise IllegalStateError(f"node {node_id} is {node.status.value}, not running")
            self._set_status(node_id, NodeStatus.SUSPENDED)

    def resume_node(self, node_id: str) -> None:
        with self._lock:
            node = self._require(node_id)
            if node.status != NodeStatus.SUSPENDED:
                raise IllegalStateError(f"node {node_id} is {node.status.value}, not suspended")
            self._set_status(node_id, NodeStatus.RUNNING)

    def set_node_status(self, node_id: str, status: NodeStatus) -> None:
        """Force a node into ``status``; lets callers simulate provider faults."""
        with self._lock:
            self._require(node_id)
            self._set_status(node_id, status)
            self._polls_left[node_id] = 0

    def _require(self, node_id: str) -> NodeMetadata:
        node = self._nodes.get(node_id)
        if node is None:
            raise ResourceNotFoundError(f"node {node_id} not found", details={"node_id": node_id})
        return node

    def _set_status(self, node_id: str, status: NodeStatus) -> NodeMetadata:
        node = self._nodes[node_id].model_copy(update={"status": status})
        self._nodes[node_id] = node
        return node
