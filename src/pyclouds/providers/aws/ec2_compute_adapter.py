"""Compute adapter over the EC2 API."""

from collections.abc import Callable, Iterable
from typing import Any, Optional, TypeVar

from botocore.exceptions import ClientError

from pyclouds.domain.base.ports.compute_port import ComputeServiceAdapter
from pyclouds.domain.base.ports.logging_port import LoggingPort
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
)
from pyclouds.infrastructure.adapters.logging_adapter import LoggingAdapter
from pyclouds.providers.aws.aws_client import AWSClient
from pyclouds.providers.aws.exceptions import convert_client_error, error_code

T = TypeVar("T")

GROUP_TAG = "pyclouds-group"
NAME_TAG = "Name"

INSTANCE_STATES: dict[str, NodeStatus] = {
    "pending": NodeStatus.PENDING,
    "running": NodeStatus.RUNNING,
    "shutting-down": NodeStatus.PENDING,
    "terminated": NodeStatus.TERMINATED,
    "stopping": NodeStatus.PENDING,
    "stopped": NodeStatus.SUSPENDED,
}

_MISSING_INSTANCE_CODES = frozenset({"InvalidInstanceID.NotFound", "InvalidInstanceID.Malformed"})


def _instance_type(type_id: str, cores: float, ram_mb: int, speed: float = 2.5) -> Hardware:
    return Hardware(
        id=type_id,
        name=type_id,
        ram_mb=ram_mb,
        processors=(Processor(cores=cores, speed=speed),),
        hypervisor="nitro",
    )


DEFAULT_INSTANCE_TYPES = (
    _instance_type("t3.micro", 2, 1024),
    _instance_type("t3.small", 2, 2048),
    _instance_type("t3.medium", 2, 4096),
    _instance_type("m5.large", 2, 8192, 3.1),
    _instance_type("m5.xlarge", 4, 16384, 3.1),
    _instance_type("c5.large", 2, 4096, 3.4),
    _instance_type("c5.xlarge", 4, 8192, 3.4),
)


def os_family_from_name(name: Optional[str]) -> OsFamily:
    lowered = (name or "").lower()
    for marker, family in (
        ("ubuntu", OsFamily.UBUNTU),
        ("debian", OsFamily.DEBIAN),
        ("centos", OsFamily.CENTOS),
        ("rhel", OsFamily.RHEL),
        ("amzn", OsFamily.AMZN_LINUX),
        ("al2023", OsFamily.AMZN_LINUX),
        ("windows", OsFamily.WINDOWS),
    ):
        if marker in lowered:
            return family
    return OsFamily.UNRECOGNIZED


class EC2ComputeServiceAdapter(ComputeServiceAdapter):
    """
    Nodes are EC2 instances. The group is kept in the ``pyclouds-group`` tag
    and the node name in the ``Name`` tag; suspend and resume map to stop
    and start.
    """

    def __init__(
        self,
        aws_client: AWSClient,
        provider_id: str = "aws-ec2",
        instance_types: Optional[Iterable[Hardware]] = None,
        image_owners: Iterable[str] = ("self",),
        logger: Optional[LoggingPort] = None,
    ) -> None:
        self.aws_client = aws_client
        self.provider_id = provider_id
        self._instance_types = (
            tuple(instance_types) if instance_types is not None else DEFAULT_INSTANCE_TYPES
        )
        self.image_owners = list(image_owners)
        self._logger = logger or LoggingAdapter(__name__, provider=provider_id)

    @property
    def _ec2(self) -> Any:
        return self.aws_client.ec2_client

    def _call(self, operation_name: str, func: Callable[..., T], **kwargs: Any) -> T:
        try:
            return func(**kwargs)
        except ClientError as e:
            raise convert_client_error(e, operation_name)

    # catalogue

    def list_hardware_profiles(self) -> Iterable[Hardware]:
        return list(self._instance_types)

    def list_images(self) -> Iterable[Image]:
        response = self._call("describe_images", self._ec2.describe_images, Owners=self.image_owners)
        return [self._to_image(i) for i in response.get("Images", [])]

    def _to_image(self, image: dict[str, Any]) -> Image:
        name = image.get("Name")
        return Image(
            id=image["ImageId"],
            name=name,
            os_family=os_family_from_name(name or image.get("Description")),
            is_64bit=image.get("Architecture", "x86_64") in ("x86_64", "arm64"),
            location_id=self.aws_client.region_name,
            description=image.get("Description"),
            user_metadata={t["Key"]: t["Value"] for t in image.get("Tags", [])},
        )

    def list_locations(self) -> Iterable[Location]:
        region = self.aws_client.region_name
        locations = [
            Location(id=self.provider_id, scope=LocationScope.PROVIDER, description="Amazon EC2"),
            Location(id=region, scope=LocationScope.REGION, description=region, parent_id=self.provider_id),
        ]
        response = self._call("describe_availability_zones", self._ec2.describe_availability_zones)
        for zone in response.get("AvailabilityZones", []):
            locations.append(
                Location(
                    id=zone["ZoneName"],
                    scope=LocationScope.ZONE,
                    description=zone["ZoneName"],
                    parent_id=region,
                )
            )
        return locations

    # nodes

    def create_node_with_group_encoded_into_name(
        self, group: str, name: str, template: Template
    ) -> NodeAndInitialCredentials:
        options = template.options
        tags = [{"Key": NAME_TAG, "Value": name}, {"Key": GROUP_TAG, "Value": group}]
        tags.extend({"Key": k, "Value": v} for k, v in options.user_metadata.items())
        params: dict[str, Any] = {
            "ImageId": template.image.id,
            "InstanceType": template.hardware.id,
            "MinCount": 1,
            "MaxCount": 1,
            "TagSpecifications": [{"ResourceType": "instance", "Tags": tags}],
        }
        if template.location.scope == LocationScope.ZONE:
            params["Placement"] = {"AvailabilityZone": template.location.id}
        if options.networks:
            params["SecurityGroupIds"] = list(options.networks)
        if "key_name" in options.extra:
            params["KeyName"] = options.extra["key_name"]
        if "subnet_id" in options.extra:
            params["SubnetId"] = options.extra["subnet_id"]

        self._logger.debug("Running instance %s in group %s", name, group)
        response = self._call("run_instances", self._ec2.run_instances, **params)
        instance = response["Instances"][0]
        node = self._to_node(instance)
        credentials = LoginCredentials(user=options.login_user or "ec2-user")
        return NodeAndInitialCredentials(node=node, node_id=node.id, credentials=credentials)

    def list_nodes(self) -> Iterable[NodeMetadata]:
        paginator = self._ec2.get_paginator("describe_instances")
        nodes: list[NodeMetadata] = []
        try:
            for page in paginator.paginate():
                for reservation in page.get("Reservations", []):
                    nodes.extend(self._to_node(i) for i in reservation.get("Instances", []))
        except ClientError as e:
            raise convert_client_error(e, "describe_instances")
        return nodes

    def get_node(self, node_id: str) -> Optional[NodeMetadata]:
        try:
            response = self._ec2.describe_instances(InstanceIds=[node_id])
        except ClientError as e:
            if error_code(e) in _MISSING_INSTANCE_CODES:
                return None
            raise convert_client_error(e, "describe_instances")
        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                return self._to_node(instance)
        return None

    def destroy_node(self, node_id: str) -> None:
        self._call("terminate_instances", self._ec2.terminate_instances, InstanceIds=[node_id])

    def reboot_node(self, node_id: str) -> None:
        self._call("reboot_instances", self._ec2.reboot_instances, InstanceIds=[node_id])

    def suspend_node(self, node_id: str) -> None:
        self._call("stop_instances", self._ec2.stop_instances, InstanceIds=[node_id])

    def resume_node(self, node_id: str) -> None:
        self._call("start_instances", self._ec2.start_instances, InstanceIds=[node_id])

    def _to_node(self, instance: dict[str, Any]) -> NodeMetadata:
        tags = {t["Key"]: t["Value"] for t in instance.get("Tags", [])}
        state = instance.get("State", {}).get("Name", "")
        public = instance.get("PublicIpAddress")
        private = instance.get("PrivateIpAddress")
        return NodeMetadata(
            id=instance["InstanceId"],
            provider_id=self.provider_id,
            name=tags.get(NAME_TAG),
            group=tags.get(GROUP_TAG),
            status=INSTANCE_STATES.get(state, NodeStatus.UNRECOGNIZED),
            location_id=instance.get("Placement", {}).get("AvailabilityZone"),
            hardware_id=instance.get("InstanceType"),
            image_id=instance.get("ImageId"),
            public_addresses=(public,) if public else (),
            private_addresses=(private,) if private else (),
            user_metadata={k: v for k, v in tags.items() if k not in (NAME_TAG, GROUP_TAG)},
        )
