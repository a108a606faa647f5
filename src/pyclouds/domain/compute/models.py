"""Compute value objects: where nodes run, what they run on, and what they are."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LocationScope(str, Enum):
    PROVIDER = "provider"
    REGION = "region"
    ZONE = "zone"
    HOST = "host"


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    scope: LocationScope
    description: Optional[str] = None
    parent_id: Optional[str] = None
    iso3166_codes: tuple[str, ...] = ()


class OsFamily(str, Enum):
    UNRECOGNIZED = "unrecognized"
    UBUNTU = "ubuntu"
    DEBIAN = "debian"
    CENTOS = "centos"
    RHEL = "rhel"
    AMZN_LINUX = "amzn-linux"
    WINDOWS = "windows"


class Processor(BaseModel):
    model_config = ConfigDict(frozen=True)

    cores: float
    speed: float = 1.0


class Volume(BaseModel):
    model_config = ConfigDict(frozen=True)

    size_gb: float
    boot_device: bool = False
    durable: bool = True


class Hardware(BaseModel):
    """A machine size offered by a provider."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    ram_mb: int
    processors: tuple[Processor, ...] = ()
    volumes: tuple[Volume, ...] = ()
    hypervisor: Optional[str] = None
    location_id: Optional[str] = None

    @property
    def cores(self) -> float:
        return sum(p.cores for p in self.processors)

    @property
    def compute_units(self) -> float:
        return sum(p.cores * p.speed for p in self.processors)


class Image(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    os_family: OsFamily = OsFamily.UNRECOGNIZED
    os_version: Optional[str] = None
    is_64bit: bool = True
    location_id: Optional[str] = None
    description: Optional[str] = None
    user_metadata: dict[str, str] = Field(default_factory=dict)


class NodeStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"
    ERROR = "error"
    UNRECOGNIZED = "unrecognized"


class LoginCredentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: str
    password: Optional[str] = None
    private_key: Optional[str] = None

    def __repr__(self) -> str:
        # keep secrets out of logs
        return f"LoginCredentials(user={self.user!r})"

    __str__ = __repr__


class NodeMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    provider_id: str
    name: Optional[str] = None
    group: Optional[str] = None
    status: NodeStatus = NodeStatus.UNRECOGNIZED
    location_id: Optional[str] = None
    hardware_id: Optional[str] = None
    image_id: Optional[str] = None
    public_addresses: tuple[str, ...] = ()
    private_addresses: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    user_metadata: dict[str, str] = Field(default_factory=dict)
    credentials: Optional[LoginCredentials] = None


class TemplateOptions(BaseModel):
    """Per-request knobs that are not part of hardware, image or location."""

    login_user: Optional[str] = None
    login_password: Optional[str] = None
    inbound_ports: list[int] = Field(default_factory=list)
    networks: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    user_metadata: dict[str, str] = Field(default_factory=dict)
    block_until_running: bool = True
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("inbound_ports")
    @classmethod
    def validate_ports(cls, v: list[int]) -> list[int]:
        for port in v:
            if not 0 < port < 65536:
                raise ValueError(f"invalid port {port}")
        return v


class Template(BaseModel):
    hardware: Hardware
    image: Image
    location: Location
    options: TemplateOptions = Field(default_factory=TemplateOptions)


class NodeAndInitialCredentials(BaseModel):
    node: NodeMetadata
    node_id: str
    credentials: Optional[LoginCredentials] = None
