"""Descriptions of APIs and of the providers that offer them."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContextView(str, Enum):
    """Portable service a context can expose."""

    COMPUTE = "compute"
    BLOBSTORE = "blobstore"


class ApiMetadata(BaseModel):
    """An API that one or more providers implement."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    version: str = "1.0"
    default_endpoint: Optional[str] = None
    default_identity: Optional[str] = None
    default_credential: Optional[str] = None
    identity_name: str = "identity"
    credential_name: Optional[str] = "credential"
    documentation: Optional[str] = None
    default_properties: dict[str, Any] = Field(default_factory=dict)
    views: frozenset[ContextView] = frozenset()

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v or v != v.strip():
            raise ValueError("API id must be a non-empty string without surrounding whitespace")
        return v


class ProviderMetadata(BaseModel):
    """A concrete deployment of an API, such as a public cloud region set."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    api: ApiMetadata
    endpoint: Optional[str] = None
    homepage: Optional[str] = None
    console: Optional[str] = None
    iso3166_codes: tuple[str, ...] = ()
    default_properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v or v != v.strip():
            raise ValueError("Provider id must be a non-empty string without surrounding whitespace")
        return v

    @property
    def views(self) -> frozenset[ContextView]:
        return self.api.views

    @property
    def effective_endpoint(self) -> Optional[str]:
        return self.endpoint or self.api.default_endpoint

    @property
    def effective_properties(self) -> dict[str, Any]:
        """API defaults overlaid with this provider's defaults."""
        return {**self.api.default_properties, **self.default_properties}

    def supports(self, view: ContextView) -> bool:
        return view in self.api.views
