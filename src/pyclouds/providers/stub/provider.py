"""Providers that need no cloud account: stub compute plus local blobstores."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pyclouds.application.blobstore.local_blob_store import LocalBlobStore
from pyclouds.application.compute.compute_service import ComputeService
from pyclouds.domain.base.exceptions import ConfigurationError
from pyclouds.domain.provider.metadata import ApiMetadata, ContextView, ProviderMetadata
from pyclouds.infrastructure.storage.filesystem import FilesystemStorageStrategy
from pyclouds.infrastructure.storage.transient import TransientStorageStrategy
from pyclouds.providers.stub.compute_adapter import StubComputeServiceAdapter

if TYPE_CHECKING:
    from pyclouds.context import CloudContext
    from pyclouds.infrastructure.registry.provider_registry import ProviderRegistry

STUB_API = ApiMetadata(
    id="stub",
    name="in-memory compute stub",
    default_endpoint="stub",
    default_identity="stub",
    default_credential="stub",
    documentation="Nodes live in process memory; useful for tests.",
    views=frozenset({ContextView.COMPUTE}),
)

TRANSIENT_API = ApiMetadata(
    id="transient",
    name="in-memory blobstore",
    default_endpoint="http://localhost/transient",
    default_identity="transient",
    default_credential="transient",
    views=frozenset({ContextView.BLOBSTORE}),
)

FILESYSTEM_API = ApiMetadata(
    id="filesystem",
    name="filesystem blobstore",
    default_endpoint="http://localhost/filesystem",
    default_identity="filesystem",
    default_credential="filesystem",
    views=frozenset({ContextView.BLOBSTORE}),
)

STUB_PROVIDER = ProviderMetadata(id="stub", name="stub", api=STUB_API)
TRANSIENT_PROVIDER = ProviderMetadata(id="transient", name="transient", api=TRANSIENT_API)
FILESYSTEM_PROVIDER = ProviderMetadata(id="filesystem", name="filesystem", api=FILESYSTEM_API)


def create_stub_compute(context: CloudContext) -> ComputeService:
    adapter = StubComputeServiceAdapter(provider_id=context.provider_id)
    return ComputeService(
        adapter,
        executor=context.user_executor,
        config=context.config.compute,
        provisioning_manager=context.provisioning_manager,
    )


def create_transient_blobstore(context: CloudContext) -> LocalBlobStore:
    return LocalBlobStore(
        TransientStorageStrategy(default_location=context.get_property("blobstore.location")),
        executor=context.user_executor,
        config=context.config.blobstore,
    )


def create_filesystem_blobstore(context: CloudContext) -> LocalBlobStore:
    base_dir = context.config.blobstore.base_dir
    if not base_dir:
        raise ConfigurationError(
            "blobstore.base_dir is required for the filesystem provider",
            details={"provider_id": context.provider_id},
        )
    return LocalBlobStore(
        FilesystemStorageStrategy(base_dir, default_location=context.get_property("blobstore.location")),
        executor=context.user_executor,
        config=context.config.blobstore,
    )


def register_local_providers(registry: ProviderRegistry) -> None:
    registry.register(STUB_PROVIDER, compute_factory=create_stub_compute)
    registry.register(TRANSIENT_PROVIDER, blobstore_factory=create_transient_blobstore)
    registry.register(FILESYSTEM_PROVIDER, blobstore_factory=create_filesystem_blobstore)
