"""Unit tests for Provider Registry."""

from unittest.mock import Mock

import pytest

from pyclouds.context import ContextSettings
from pyclouds.domain.base.exceptions import ConfigurationError, UnsupportedProviderError
from pyclouds.domain.provider.metadata import ApiMetadata, ContextView, ProviderMetadata
from pyclouds.infrastructure.registry.provider_registry import (
    ProviderRegistry,
    get_provider_registry,
)
from pyclouds.providers.registration import register_builtin_providers

COMPUTE_API = ApiMetadata(id="test-compute", name="test compute", views=frozenset({ContextView.COMPUTE}))
BOTH_API = ApiMetadata(
    id="test-both",
    name="test compute and storage",
    views=frozenset({ContextView.COMPUTE, ContextView.BLOBSTORE}),
)


def _provider(provider_id, api=COMPUTE_API, **kwargs):
    return ProviderMetadata(id=provider_id, name=provider_id, api=api, **kwargs)


@pytest.mark.unit
class TestProviderRegistry:
    """Test cases for Provider Registry."""

    def setup_method(self):
        self.registry = ProviderRegistry()
        self.compute_factory = Mock(return_value="compute")
        self.blobstore_factory = Mock(return_value="blobstore")

    def test_register_provider(self):
        self.registry.register(_provider("test"), compute_factory=self.compute_factory)

        assert self.registry.is_registered("test")
        assert self.registry.get_registered_types() == ["test"]
        assert self.registry.get_metadata("test").api.id == "test-compute"

    def test_register_duplicate_provider_raises_error(self):
        self.registry.register(_provider("test"), compute_factory=self.compute_factory)

        with pytest.raises(ConfigurationError, match="already registered"):
            self.registry.register(_provider("test"), compute_factory=self.compute_factory)

    def test_declared_view_needs_factory(self):
        with pytest.raises(ConfigurationError, match="blobstore view"):
            self.registry.register(_provider("test", BOTH_API), compute_factory=self.compute_factory)

        assert not self.registry.is_registered("test")

    def test_unregister(self):
        self.registry.register(_provider("test"), compute_factory=self.compute_factory)

        assert self.registry.unregister("test")
        assert not self.registry.unregister("test")
        assert not self.registry.is_registered("test")

    def test_unknown_provider(self):
        self.registry.register(_provider("known"), compute_factory=self.compute_factory)

        with pytest.raises(UnsupportedProviderError) as exc_info:
            self.registry.get_registration("unknown")

        assert exc_info.value.provider_id == "unknown"
        assert exc_info.value.details["registered"] == ["known"]

    def test_registered_types_sorted(self):
        for provider_id in ("zeta", "alpha"):
            self.registry.register(_provider(provider_id), compute_factory=self.compute_factory)

        assert self.registry.get_registered_types() == ["alpha", "zeta"]

    def test_providers_with_view(self):
        self.registry.register(_provider("compute-only"), compute_factory=self.compute_factory)
        self.registry.register(
            _provider("both", BOTH_API),
            compute_factory=self.compute_factory,
            blobstore_factory=self.blobstore_factory,
        )

        blobstores = self.registry.providers_with_view(ContextView.BLOBSTORE)

        assert [p.id for p in blobstores] == ["both"]
        assert len(self.registry.providers_with_view(ContextView.COMPUTE)) == 2

    def test_create_context_attaches_views(self):
        self.registry.register(
            _provider("both", BOTH_API),
            compute_factory=self.compute_factory,
            blobstore_factory=self.blobstore_factory,
        )

        context = self.registry.create_context(ContextSettings(provider_id="both", use_environment=False))

        assert context.compute == "compute"
        assert context.blobstore == "blobstore"
        self.compute_factory.assert_called_once_with(context)
        context.close()

    def test_factory_failure_closes_context(self):
        closeable = Mock()

        def failing_blobstore(context):
            context.add_to_close(closeable)
            raise RuntimeError("boom")

        self.registry.register(
            _provider("both", BOTH_API),
            compute_factory=self.compute_factory,
            blobstore_factory=failing_blobstore,
        )

        with pytest.raises(ConfigurationError, match="boom"):
            self.registry.create_context(ContextSettings(provider_id="both", use_environment=False))

        closeable.close.assert_called_once()

    def test_clear_registrations(self):
        self.registry.register(_provider("test"), compute_factory=self.compute_factory)

        self.registry.clear_registrations()

        assert self.registry.get_registered_types() == []


@pytest.mark.unit
class TestBuiltinProviders:
    """The process-wide registry and built-in registration."""

    def test_global_registry_has_builtin_providers(self, fresh_registry):
        registry = get_provider_registry()

        assert registry is get_provider_registry()
        assert registry.get_registered_types() == [
            "aws-ec2",
            "aws-s3",
            "filesystem",
            "stub",
            "transient",
        ]

    def test_builtin_views(self, fresh_registry):
        registry = get_provider_registry()

        assert registry.get_metadata("aws-ec2").supports(ContextView.COMPUTE)
        assert not registry.get_metadata("aws-ec2").supports(ContextView.BLOBSTORE)
        assert registry.get_metadata("aws-s3").effective_endpoint == "https://s3.amazonaws.com"
        assert registry.get_metadata("aws-ec2").effective_properties["aws.region"] == "us-east-1"

    def test_builtin_registration_is_repeatable(self):
        registry = ProviderRegistry()

        register_builtin_providers(registry)
        register_builtin_providers(registry)

        assert len(registry.get_registered_types()) == 5
