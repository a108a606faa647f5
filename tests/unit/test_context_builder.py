"""Unit tests for building and closing cloud contexts."""

from unittest.mock import Mock

import pytest

from pyclouds.application.blobstore.local_blob_store import LocalBlobStore
from pyclouds.application.compute.compute_service import ComputeService
from pyclouds.context import ContextBuilder, ContextSettings
from pyclouds.domain.base.exceptions import ConfigurationError, UnsupportedProviderError
from pyclouds.domain.blobstore.models import Blob
from pyclouds.domain.provider.metadata import ApiMetadata, ContextView, ProviderMetadata
from pyclouds.infrastructure.registry.provider_registry import ProviderRegistry

TUNED_API = ApiMetadata(
    id="tuned",
    name="tuned compute",
    default_identity="api-user",
    default_endpoint="https://api.example.com",
    default_properties={"compute.poll_timeout": 30, "custom.flag": "api"},
    views=frozenset({ContextView.COMPUTE}),
)


@pytest.mark.unit
class TestContextBuilder:
    """Contexts for the built-in local providers."""

    def test_transient_blobstore(self, fresh_registry):
        with ContextBuilder("transient").ignore_environment().build() as context:
            blobstore = context.blobstore
            assert isinstance(blobstore, LocalBlobStore)
            blobstore.create_container_in_location("c")
            blobstore.put_blob("c", Blob.build("k", b"data"))
            assert blobstore.get_blob("c", "k").payload.read_all() == b"data"

        assert context.closed

    def test_stub_compute(self, fresh_registry):
        with ContextBuilder("stub").overrides({"compute.poll_timeout": 5}).build() as context:
            compute = context.compute
            assert isinstance(compute, ComputeService)
            assert compute.config.poll_timeout == 5
            (node,) = compute.create_nodes_in_group("web", 1)
            assert node.provider_id == "stub"

    def test_missing_view(self, fresh_registry):
        with ContextBuilder("stub").build() as context:
            with pytest.raises(ConfigurationError, match="does not support the blobstore view"):
                context.blobstore

    def test_filesystem_requires_base_dir(self, fresh_registry):
        with pytest.raises(ConfigurationError, match="base_dir"):
            ContextBuilder("filesystem").ignore_environment().build()

    def test_filesystem_blobstore(self, fresh_registry, tmp_path):
        builder = ContextBuilder("filesystem").overrides({"blobstore.base_dir": str(tmp_path)})

        with builder.build() as context:
            context.blobstore.create_container_in_location("photos")

        assert (tmp_path / "photos").is_dir()

    def test_unknown_provider(self, fresh_registry):
        with pytest.raises(UnsupportedProviderError):
            ContextBuilder("nope").build()

    def test_provider_id_required(self):
        with pytest.raises(ConfigurationError):
            ContextBuilder("")

    def test_environment_overrides_file(self, fresh_registry, tmp_path, monkeypatch):
        config_file = tmp_path / "pyclouds.yaml"
        config_file.write_text("compute:\n  poll_timeout: 10\nuser_threads: 3\n")
        monkeypatch.setenv("PYCLOUDS_COMPUTE__POLL_TIMEOUT", "20")

        with ContextBuilder("stub").config_file(str(config_file)).build() as context:
            assert context.config.compute.poll_timeout == 20
            assert context.config.user_threads == 3

    def test_ignore_environment(self, fresh_registry, monkeypatch):
        monkeypatch.setenv("PYCLOUDS_COMPUTE__POLL_TIMEOUT", "20")

        with ContextBuilder("stub").ignore_environment().build() as context:
            assert context.config.compute.poll_timeout == 1200.0


@pytest.mark.unit
class TestCloudContext:
    """Context behaviour with a private registry."""

    def setup_method(self):
        self.service = Mock()
        self.registry = ProviderRegistry()
        self.registry.register(
            ProviderMetadata(id="tuned", name="tuned", api=TUNED_API),
            compute_factory=Mock(return_value=self.service),
        )

    def _builder(self):
        return ContextBuilder("tuned", registry=self.registry).ignore_environment()

    def test_api_defaults(self):
        context = self._builder().build()

        assert context.identity == "api-user"
        assert context.credential is None
        assert context.endpoint == "https://api.example.com"
        assert context.config.compute.poll_timeout == 30
        assert context.get_property("custom.flag") == "api"
        context.close()

    def test_settings_win_over_defaults(self):
        context = (
            self._builder()
            .credentials("me", "secret")
            .endpoint("http://localhost:9000")
            .overrides({"compute.poll_timeout": 2, "custom.flag": "mine"})
            .build()
        )

        assert context.identity == "me"
        assert context.credential == "secret"
        assert context.endpoint == "http://localhost:9000"
        assert context.config.compute.poll_timeout == 2
        assert context.get_property("custom.flag") == "mine"
        context.close()

    def test_close_releases_services_and_executors(self):
        context = self._builder().build()
        executor = context.user_executor
        manager = context.provisioning_manager

        context.close()
        context.close()

        self.service.close.assert_called_once()
        assert manager.closed
        with pytest.raises(RuntimeError):
            executor.submit(lambda: None)

    def test_token_api_uses_context_credentials_and_http_config(self):
        context = (
            self._builder()
            .credentials("me", "secret")
            .overrides({"http.max_rate_limit_wait": 30})
            .build()
        )

        api = context.token_api("https://auth.example.com/v1.0")
        api.executor.close = Mock()

        assert api.endpoint == "https://api.example.com"
        assert api.identity == "me"
        (rate_limit,) = api.executor.retry_handler.client_error_retry_handler.handlers[:1]
        assert rate_limit.max_rate_limit_wait == 30
        context.close()
        api.executor.close.assert_called_once()

    def test_token_api_requires_credential(self):
        context = self._builder().build()

        with pytest.raises(ValueError):
            context.token_api("https://auth.example.com/v1.0")
        context.close()

    def test_shared_resources_created_once(self):
        context = self._builder().build()

        assert context.user_executor is context.user_executor
        assert context.provisioning_manager is context.provisioning_manager
        context.close()

    def test_settings_repr_hides_credential(self):
        settings = ContextSettings(provider_id="tuned", identity="me", credential="secret")

        assert "secret" not in repr(settings)
        assert "me" in str(settings)
