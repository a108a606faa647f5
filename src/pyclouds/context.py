"""
Entry point for obtaining a provider's portable services.

    context = ContextBuilder("transient").build()
    blobstore = context.blobstore
    ...
    context.close()
"""

from __future__ import annotations

import threading
from concurrent.futures import Executor
from typing import Any, Optional

from pydantic import BaseModel, Field

from pyclouds.config.manager import ConfigurationManager
from pyclouds.config.schemas import PyCloudsConfig
from pyclouds.domain.base.exceptions import ConfigurationError
from pyclouds.domain.provider.metadata import ContextView, ProviderMetadata
from pyclouds.infrastructure.concurrency.executors import (
    Closeable,
    Closer,
    ExecutorCloseable,
    ExecutorFactory,
)
from pyclouds.infrastructure.concurrency.provisioning import ProvisioningManager
from pyclouds.infrastructure.http.token_auth import TokenAuthenticatedApi
from pyclouds.infrastructure.logging.logger import get_logger, setup_logging
from pyclouds.infrastructure.registry.provider_registry import (
    ProviderRegistry,
    get_provider_registry,
)

logger = get_logger(__name__)


class ContextSettings(BaseModel):
    """Everything the caller supplied when building a context."""

    provider_id: str
    identity: Optional[str] = None
    credential: Optional[str] = None
    endpoint: Optional[str] = None
    overrides: dict[str, Any] = Field(default_factory=dict)
    config_file: Optional[str] = None
    use_environment: bool = True

    def __repr__(self) -> str:
        # credential stays out of logs
        return (
            f"ContextSettings(provider_id={self.provider_id!r}, identity={self.identity!r}, "
            f"endpoint={self.endpoint!r})"
        )

    __str__ = __repr__


class CloudContext:
    """
    A provider's services plus the resources they share.

    The user executor and the provisioning manager are created on first use
    and shut down by ``close()``, in reverse order of creation.
    """

    def __init__(
        self,
        provider: ProviderMetadata,
        settings: ContextSettings,
        user_executor: Optional[Executor] = None,
    ) -> None:
        self.provider = provider
        self.settings = settings
        self.closer = Closer()
        self.config_manager = ConfigurationManager(
            config_file=settings.config_file, use_environment=settings.use_environment
        )
        self.config_manager.set_defaults(provider.effective_properties)
        for key, value in settings.overrides.items():
            self.config_manager.set(key, value)
        self.config: PyCloudsConfig = self.config_manager.get_app_config()

        self._lock = threading.Lock()
        self._user_executor = user_executor
        self._provisioning_manager: Optional[ProvisioningManager] = None
        self._views: dict[ContextView, Any] = {}

    @property
    def provider_id(self) -> str:
        return self.provider.id

    @property
    def identity(self) -> Optional[str]:
        return self.settings.identity or self.provider.api.default_identity

    @property
    def credential(self) -> Optional[str]:
        return self.settings.credential or self.provider.api.default_credential

    @property
    def endpoint(self) -> Optional[str]:
        return self.settings.endpoint or self.provider.effective_endpoint

    def get_property(self, key: str, default: Any = None) -> Any:
        """Read a dotted property, e.g. ``get_property("aws.region")``."""
        return self.config_manager.get(key, default)

    @property
    def user_executor(self) -> Executor:
        with self._lock:
            if self._user_executor is None:
                executor = ExecutorFactory(self.config).create_user_executor()
                self.closer.add_to_close(ExecutorCloseable(executor))
                self._user_executor = executor
            return self._user_executor

    @property
    def provisioning_manager(self) -> ProvisioningManager:
        with self._lock:
            if self._provisioning_manager is None:
                manager = ProvisioningManager(self.config.compute.provisioning_threads)
                self.closer.add_to_close(manager)
                self._provisioning_manager = manager
            return self._provisioning_manager

    def token_api(
        self,
        auth_endpoint: str,
        endpoint: Optional[str] = None,
        token_ttl: Optional[float] = None,
    ) -> TokenAuthenticatedApi:
        """
        An ``HttpApi`` authenticated with this context's identity and credential.

        Retries follow the ``http`` config section. The api is closed with the
        context.
        """
        target = endpoint or self.endpoint
        if not target:
            raise ConfigurationError(
                f"Provider '{self.provider.id}' has no endpoint configured",
                details={"provider_id": self.provider.id},
            )
        api = TokenAuthenticatedApi(
            target,
            auth_endpoint,
            self.identity,
            self.credential,
            config=self.config.http,
            token_ttl=token_ttl,
        )
        self.closer.add_to_close(api)
        return api

    def attach(self, view: ContextView, service: Any) -> None:
        self._views[view] = service
        if hasattr(service, "close"):
            self.closer.add_to_close(service)

    def add_to_close(self, resource: Closeable) -> Closeable:
        return self.closer.add_to_close(resource)

    def _view(self, view: ContextView) -> Any:
        service = self._views.get(view)
        if service is None:
            raise ConfigurationError(
                f"Provider '{self.provider.id}' does not support the {view.value} view",
                details={"provider_id": self.provider.id, "view": view.value},
            )
        return service

    @property
    def compute(self) -> Any:
        return self._view(ContextView.COMPUTE)

    @property
    def blobstore(self) -> Any:
        return self._view(ContextView.BLOBSTORE)

    @property
    def closed(self) -> bool:
        return self.closer.closed

    def close(self) -> None:
        """Release every resource the context created. Safe to call twice."""
        if self.closer.closed:
            return
        logger.debug("Closing context for provider %s", self.provider.id)
        self.closer.close()

    def __enter__(self) -> CloudContext:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"CloudContext(provider={self.provider.id!r}, views={sorted(v.value for v in self._views)})"


class ContextBuilder:
    """Fluent construction of a ``CloudContext`` from the provider registry."""

    def __init__(self, provider_id: str, registry: Optional[ProviderRegistry] = None) -> None:
        if not provider_id:
            raise ConfigurationError("provider_id is required")
        self._registry = registry
        self._provider_id = provider_id
        self._identity: Optional[str] = None
        self._credential: Optional[str] = None
        self._endpoint: Optional[str] = None
        self._overrides: dict[str, Any] = {}
        self._config_file: Optional[str] = None
        self._use_environment = True
        self._configure_logging = False

    def credentials(self, identity: str, credential: Optional[str] = None) -> ContextBuilder:
        self._identity = identity
        self._credential = credential
        return self

    def endpoint(self, endpoint: str) -> ContextBuilder:
        self._endpoint = endpoint
        return self

    def overrides(self, properties: dict[str, Any]) -> ContextBuilder:
        self._overrides.update(properties)
        return self

    def config_file(self, path: str) -> ContextBuilder:
        self._config_file = path
        return self

    def ignore_environment(self) -> ContextBuilder:
        self._use_environment = False
        return self

    def configure_logging(self) -> ContextBuilder:
        """Install the library's log handlers using the ``logging`` config section."""
        self._configure_logging = True
        return self

    def build(self) -> CloudContext:
        """
        :raises UnsupportedProviderError: when the provider id is unknown
        :raises ConfigurationError: when configuration or a view factory fails
        """
        registry = self._registry or get_provider_registry()
        settings = ContextSettings(
            provider_id=self._provider_id,
            identity=self._identity,
            credential=self._credential,
            endpoint=self._endpoint,
            overrides=dict(self._overrides),
            config_file=self._config_file,
            use_environment=self._use_environment,
        )
        context = registry.create_context(settings)
        if self._configure_logging:
            log_config = context.config.logging
            setup_logging(
                log_level=log_config.level,
                log_destination=log_config.destination,
                log_file=log_config.file_path,
                json_format=log_config.json_format,
            )
        return context
