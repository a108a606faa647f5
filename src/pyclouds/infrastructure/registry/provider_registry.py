"""Provider registry mapping provider ids to metadata and service factories."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from pyclouds.domain.base.exceptions import ConfigurationError, UnsupportedProviderError
from pyclouds.domain.provider.metadata import ContextView, ProviderMetadata
from pyclouds.infrastructure.logging.logger import get_logger

if TYPE_CHECKING:
    from pyclouds.context import CloudContext, ContextSettings

logger = get_logger(__name__)

ServiceFactory = Callable[["CloudContext"], Any]


@dataclass(frozen=True)
class ProviderRegistration:
    """Metadata plus the factories that build a provider's views."""

    metadata: ProviderMetadata
    compute_factory: Optional[ServiceFactory] = None
    blobstore_factory: Optional[ServiceFactory] = None

    def factory_for(self, view: ContextView) -> Optional[ServiceFactory]:
        if view == ContextView.COMPUTE:
            return self.compute_factory
        return self.blobstore_factory


class ProviderRegistry:
    """Thread-safe registry of providers."""

    def __init__(self) -> None:
        self._registrations: dict[str, ProviderRegistration] = {}
        self._lock = threading.RLock()

    def register(
        self,
        metadata: ProviderMetadata,
        compute_factory: Optional[ServiceFactory] = None,
        blobstore_factory: Optional[ServiceFactory] = None,
    ) -> None:
        """
        Register a provider.

        :raises ConfigurationError: when the id is already registered, or a
            view the API declares has no factory
        """
        for view in metadata.views:
            factory = compute_factory if view == ContextView.COMPUTE else blobstore_factory
            if factory is None:
                raise ConfigurationError(
                    f"Provider '{metadata.id}' declares the {view.value} view but has no factory",
                    details={"provider_id": metadata.id, "view": view.value},
                )
        with self._lock:
            if metadata.id in self._registrations:
                raise ConfigurationError(
                    f"Provider '{metadata.id}' is already registered",
                    details={"provider_id": metadata.id},
                )
            self._registrations[metadata.id] = ProviderRegistration(
                metadata, compute_factory, blobstore_factory
            )
        logger.debug("Registered provider %s (api %s)", metadata.id, metadata.api.id)

    def unregister(self, provider_id: str) -> bool:
        with self._lock:
            removed = self._registrations.pop(provider_id, None) is not None
        if removed:
            logger.debug("Unregistered provider %s", provider_id)
        return removed

    def is_registered(self, provider_id: str) -> bool:
        with self._lock:
            return provider_id in self._registrations

    def get_registered_types(self) -> list[str]:
        with self._lock:
            return sorted(self._registrations)

    def get_registration(self, provider_id: str) -> ProviderRegistration:
        """
        :raises UnsupportedProviderError: when the id is not registered
        """
        with self._lock:
            registration = self._registrations.get(provider_id)
            if registration is None:
                raise UnsupportedProviderError(provider_id, sorted(self._registrations))
            return registration

    def get_metadata(self, provider_id: str) -> ProviderMetadata:
        return self.get_registration(provider_id).metadata

    def providers_with_view(self, view: ContextView) -> list[ProviderMetadata]:
        with self._lock:
            return [r.metadata for r in self._registrations.values() if r.metadata.supports(view)]

    def create_context(self, settings: ContextSettings) -> CloudContext:
        """
        Build a context for ``settings.provider_id`` with every view the provider supports.

        :raises UnsupportedProviderError: when the provider is not registered
        :raises ConfigurationError: when a view factory fails
        """
        from pyclouds.context import CloudContext

        registration = self.get_registration(settings.provider_id)
        context = CloudContext(registration.metadata, settings)
        try:
            for view in sorted(registration.metadata.views, key=lambda v: v.value):
                factory = registration.factory_for(view)
                if factory is None:
                    continue
                context.attach(view, factory(context))
        except Exception as e:
            context.close()
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(
                f"Failed to create context for provider '{settings.provider_id}': {e}",
                details={"provider_id": settings.provider_id},
            ) from e
        logger.info("Created context for provider %s", settings.provider_id)
        return context

    def clear_registrations(self) -> None:
        with self._lock:
            self._registrations.clear()


_registry: Optional[ProviderRegistry] = None
_registry_lock = threading.Lock()


def get_provider_registry() -> ProviderRegistry:
    """Return the process-wide registry, registering the built-in providers on first use."""
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                from pyclouds.providers.registration import register_builtin_providers

                registry = ProviderRegistry()
                register_builtin_providers(registry)
                _registry = registry
    return _registry


def reset_provider_registry() -> None:
    global _registry
    with _registry_lock:
        _registry = None
