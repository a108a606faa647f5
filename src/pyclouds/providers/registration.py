"""Built-in provider registration."""

from pyclouds.infrastructure.logging.logger import get_logger
from pyclouds.infrastructure.registry.provider_registry import ProviderRegistry

logger = get_logger(__name__)


def register_builtin_providers(registry: ProviderRegistry) -> None:
    """Register every provider shipped with the library that is not yet registered."""
    from pyclouds.providers.aws.provider import EC2_PROVIDER, S3_PROVIDER, register_aws_providers
    from pyclouds.providers.stub.provider import (
        FILESYSTEM_PROVIDER,
        STUB_PROVIDER,
        TRANSIENT_PROVIDER,
        register_local_providers,
    )

    if not any(registry.is_registered(p.id) for p in (STUB_PROVIDER, TRANSIENT_PROVIDER, FILESYSTEM_PROVIDER)):
        register_local_providers(registry)
    if not any(registry.is_registered(p.id) for p in (EC2_PROVIDER, S3_PROVIDER)):
        register_aws_providers(registry)
    logger.debug("Built-in providers registered: %s", registry.get_registered_types())
