# Providers module - external service catalog and connection probing
# A provider is "connected" when a credential exists for (user, connector_key)

from .registry import (
    ProviderRegistry, Provider, ProviderType,
    DEFAULT_PROVIDERS, SYSTEM_PROVIDER, SYSTEM_PROVIDER_ID
)

__all__ = [
    "ProviderRegistry",
    "Provider",
    "ProviderType",
    "DEFAULT_PROVIDERS",
    "SYSTEM_PROVIDER",
    "SYSTEM_PROVIDER_ID",
]
