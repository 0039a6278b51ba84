"""Provider adapters and the model router."""

from .base import (
    FAMILY_PROVIDERS,
    MODEL_FAMILIES,
    CapabilityFamily,
    HttpProviderAdapter,
    ProviderAdapter,
)
from .fal import FalAdapter
from .mock import MockAdapter
from .openrouter import OpenRouterAdapter
from .router import AdapterFactory, CredentialAdapterFactory, MockAdapterFactory, ProviderRouter

__all__ = [
    "FAMILY_PROVIDERS",
    "MODEL_FAMILIES",
    "CapabilityFamily",
    "HttpProviderAdapter",
    "ProviderAdapter",
    "FalAdapter",
    "MockAdapter",
    "OpenRouterAdapter",
    "AdapterFactory",
    "CredentialAdapterFactory",
    "MockAdapterFactory",
    "ProviderRouter",
]
