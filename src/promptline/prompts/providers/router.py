"""
Model-to-adapter routing.

The router owns one adapter per capability family, built by a pluggable
``AdapterFactory``. Mock mode swaps in a second factory and rebuilds the
cache; adapters are never mutated in place.
"""

import asyncio
from abc import ABC, abstractmethod

import httpx

from ...config.settings import ProvidersConfig, Settings
from ...observability.logging import get_logger
from .base import FAMILY_PROVIDERS, MODEL_FAMILIES, CapabilityFamily, ProviderAdapter
from .fal import FalAdapter
from .mock import MockAdapter
from .openrouter import OpenRouterAdapter

logger = get_logger(__name__)


class AdapterFactory(ABC):
    """Builds the adapter serving one capability family."""

    @abstractmethod
    def create(
        self, family: CapabilityFamily, models: tuple[str, ...]
    ) -> ProviderAdapter | None:
        """Return an adapter, or None when the family cannot be served."""
        ...


class CredentialAdapterFactory(AdapterFactory):
    """Real adapters for every family whose credential is configured."""

    def __init__(
        self,
        openrouter_api_key: str | None = None,
        fal_api_key: str | None = None,
        config: ProvidersConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.openrouter_api_key = openrouter_api_key
        self.fal_api_key = fal_api_key
        self.config = config or ProvidersConfig()
        self.http_client = http_client

    @classmethod
    def from_settings(
        cls, settings: Settings, http_client: httpx.AsyncClient | None = None
    ) -> "CredentialAdapterFactory":
        return cls(
            openrouter_api_key=settings.openrouter_api_key,
            fal_api_key=settings.fal_api_key,
            config=settings.providers,
            http_client=http_client,
        )

    def create(self, family, models):
        if family is CapabilityFamily.TEXT and self.openrouter_api_key:
            return OpenRouterAdapter(
                self.openrouter_api_key, self.config.openrouter, self.http_client, models
            )
        if family is CapabilityFamily.IMAGE and self.fal_api_key:
            return FalAdapter(self.fal_api_key, self.config.fal, self.http_client, models)
        return None


class MockAdapterFactory(AdapterFactory):
    def create(self, family, models):
        return MockAdapter(family, models)


class ProviderRouter:
    """Resolves model identifiers to initialized adapters."""

    def __init__(
        self,
        factory: AdapterFactory,
        mock_factory: AdapterFactory | None = None,
        mock_mode: bool = False,
        model_families: dict[str, CapabilityFamily] | None = None,
    ):
        self._factory = factory
        self._mock_factory = mock_factory or MockAdapterFactory()
        self._families = dict(model_families or MODEL_FAMILIES)
        self._adapters: dict[CapabilityFamily, ProviderAdapter] = {}
        self._retired: list[ProviderAdapter] = []
        self.mock_mode = mock_mode
        self.last_error: str | None = None
        self._rebuild()

    def _models_for(self, family: CapabilityFamily) -> tuple[str, ...]:
        return tuple(m for m, f in self._families.items() if f is family)

    def _rebuild(self) -> None:
        factory = self._mock_factory if self.mock_mode else self._factory
        # Only adapters with an open client of their own need closing later.
        self._retired = [a for a in [*self._retired, *self._adapters.values()] if a.holds_resources]

        adapters: dict[CapabilityFamily, ProviderAdapter] = {}
        for family in dict.fromkeys(self._families.values()):
            adapter = factory.create(family, self._models_for(family))
            if adapter is None:
                if not self.mock_mode:
                    logger.warning(
                        "Provider credential not configured",
                        family=family.value,
                        provider=FAMILY_PROVIDERS.get(family, family.value),
                    )
                continue
            adapters[family] = adapter
            logger.info("Provider initialized", family=family.value, provider=adapter.name)
        self._adapters = adapters

    def get_provider(self, model: str) -> ProviderAdapter | None:
        family = self._families.get(model)
        if family is None:
            self.last_error = f"No provider mapping found for model: {model}"
            logger.error("Unknown model", model=model)
            return None

        adapter = self._adapters.get(family)
        if adapter is None:
            provider = FAMILY_PROVIDERS.get(family, family.value)
            self.last_error = f"Provider {provider} not initialized for model: {model}"
            logger.error("Provider not initialized", model=model, provider=provider)
            return None

        return adapter

    def get_available_models(self) -> list[str]:
        return [m for m, family in self._families.items() if family in self._adapters]

    def register_model(self, model: str, family: CapabilityFamily) -> None:
        """Add a model to the routing table and rebuild adapters to include it."""
        self._families[model] = family
        self._rebuild()

    def set_mock_mode(self, enabled: bool) -> None:
        self.mock_mode = enabled
        self._rebuild()
        logger.info("Mock mode " + ("enabled" if enabled else "disabled"))

    async def test_all_providers(self) -> dict[str, bool]:
        families = list(self._adapters)
        outcomes = await asyncio.gather(
            *(self._adapters[f].test_connection() for f in families), return_exceptions=True
        )

        results: dict[str, bool] = {}
        for family, outcome in zip(families, outcomes, strict=True):
            name = FAMILY_PROVIDERS.get(family, family.value)
            if isinstance(outcome, BaseException):
                logger.error("Provider test failed", provider=name, error=str(outcome))
                results[name] = False
            else:
                results[name] = bool(outcome)
        return results

    async def aclose(self) -> None:
        for adapter in [*self._retired, *self._adapters.values()]:
            await adapter.aclose()
        self._retired.clear()
