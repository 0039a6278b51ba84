"""
Tests for model routing, credential-gated adapters and mock mode switching.
"""

import pytest

from promptline.prompts.providers import (
    AdapterFactory,
    CapabilityFamily,
    CredentialAdapterFactory,
    FalAdapter,
    MockAdapter,
    OpenRouterAdapter,
    ProviderRouter,
)
from promptline.prompts.providers.base import CLAUDE_SONNET_4, NANO_BANANA


class RecordingFactory(AdapterFactory):
    """Hands out mock adapters and remembers what was requested."""

    def __init__(self):
        self.created: list[CapabilityFamily] = []

    def create(self, family, models):
        self.created.append(family)
        return MockAdapter(family, models)


class TestProviderRouter:
    def test_routes_by_capability_family(self):
        router = ProviderRouter(CredentialAdapterFactory("sk-or", "fal-key"))

        assert isinstance(router.get_provider(CLAUDE_SONNET_4), OpenRouterAdapter)
        assert isinstance(router.get_provider(NANO_BANANA), FalAdapter)

    def test_unknown_model(self):
        router = ProviderRouter(CredentialAdapterFactory("sk-or", "fal-key"))

        assert router.get_provider("openai/gpt-5") is None
        assert router.last_error == "No provider mapping found for model: openai/gpt-5"

    def test_missing_credential_leaves_family_unserved(self):
        router = ProviderRouter(CredentialAdapterFactory(openrouter_api_key="sk-or"))

        assert router.get_provider(NANO_BANANA) is None
        assert router.last_error == f"Provider fal not initialized for model: {NANO_BANANA}"
        assert NANO_BANANA not in router.get_available_models()
        assert CLAUDE_SONNET_4 in router.get_available_models()

    def test_mock_mode_serves_every_model_without_credentials(self):
        router = ProviderRouter(CredentialAdapterFactory(), mock_mode=True)

        assert router.get_provider(CLAUDE_SONNET_4).name == "mock"
        assert router.get_provider(NANO_BANANA).name == "mock"

    def test_set_mock_mode_swaps_factories(self):
        router = ProviderRouter(CredentialAdapterFactory("sk-or", "fal-key"))
        real = router.get_provider(CLAUDE_SONNET_4)

        router.set_mock_mode(True)
        assert router.get_provider(CLAUDE_SONNET_4).name == "mock"

        router.set_mock_mode(False)
        restored = router.get_provider(CLAUDE_SONNET_4)
        assert isinstance(restored, OpenRouterAdapter)
        assert restored is not real

    def test_register_model_extends_routing_table(self):
        factory = RecordingFactory()
        router = ProviderRouter(factory)

        router.register_model("mistral/large", CapabilityFamily.TEXT)

        assert router.get_provider("mistral/large").supports("mistral/large")
        assert factory.created.count(CapabilityFamily.TEXT) == 2

    @pytest.mark.asyncio
    async def test_connection_results_keyed_by_provider_slot(self):
        router = ProviderRouter(CredentialAdapterFactory(), mock_mode=True)

        assert await router.test_all_providers() == {"openrouter": True, "fal": True}

    @pytest.mark.asyncio
    async def test_aclose_closes_retired_adapters(self):
        router = ProviderRouter(CredentialAdapterFactory("sk-or"))
        real = router.get_provider(CLAUDE_SONNET_4)
        real._client()
        router.set_mock_mode(True)
        assert router._retired == [real]

        await router.aclose()

        assert router._retired == []
        assert real.holds_resources is False

    def test_mode_switches_do_not_accumulate_adapters(self):
        router = ProviderRouter(CredentialAdapterFactory("sk-or", "fal-key"))

        for _ in range(10):
            router.set_mock_mode(True)
            router.set_mock_mode(False)
            router.register_model("mistral/large", CapabilityFamily.TEXT)

        assert router._retired == []
