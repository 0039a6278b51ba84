"""
Dependency injection container for the promptline services.

Services are built lazily from registered factories, once per container, so
tests can register replacements (for example an ``httpx.MockTransport``
client or an in-memory store) before anything is resolved.
"""

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any

from ..observability.logging import get_logger
from .settings import Settings, get_settings


logger = get_logger(__name__)


class Container:
    """Dependency injection container with async lifecycle management."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._services: dict[str, Any] = {}
        self._factories: dict[str, Any] = {}
        self._singletons: dict[str, Any] = {}

    def register_factory(self, name: str, factory: Any) -> None:
        """Register a factory function for a service."""
        self._factories[name] = factory
        self._services.pop(name, None)

    def register_singleton(self, name: str, instance: Any) -> None:
        """Register a singleton instance."""
        self._singletons[name] = instance

    def get(self, name: str, default: Any = None) -> Any:
        """Get a service by name."""
        if name in self._singletons:
            return self._singletons[name]

        if name in self._services:
            return self._services[name]

        if name in self._factories:
            instance = self._factories[name](self)
            self._services[name] = instance
            return instance

        return default

    async def cleanup(self) -> None:
        """Close every instantiated service that owns async resources."""
        for name, service in reversed(list(self._services.items())):
            if hasattr(service, "aclose"):
                try:
                    await service.aclose()
                except Exception as e:
                    logger.error("Error cleaning up service", service=name, error=str(e))
        self._services.clear()

    @asynccontextmanager
    async def lifespan(self):
        """Async context manager for container lifecycle."""
        try:
            yield self
        finally:
            await self.cleanup()


def setup_container(settings: Settings | None = None, *, mock_mode: bool | None = None) -> Container:
    """Setup container with default service factories."""
    container = Container(settings)

    def _http_client_factory(c: Container):
        from ..transport import default_http_client

        return default_http_client(c.settings.execution.timeout)

    def _router_factory(c: Container):
        from ..prompts.providers.router import CredentialAdapterFactory, ProviderRouter

        return ProviderRouter(
            CredentialAdapterFactory.from_settings(c.settings, c.get("http_client")),
            mock_mode=c.settings.mock_mode_enabled() if mock_mode is None else mock_mode,
        )

    def _resilience_factory(c: Container):
        from ..resilience.manager import AIServiceManager

        return AIServiceManager.from_settings(c.settings, c.get("http_client"))

    def _engine_factory(c: Container):
        from ..prompts.engine import PromptExecutionEngine

        return PromptExecutionEngine(
            c.get("router"),
            c.settings.execution,
            resilience=c.get("resilience"),
            api_keys=c.settings.api_key_presence(),
        )

    def _kv_store_factory(c: Container):
        from ..storage.kv import create_store

        return create_store(c.settings.storage)

    def _state_store_factory(c: Container):
        from ..pipeline.store import ExecutionStateStore

        return ExecutionStateStore(c.get("kv_store"), ttl_seconds=c.settings.storage.ttl_seconds)

    def _templates_factory(c: Container):
        from ..integrations.cms import InMemoryTemplateCatalog

        return InMemoryTemplateCatalog()

    def _recorder_factory(c: Container):
        from ..integrations.cms import InMemoryExecutionRecorder

        return InMemoryExecutionRecorder()

    def _orchestrator_factory(c: Container):
        from ..pipeline.orchestrator import PipelineOrchestrator

        return PipelineOrchestrator(
            c.get("engine"),
            c.get("state_store"),
            c.get("templates"),
            recorder=c.get("recorder"),
            config=c.settings.pipeline,
        )

    container.register_factory("http_client", _http_client_factory)
    container.register_factory("router", _router_factory)
    container.register_factory("resilience", _resilience_factory)
    container.register_factory("engine", _engine_factory)
    container.register_factory("kv_store", _kv_store_factory)
    container.register_factory("state_store", _state_store_factory)
    container.register_factory("templates", _templates_factory)
    container.register_factory("recorder", _recorder_factory)
    container.register_factory("orchestrator", _orchestrator_factory)

    return container


@lru_cache
def get_container() -> Container:
    """Get cached container instance."""
    return setup_container()
