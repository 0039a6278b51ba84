"""
Configuration system built on Pydantic Settings.

All sections can be overridden through ``PROMPTLINE_``-prefixed environment
variables using ``__`` as the nested delimiter, e.g.
``PROMPTLINE_EXECUTION__RETRY_ATTEMPTS=5``. Provider credentials also accept
their conventional unprefixed names (``OPENROUTER_API_KEY``, ``FAL_KEY``...).
"""

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _validate_http_url(v: str) -> str:
    if not v.startswith(("http://", "https://")):
        raise ValueError("base_url must start with http:// or https://")
    return v.rstrip("/")


class ServiceEndpoint(BaseModel):
    """A chat-completion service used by the resilience layer."""

    name: str = Field(..., description="Service name (e.g., 'openai')")
    base_url: str = Field(..., description="Base URL of the OpenAI-compatible API")
    api_key: str | None = Field(None, description="Bearer credential")
    model: str = Field(..., description="Model requested from this service")
    timeout: float = Field(30.0, gt=0, description="Request timeout in seconds")
    max_retries: int = Field(3, ge=1, description="Attempts per service before falling over")
    retry_delay: float = Field(1.0, ge=0, description="Base delay between attempts in seconds")
    priority: int = Field(1, description="Lower number is tried first")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        return _validate_http_url(v)


class OpenRouterConfig(BaseModel):
    """Text-completion backend configuration."""

    base_url: str = Field("https://openrouter.ai/api/v1")
    timeout: float = Field(30.0, gt=0)
    site_url: str = Field("http://localhost:3010", description="Sent as HTTP-Referer")
    app_title: str = Field("Auto Movie Platform", description="Sent as X-Title")
    max_tokens: int = Field(4000, gt=0)
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    top_p: float = Field(0.9, gt=0.0, le=1.0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        return _validate_http_url(v)


class FalConfig(BaseModel):
    """Image-generation backend configuration."""

    base_url: str = Field("https://fal.run/fal-ai")
    timeout: float = Field(60.0, gt=0)
    polling_interval: float = Field(1.0, ge=0)
    max_polling_attempts: int = Field(60, gt=0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        return _validate_http_url(v)


class ProvidersConfig(BaseModel):
    """Configuration for all provider adapters."""

    openrouter: OpenRouterConfig = Field(default_factory=OpenRouterConfig)
    fal: FalConfig = Field(default_factory=FalConfig)


class ExecutionConfig(BaseModel):
    """Retry and timeout policy for the execution engine."""

    mock_mode: bool = Field(False)
    timeout: float = Field(30.0, gt=0, description="Per-attempt timeout in seconds")
    retry_attempts: int = Field(3, ge=1, description="Total attempts, first call included")
    backoff_base: float = Field(1.0, ge=0, description="First backoff delay in seconds")
    backoff_max: float = Field(5.0, ge=0, description="Backoff ceiling in seconds")


class ResilienceConfig(BaseModel):
    """Circuit breaker and service fallback configuration."""

    failure_threshold: int = Field(5, gt=0)
    reset_timeout: float = Field(60.0, gt=0)
    services: list[ServiceEndpoint] = Field(default_factory=list)
    novel_llm_base_url: str = Field("https://api.novellm.com/v1")


class StorageConfig(BaseModel):
    """Keyed record store used for pipeline persistence."""

    backend: str = Field("local", description="local or memory")
    directory: Path = Field(Path("./data/executions"))
    ttl_seconds: float | None = Field(None, gt=0, description="Record lifetime; None keeps forever")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        allowed = {"local", "memory"}
        if v not in allowed:
            raise ValueError(f"backend must be one of {allowed}")
        return v


class PipelineConfig(BaseModel):
    """Tag-group orchestration behaviour."""

    auto_save: bool = Field(True)
    enable_carry_over: bool = Field(True)
    carry_over_max_value_length: int = Field(500, gt=0)


class ObservabilityConfig(BaseModel):
    """Configuration for logging, tracing and metrics."""

    enable_tracing: bool = Field(False)
    enable_metrics: bool = Field(True)
    log_level: str = Field("INFO")
    service_name: str = Field("promptline")
    service_version: str = Field("1.0.0")


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="PROMPTLINE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    resilience: ResilienceConfig = Field(default_factory=ResilienceConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    # Credentials
    openrouter_api_key: str | None = Field(
        None,
        validation_alias=AliasChoices("PROMPTLINE_OPENROUTER_API_KEY", "OPENROUTER_API_KEY"),
    )
    fal_api_key: str | None = Field(
        None,
        validation_alias=AliasChoices("PROMPTLINE_FAL_API_KEY", "FAL_KEY", "FAL_API_KEY"),
    )
    novel_llm_api_key: str | None = Field(
        None, validation_alias=AliasChoices("PROMPTLINE_NOVEL_LLM_API_KEY", "NOVEL_LLM_API_KEY")
    )
    openai_api_key: str | None = Field(
        None, validation_alias=AliasChoices("PROMPTLINE_OPENAI_API_KEY", "OPENAI_API_KEY")
    )
    anthropic_api_key: str | None = Field(
        None, validation_alias=AliasChoices("PROMPTLINE_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY")
    )

    environment: str = Field(
        "development", description="Environment: development, staging, production"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    def is_production(self) -> bool:
        return self.environment == "production"

    def is_development(self) -> bool:
        return self.environment == "development"

    def mock_mode_enabled(self) -> bool:
        """Mock mode from configuration is only honoured in development."""
        return self.execution.mock_mode and self.is_development()

    def api_key_presence(self) -> dict[str, bool]:
        """Which provider credentials are configured (never the values)."""
        return {
            "openrouter": bool(self.openrouter_api_key),
            "fal": bool(self.fal_api_key),
        }

    def resilience_services(self) -> list[ServiceEndpoint]:
        """Configured fallback services, or defaults seeded from credentials."""
        if self.resilience.services:
            return sorted(self.resilience.services, key=lambda s: s.priority)

        services: list[ServiceEndpoint] = []
        if self.novel_llm_api_key:
            services.append(
                ServiceEndpoint(
                    name="novel-llm",
                    base_url=self.resilience.novel_llm_base_url,
                    api_key=self.novel_llm_api_key,
                    model="gpt-4-turbo-preview",
                    max_retries=3,
                    retry_delay=1.0,
                    priority=1,
                )
            )
        if self.openai_api_key:
            services.append(
                ServiceEndpoint(
                    name="openai",
                    base_url="https://api.openai.com/v1",
                    api_key=self.openai_api_key,
                    model="gpt-4-turbo-preview",
                    max_retries=2,
                    retry_delay=2.0,
                    priority=2,
                )
            )
        if self.anthropic_api_key:
            services.append(
                ServiceEndpoint(
                    name="anthropic",
                    base_url="https://api.anthropic.com/v1",
                    api_key=self.anthropic_api_key,
                    model="claude-3-sonnet-20240229",
                    max_retries=2,
                    retry_delay=2.0,
                    priority=3,
                )
            )
        return services


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
