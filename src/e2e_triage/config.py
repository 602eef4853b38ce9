"""Configuration settings for e2e_triage."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from e2e_triage.agents.base import StageConfig
from e2e_triage.agents.orchestrator import Orchestrator, OrchestratorConfig
from e2e_triage.core.exceptions import ConfigurationError
from e2e_triage.llm.config import PROVIDER_CONFIGS, get_provider_config
from e2e_triage.llm.providers import create_provider
from e2e_triage.llm.providers.base import Generator
from e2e_triage.llm.router import LLMRouter
from e2e_triage.sources.base import SourceReader
from e2e_triage.sources.github import GitHubSourceReader
from e2e_triage.sources.local import LocalSourceReader
from e2e_triage.utils.logging import configure_logging


class Settings(BaseSettings):
    """Settings loaded from ``TRIAGE_``-prefixed environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TRIAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM Configuration
    llm_provider: str = "anthropic"
    llm_fallback_provider: str | None = None
    llm_model: str | None = None
    llm_fallback_model: str | None = None

    # Provider API keys (unprefixed ANTHROPIC_API_KEY etc. are used when unset)
    anthropic_api_key: str | None = None
    openai_api_key: str | None = None
    google_api_key: str | None = None

    # Source access
    github_token: str | None = None
    github_repository: str | None = None
    github_api_url: str | None = None
    source_revision: str = "main"
    source_root: str | None = None

    # Logging
    log_level: str = "INFO"
    log_json_format: bool = True

    # Pipeline
    max_iterations: int = 3
    total_timeout: float = 120.0
    min_confidence: float = 70.0
    require_review: bool = True
    fallback_to_single_shot: bool = True
    stage_timeout: float = 60.0
    stage_temperature: float = 0.3
    verbose: bool = False

    def api_key_for(self, provider: str) -> str | None:
        """
        Resolve the API key for a provider.

        Args:
            provider: Provider name ("anthropic", "openai", or "google").

        Returns:
            The prefixed setting if present, else the provider's own
            environment variable, else None.
        """
        config = get_provider_config(provider)
        return getattr(self, f"{provider}_api_key", None) or os.environ.get(config.env_var)

    def to_orchestrator_config(self) -> OrchestratorConfig:
        """Build the orchestrator and stage configuration."""
        try:
            return OrchestratorConfig(
                max_iterations=self.max_iterations,
                total_timeout=self.total_timeout,
                min_confidence=self.min_confidence,
                require_review=self.require_review,
                fallback_to_single_shot=self.fallback_to_single_shot,
                stage=StageConfig(
                    timeout=self.stage_timeout,
                    temperature=self.stage_temperature,
                    verbose=self.verbose,
                ),
            )
        except ValueError as e:
            raise ConfigurationError(str(e)) from e


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def _create_generator(settings: Settings, provider: str, model: str | None) -> Generator:
    if provider not in PROVIDER_CONFIGS:
        valid = ", ".join(sorted(PROVIDER_CONFIGS.keys()))
        raise ConfigurationError(f"Unknown provider: {provider}. Valid providers: {valid}")

    api_key = settings.api_key_for(provider)
    if not api_key:
        env_var = PROVIDER_CONFIGS[provider].env_var
        raise ConfigurationError(
            f"No API key for {provider}: set TRIAGE_{env_var} or {env_var}"
        )
    return create_provider(provider, api_key, model=model)


def build_generator(settings: Settings) -> Generator:
    """
    Build the generator described by settings.

    A single provider is returned as is; with a fallback provider set, both
    are wrapped in an :class:`LLMRouter`.

    Raises:
        ConfigurationError: If a provider is unknown or has no API key.
    """
    primary = _create_generator(settings, settings.llm_provider, settings.llm_model)
    if not settings.llm_fallback_provider:
        return primary

    fallback = _create_generator(
        settings, settings.llm_fallback_provider, settings.llm_fallback_model
    )
    return LLMRouter([primary, fallback])


def build_source_reader(settings: Settings) -> SourceReader | None:
    """
    Build the source reader described by settings.

    A local checkout root wins over GitHub access. Without either, the
    pipeline runs on whatever source the caller puts in the context.

    Raises:
        ConfigurationError: If GitHub settings are incomplete or malformed.
    """
    if settings.source_root:
        return LocalSourceReader(settings.source_root)

    if not settings.github_token and not settings.github_repository:
        return None
    if not settings.github_token or not settings.github_repository:
        raise ConfigurationError(
            "GitHub source access needs both TRIAGE_GITHUB_TOKEN and TRIAGE_GITHUB_REPOSITORY"
        )

    try:
        return GitHubSourceReader(
            settings.github_token,
            settings.github_repository,
            base_url=settings.github_api_url,
        )
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def build_orchestrator(settings: Settings | None = None) -> Orchestrator:
    """Build a fully wired orchestrator from settings, configuring logging first."""
    settings = settings or get_settings()
    configure_logging(log_level=settings.log_level, json_format=settings.log_json_format)
    return Orchestrator(
        build_generator(settings),
        config=settings.to_orchestrator_config(),
        source_reader=build_source_reader(settings),
        revision=settings.source_revision,
    )
