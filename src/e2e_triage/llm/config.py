"""Unified LLM provider configuration."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType


@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for an LLM provider."""

    default_model: str
    max_tokens: int = 4096
    temperature: float = 0.3
    env_var: str = ""


# Provider configurations - single source of truth
PROVIDER_CONFIGS: MappingProxyType[str, ProviderConfig] = MappingProxyType(
    {
        "anthropic": ProviderConfig(
            default_model="claude-sonnet-4-20250514",
            env_var="ANTHROPIC_API_KEY",
        ),
        "openai": ProviderConfig(
            default_model="gpt-4.1",
            max_tokens=6000,
            env_var="OPENAI_API_KEY",
        ),
        "google": ProviderConfig(
            default_model="gemini-2.5-pro",
            env_var="GOOGLE_API_KEY",
        ),
    }
)


def get_provider_config(provider: str) -> ProviderConfig:
    """
    Look up the configuration for a provider.

    Args:
        provider: Provider name ("anthropic", "openai", or "google").

    Returns:
        ProviderConfig for the provider.

    Raises:
        ValueError: If provider name is unknown.
    """
    config = PROVIDER_CONFIGS.get(provider)
    if config is None:
        valid = ", ".join(sorted(PROVIDER_CONFIGS.keys()))
        raise ValueError(f"Unknown provider: {provider}. Valid providers: {valid}")
    return config
