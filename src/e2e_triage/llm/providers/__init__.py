"""Generator implementations for the supported LLM providers."""

from __future__ import annotations

from e2e_triage.llm.providers.anthropic import AnthropicProvider
from e2e_triage.llm.providers.base import Generator
from e2e_triage.llm.providers.gemini import GeminiProvider
from e2e_triage.llm.providers.openai import OpenAIProvider

__all__ = [
    "Generator",
    "AnthropicProvider",
    "OpenAIProvider",
    "GeminiProvider",
    "create_provider",
]


def create_provider(
    provider_name: str,
    api_key: str,
    *,
    model: str | None = None,
    max_tokens: int | None = None,
    temperature: float | None = None,
) -> Generator:
    """
    Factory function to create LLM providers.

    Args:
        provider_name: Name of the provider ("anthropic", "openai", or "google").
        api_key: API key for the provider.
        model: Optional model name override.
        max_tokens: Optional max tokens override.
        temperature: Optional temperature override.

    Returns:
        Generator instance.

    Raises:
        ValueError: If provider name is unknown.
    """
    providers: dict[str, type] = {
        "anthropic": AnthropicProvider,
        "openai": OpenAIProvider,
        "google": GeminiProvider,
    }

    if provider_name not in providers:
        valid = ", ".join(sorted(providers.keys()))
        raise ValueError(f"Unknown provider: {provider_name}. Valid providers: {valid}")

    return providers[provider_name](
        api_key=api_key,
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
    )
