"""Generators, provider configuration and prompt content parts."""

from e2e_triage.llm.config import PROVIDER_CONFIGS, ProviderConfig, get_provider_config
from e2e_triage.llm.content import ContentPart, ImagePart, TextPart, UserContent
from e2e_triage.llm.providers import (
    AnthropicProvider,
    GeminiProvider,
    Generator,
    OpenAIProvider,
    create_provider,
)
from e2e_triage.llm.router import LLM_RECOVERABLE_ERRORS, LLMRouter

__all__ = [
    # Content
    "ContentPart",
    "ImagePart",
    "TextPart",
    "UserContent",
    # Config
    "PROVIDER_CONFIGS",
    "ProviderConfig",
    "get_provider_config",
    # Providers
    "Generator",
    "AnthropicProvider",
    "OpenAIProvider",
    "GeminiProvider",
    "create_provider",
    # Router
    "LLMRouter",
    "LLM_RECOVERABLE_ERRORS",
]
