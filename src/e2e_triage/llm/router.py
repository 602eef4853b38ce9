"""Generator that routes requests across providers with fallback."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx
from anthropic import APIError as AnthropicAPIError
from google.genai.errors import APIError as GoogleAPIError
from openai import APIError as OpenAIAPIError

if TYPE_CHECKING:
    from e2e_triage.llm.content import UserContent
    from e2e_triage.llm.providers.base import Generator

logger = logging.getLogger(__name__)

# Exceptions that indicate recoverable API/network errors (should trigger fallback)
# Programming errors like TypeError, KeyError, AttributeError should propagate
LLM_RECOVERABLE_ERRORS: tuple[type[Exception], ...] = (
    AnthropicAPIError,
    OpenAIAPIError,
    GoogleAPIError,
    httpx.RequestError,
    httpx.HTTPStatusError,
)


class LLMRouter:
    """Tries each provider in order until one answers.

    A router is itself a Generator. Each provider gets at most one request
    per call; the same provider is never retried.
    """

    def __init__(self, providers: list[Generator]) -> None:
        """
        Initialize the router with ordered providers.

        Args:
            providers: List of providers in priority order (first is primary).

        Raises:
            ValueError: If no providers are provided.
        """
        if not providers:
            raise ValueError("At least one provider is required")

        self._providers = providers

    @property
    def name(self) -> str:
        """Return a name listing the routed providers."""
        return "router[" + ",".join(p.name for p in self._providers) + "]"

    @property
    def providers(self) -> list[Generator]:
        """Return the list of providers."""
        return self._providers

    async def generate(
        self,
        system_instruction: str,
        user_content: UserContent,
        *,
        as_json: bool = False,
        temperature: float | None = None,
    ) -> str:
        """
        Generate using providers with automatic fallback.

        Args:
            system_instruction: System prompt for the request.
            user_content: Prompt text, or text and image parts.
            as_json: Ask for a JSON object response.
            temperature: Optional sampling temperature override.

        Returns:
            Text from the first provider that succeeds.

        Raises:
            Exception: The last provider error if all providers fail.
        """
        last_error: Exception | None = None

        for provider in self._providers:
            try:
                logger.info("llm_router_attempt: provider=%s", provider.name)

                result = await provider.generate(
                    system_instruction,
                    user_content,
                    as_json=as_json,
                    temperature=temperature,
                )

                logger.info("llm_router_success: provider=%s", provider.name)
                return result

            except LLM_RECOVERABLE_ERRORS as e:
                last_error = e
                logger.warning(
                    "llm_router_fallback: failed_provider=%s, error=%s",
                    provider.name,
                    str(e),
                )
                continue

        logger.error(
            "llm_router_all_failed: providers=%s, last_error=%s",
            [p.name for p in self._providers],
            str(last_error),
        )

        if last_error:
            raise last_error
        raise RuntimeError("All LLM providers failed")
