"""Anthropic Claude generator."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from e2e_triage.llm.config import PROVIDER_CONFIGS
from e2e_triage.llm.content import ImagePart, as_parts

if TYPE_CHECKING:
    from anthropic import AsyncAnthropic

    from e2e_triage.llm.content import UserContent

logger = logging.getLogger(__name__)

# Claude has no JSON response mode; the instruction is appended instead
JSON_INSTRUCTION = "\n\nRespond with a single JSON object and no other text."


class AnthropicProvider:
    """Generator backed by Anthropic's Claude models."""

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> None:
        """
        Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key.
            model: Model name to use. Defaults to config default.
            max_tokens: Maximum tokens in response. Defaults to config default.
            temperature: Temperature for sampling. Defaults to config default.
        """
        config = PROVIDER_CONFIGS["anthropic"]
        self._api_key = api_key
        self._model = model or config.default_model
        self._max_tokens = max_tokens if max_tokens is not None else config.max_tokens
        self._temperature = temperature if temperature is not None else config.temperature
        self._client: AsyncAnthropic | None = None

    @property
    def name(self) -> str:
        """Return the provider name."""
        return "anthropic"

    @property
    def model(self) -> str:
        """Return the model name."""
        return self._model

    def _get_client(self) -> AsyncAnthropic:
        """Get or create asynchronous Anthropic client."""
        if self._client is None:
            from anthropic import AsyncAnthropic

            self._client = AsyncAnthropic(api_key=self._api_key)
        return self._client

    def _build_content(self, user_content: UserContent) -> list[dict[str, Any]]:
        """Convert content parts to Claude content blocks."""
        blocks: list[dict[str, Any]] = []
        for part in as_parts(user_content):
            if isinstance(part, ImagePart):
                blocks.append(
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": part.mime_type,
                            "data": part.to_base64(),
                        },
                    }
                )
            else:
                blocks.append({"type": "text", "text": part.text})
        return blocks

    async def generate(
        self,
        system_instruction: str,
        user_content: UserContent,
        *,
        as_json: bool = False,
        temperature: float | None = None,
    ) -> str:
        """
        Generate a response with Claude.

        Args:
            system_instruction: System prompt for the request.
            user_content: Prompt text, or text and image parts.
            as_json: Ask for a bare JSON object.
            temperature: Optional sampling temperature override.

        Returns:
            The generated text.
        """
        client = self._get_client()

        system = system_instruction + JSON_INSTRUCTION if as_json else system_instruction

        logger.debug(
            "anthropic_generate_request: model=%s, max_tokens=%d, as_json=%s",
            self._model,
            self._max_tokens,
            as_json,
        )

        kwargs: dict = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "temperature": temperature if temperature is not None else self._temperature,
            "messages": [{"role": "user", "content": self._build_content(user_content)}],
        }

        if system:
            kwargs["system"] = system

        response = await client.messages.create(**kwargs)

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )

        logger.debug(
            "anthropic_generate_response: input_tokens=%d, output_tokens=%d",
            response.usage.input_tokens,
            response.usage.output_tokens,
        )

        return text
