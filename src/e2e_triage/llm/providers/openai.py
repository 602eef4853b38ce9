"""OpenAI chat completions generator."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from e2e_triage.llm.config import PROVIDER_CONFIGS
from e2e_triage.llm.content import ImagePart, as_parts

if TYPE_CHECKING:
    from openai import AsyncOpenAI

    from e2e_triage.llm.content import UserContent

logger = logging.getLogger(__name__)


class OpenAIProvider:
    """Generator backed by OpenAI's GPT models."""

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> None:
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key.
            model: Model name to use. Defaults to config default.
            max_tokens: Maximum tokens in response. Defaults to config default.
            temperature: Temperature for sampling. Defaults to config default.
        """
        config = PROVIDER_CONFIGS["openai"]
        self._api_key = api_key
        self._model = model or config.default_model
        self._max_tokens = max_tokens if max_tokens is not None else config.max_tokens
        self._temperature = temperature if temperature is not None else config.temperature
        self._client: AsyncOpenAI | None = None

    @property
    def name(self) -> str:
        """Return the provider name."""
        return "openai"

    @property
    def model(self) -> str:
        """Return the model name."""
        return self._model

    def _get_client(self) -> AsyncOpenAI:
        """Get or create asynchronous OpenAI client."""
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    def _build_messages(
        self, system_instruction: str, user_content: UserContent
    ) -> list[dict[str, Any]]:
        """Build messages list for OpenAI API."""
        messages: list[dict[str, Any]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})

        if isinstance(user_content, str):
            messages.append({"role": "user", "content": user_content})
            return messages

        content: list[dict[str, Any]] = []
        for part in as_parts(user_content):
            if isinstance(part, ImagePart):
                content.append({"type": "image_url", "image_url": {"url": part.to_data_url()}})
            else:
                content.append({"type": "text", "text": part.text})
        messages.append({"role": "user", "content": content})
        return messages

    async def generate(
        self,
        system_instruction: str,
        user_content: UserContent,
        *,
        as_json: bool = False,
        temperature: float | None = None,
    ) -> str:
        """
        Generate a response with OpenAI.

        Args:
            system_instruction: System prompt for the request.
            user_content: Prompt text, or text and image parts.
            as_json: Request a JSON object response format.
            temperature: Optional sampling temperature override.

        Returns:
            The generated text.
        """
        client = self._get_client()

        logger.debug(
            "openai_generate_request: model=%s, max_tokens=%d, as_json=%s",
            self._model,
            self._max_tokens,
            as_json,
        )

        kwargs: dict = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "temperature": temperature if temperature is not None else self._temperature,
            "messages": self._build_messages(system_instruction, user_content),
        }

        if as_json:
            kwargs["response_format"] = {"type": "json_object"}

        response = await client.chat.completions.create(**kwargs)

        logger.debug(
            "openai_generate_response: input_tokens=%d, output_tokens=%d",
            response.usage.prompt_tokens if response.usage else 0,
            response.usage.completion_tokens if response.usage else 0,
        )

        return response.choices[0].message.content or ""
