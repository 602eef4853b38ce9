"""Google Gemini generator."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from e2e_triage.llm.config import PROVIDER_CONFIGS
from e2e_triage.llm.content import ImagePart, as_parts

if TYPE_CHECKING:
    from google.genai import Client

    from e2e_triage.llm.content import UserContent

logger = logging.getLogger(__name__)


class GeminiProvider:
    """Generator backed by Google's Gemini models."""

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> None:
        """
        Initialize Gemini provider.

        Args:
            api_key: Google API key.
            model: Model name to use. Defaults to config default.
            max_tokens: Maximum tokens in response. Defaults to config default.
            temperature: Temperature for sampling. Defaults to config default.
        """
        config = PROVIDER_CONFIGS["google"]
        self._api_key = api_key
        self._model = model or config.default_model
        self._max_tokens = max_tokens if max_tokens is not None else config.max_tokens
        self._temperature = temperature if temperature is not None else config.temperature
        self._client: Client | None = None

    @property
    def name(self) -> str:
        """Return the provider name."""
        return "google"

    @property
    def model(self) -> str:
        """Return the model name."""
        return self._model

    def _get_client(self) -> Client:
        """Get or create Gemini client."""
        if self._client is None:
            from google import genai

            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def _get_config(self, system_instruction: str, as_json: bool, temperature: float | None) -> Any:
        """Create generate content config."""
        from google.genai import types

        return types.GenerateContentConfig(
            system_instruction=system_instruction or None,
            max_output_tokens=self._max_tokens,
            temperature=temperature if temperature is not None else self._temperature,
            response_mime_type="application/json" if as_json else None,
        )

    def _build_contents(self, user_content: UserContent) -> list[Any]:
        """Build multimodal content: text prompts plus inline images."""
        from google.genai import types

        contents: list[Any] = []
        for part in as_parts(user_content):
            if isinstance(part, ImagePart):
                contents.append(types.Part.from_bytes(data=part.data, mime_type=part.mime_type))
            else:
                contents.append(part.text)
        return contents

    def _extract_token_counts(self, response: Any) -> tuple[int, int]:
        """Extract token counts from response metadata."""
        input_tokens = 0
        output_tokens = 0
        if hasattr(response, "usage_metadata") and response.usage_metadata:
            input_tokens = getattr(response.usage_metadata, "prompt_token_count", 0) or 0
            output_tokens = getattr(response.usage_metadata, "candidates_token_count", 0) or 0
        return input_tokens, output_tokens

    async def generate(
        self,
        system_instruction: str,
        user_content: UserContent,
        *,
        as_json: bool = False,
        temperature: float | None = None,
    ) -> str:
        """
        Generate a response with Gemini.

        Args:
            system_instruction: System prompt for the request.
            user_content: Prompt text, or text and image parts.
            as_json: Request an application/json response.
            temperature: Optional sampling temperature override.

        Returns:
            The generated text.
        """
        client = self._get_client()
        config = self._get_config(system_instruction, as_json, temperature)

        logger.debug(
            "gemini_generate_request: model=%s, max_tokens=%d, as_json=%s",
            self._model,
            self._max_tokens,
            as_json,
        )

        response = await client.aio.models.generate_content(
            model=self._model,
            contents=self._build_contents(user_content),
            config=config,
        )

        input_tokens, output_tokens = self._extract_token_counts(response)
        logger.debug(
            "gemini_generate_response: input_tokens=%d, output_tokens=%d",
            input_tokens,
            output_tokens,
        )

        return response.text or ""
