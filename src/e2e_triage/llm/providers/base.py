"""Base protocol for text generators."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from e2e_triage.llm.content import UserContent


@runtime_checkable
class Generator(Protocol):
    """Protocol for the text/vision-to-text capability stages delegate to.

    Implementations make exactly one request per call: no retries and no
    timeouts. Failures surface as exceptions.
    """

    @property
    def name(self) -> str:
        """Return the generator name (e.g., 'anthropic', 'openai', 'google')."""
        ...

    async def generate(
        self,
        system_instruction: str,
        user_content: UserContent,
        *,
        as_json: bool = False,
        temperature: float | None = None,
    ) -> str:
        """
        Generate text for a system instruction and user content.

        Args:
            system_instruction: Static instruction describing the task.
            user_content: Prompt text, or text and image parts.
            as_json: Ask the model for a JSON object response.
            temperature: Optional sampling temperature override.

        Returns:
            The generated text.
        """
        ...
