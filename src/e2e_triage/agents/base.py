"""Stage execution harness.

A stage is one step of the repair pipeline. Prompted stages make exactly
one generator call per execution, bounded by a per-stage timeout, and turn
every failure into an unsuccessful :class:`StageResult` instead of raising.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from e2e_triage.core.exceptions import ResponseParseError
from e2e_triage.core.models import FailureContext, StageResult
from e2e_triage.core.parsing import parse_json_payload
from e2e_triage.llm.content import ImagePart, TextPart, UserContent
from e2e_triage.utils.logging import get_logger

if TYPE_CHECKING:
    from e2e_triage.llm.providers.base import Generator

logger = get_logger(__name__)

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT", bound=BaseModel)


@dataclass(frozen=True)
class StageConfig:
    """Per-stage execution settings.

    Attributes:
        timeout: Seconds allowed for one execution.
        temperature: Sampling temperature passed to the generator.
        verbose: Log prompt previews at debug level.
    """

    timeout: float = 60.0
    temperature: float = 0.3
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class Stage(ABC, Generic[InputT, OutputT]):
    """A named pipeline step with typed input and output."""

    name: ClassVar[str]

    def __init__(self, config: StageConfig | None = None):
        self.config = config or StageConfig()

    @abstractmethod
    async def execute(self, stage_input: InputT, context: FailureContext) -> StageResult[OutputT]:
        """Run the stage. Never raises except on task cancellation."""


class PromptedStage(Stage[InputT, OutputT]):
    """Stage that delegates its judgment to a generator.

    Subclasses provide the system instruction, the user prompt and the
    pydantic model the JSON response is validated against.
    """

    output_model: ClassVar[type[BaseModel]]

    def __init__(self, generator: Generator, config: StageConfig | None = None):
        super().__init__(config)
        self.generator = generator

    @abstractmethod
    def system_prompt(self) -> str:
        """Static instruction describing the stage's role and output schema."""

    @abstractmethod
    def build_user_prompt(self, stage_input: InputT, context: FailureContext) -> str:
        """Render the request for one execution."""

    def parse_response(self, response: str) -> OutputT | None:
        """
        Decode and validate a generated response.

        Args:
            response: Raw generated text.

        Returns:
            Validated output, or None if the text holds no valid payload.
        """
        payload = parse_json_payload(response)
        if payload is None:
            logger.warning("stage_response_not_json", stage=self.name)
            return None
        try:
            return self.output_model.model_validate(payload)  # type: ignore[return-value]
        except ValidationError as e:
            logger.warning(
                "stage_response_invalid",
                stage=self.name,
                errors=e.error_count(),
                detail=str(e).splitlines()[1:3],
            )
            return None

    def finalize(self, output: OutputT, stage_input: InputT, context: FailureContext) -> OutputT:
        """Hook for post-processing a parsed output with local knowledge."""
        return output

    def build_user_content(self, prompt: str, context: FailureContext) -> UserContent:
        """Attach every screenshot that carries image data."""
        images = [
            ImagePart(data=shot.image_data, mime_type=shot.mime_type)
            for shot in context.screenshots
            if shot.image_data
        ]
        if not images:
            return prompt
        return [TextPart(prompt), *images]

    async def execute(self, stage_input: InputT, context: FailureContext) -> StageResult[OutputT]:
        started = time.monotonic()
        calls = 0
        logger.info("stage_started", stage=self.name)

        async def run() -> OutputT:
            nonlocal calls
            system = self.system_prompt()
            prompt = self.build_user_prompt(stage_input, context)
            if self.config.verbose:
                logger.debug(
                    "stage_prompt",
                    stage=self.name,
                    system_preview=system[:200],
                    prompt_preview=prompt[:200],
                )

            calls += 1
            response = await self.generator.generate(
                system,
                self.build_user_content(prompt, context),
                as_json=True,
                temperature=self.config.temperature,
            )

            parsed = self.parse_response(response)
            if parsed is None:
                raise ResponseParseError(self.name)
            return self.finalize(parsed, stage_input, context)

        try:
            data = await asyncio.wait_for(run(), timeout=self.config.timeout)
        except TimeoutError:
            error = f"{self.name} timed out after {self.config.timeout:g}s"
        except Exception as e:
            error = str(e) or type(e).__name__
        else:
            elapsed = _elapsed_ms(started)
            logger.info("stage_completed", stage=self.name, execution_time_ms=elapsed)
            return StageResult(
                success=True,
                data=data,
                execution_time_ms=elapsed,
                generator_call_count=calls,
            )

        elapsed = _elapsed_ms(started)
        logger.warning("stage_failed", stage=self.name, error=error, execution_time_ms=elapsed)
        return StageResult(
            success=False,
            error=error,
            execution_time_ms=elapsed,
            generator_call_count=calls,
        )
