"""Core data model for the repair pipeline.

`FailureContext` describes one failing end-to-end test as handed over by the
upstream log extractor. The remaining dataclasses describe what a pipeline
run produces: per-stage results, the final fix and the overall outcome.

Stage outputs parsed from generated text live in
:mod:`e2e_triage.agents.schemas`; everything here is plain data.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from e2e_triage.agents.schemas import (
        AnalysisOutput,
        CodeReadingOutput,
        FixGenerationOutput,
        InvestigationOutput,
        ReviewOutput,
    )

T = TypeVar("T")


class Framework(Enum):
    """End-to-end test frameworks the pipeline knows how to talk about."""

    CYPRESS = "cypress"
    WEBDRIVERIO = "webdriverio"
    PLAYWRIGHT = "playwright"
    UNKNOWN = "unknown"

    @classmethod
    def from_value(cls, value: str | Framework | None) -> Framework:
        """Map a raw framework tag to a member, UNKNOWN when unrecognized."""
        if isinstance(value, Framework):
            return value
        if not value:
            return cls.UNKNOWN
        normalized = value.strip().lower()
        if normalized in ("wdio", "webdriver.io"):
            return cls.WEBDRIVERIO
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN

    @property
    def label(self) -> str:
        """Human readable name used in prompts."""
        return {
            Framework.CYPRESS: "Cypress",
            Framework.WEBDRIVERIO: "WebDriverIO",
            Framework.PLAYWRIGHT: "Playwright",
        }.get(self, "unknown")

    @property
    def command_prefix(self) -> str:
        """Object that custom commands hang off in test code."""
        return "browser" if self is Framework.WEBDRIVERIO else "cy"


@dataclass
class Screenshot:
    """Screenshot captured when the test failed."""

    name: str
    image_data: bytes | None = None
    mime_type: str = "image/png"

    def to_base64(self) -> str | None:
        """Convert image data to base64 string."""
        if self.image_data is None:
            return None
        return base64.b64encode(self.image_data).decode("utf-8")

    @classmethod
    def from_base64(
        cls, name: str, data: str | None, mime_type: str = "image/png"
    ) -> Screenshot:
        """Build a screenshot from base64 text, dropping undecodable data."""
        image_data = None
        if data:
            try:
                image_data = base64.b64decode(data, validate=True)
            except (binascii.Error, ValueError):
                image_data = None
        return cls(name=name, image_data=image_data, mime_type=mime_type)


@dataclass
class ChangedFile:
    """A file touched by the change under test."""

    filename: str
    status: str = "modified"
    patch: str | None = None


@dataclass
class DiffSummary:
    """Files changed by the pull request or commit that ran the tests."""

    files: list[ChangedFile] = field(default_factory=list)


@dataclass
class FailureContext:
    """Everything known about one failing test.

    The descriptive fields are set by the caller and never changed by the
    pipeline. ``source_file_content`` and ``related_files`` are filled in by
    the code reading stage for the stages that follow it.
    """

    error_message: str
    test_file: str
    test_name: str
    error_type: str | None = None
    error_selector: str | None = None
    stack_trace: str | None = None
    screenshots: list[Screenshot] = field(default_factory=list)
    logs: list[str] = field(default_factory=list)
    diff: DiffSummary | None = None
    framework: Framework = Framework.UNKNOWN
    source_file_content: str | None = None
    related_files: dict[str, str] = field(default_factory=dict)

    @property
    def has_screenshots(self) -> bool:
        """Check if any screenshot was supplied."""
        return bool(self.screenshots)

    @property
    def changed_files(self) -> list[ChangedFile]:
        """Changed files from the diff, empty without one."""
        return self.diff.files if self.diff else []

    def known_file_content(self, path: str) -> str | None:
        """Return fetched content for ``path`` if the pipeline has it."""
        if path == self.test_file and self.source_file_content is not None:
            return self.source_file_content
        return self.related_files.get(path)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FailureContext:
        """Build a context from an error record (camelCase or snake_case keys)."""

        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return default

        screenshots = [
            Screenshot.from_base64(
                name=item.get("name", f"screenshot-{index}"),
                data=item.get("base64Data") or item.get("base64_data"),
                mime_type=item.get("mimeType") or item.get("mime_type") or "image/png",
            )
            for index, item in enumerate(pick("screenshots", default=[]))
        ]

        diff = None
        diff_data = pick("prDiff", "diff")
        if diff_data:
            diff = DiffSummary(
                files=[
                    ChangedFile(
                        filename=item.get("filename", ""),
                        status=item.get("status", "modified"),
                        patch=item.get("patch"),
                    )
                    for item in diff_data.get("files", [])
                ]
            )

        return cls(
            error_message=pick("errorMessage", "error_message", "message", default=""),
            test_file=pick("testFile", "test_file", "fileName", default=""),
            test_name=pick("testName", "test_name", default=""),
            error_type=pick("errorType", "error_type"),
            error_selector=pick("errorSelector", "error_selector"),
            stack_trace=pick("stackTrace", "stack_trace"),
            screenshots=screenshots,
            logs=list(pick("logs", default=[])),
            diff=diff,
            framework=Framework.from_value(pick("framework")),
            source_file_content=pick("sourceFileContent", "source_file_content"),
        )


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Outcome of one stage invocation."""

    success: bool
    data: T | None = None
    error: str | None = None
    execution_time_ms: int = 0
    generator_call_count: int = 0


@dataclass
class ProposedChange:
    """A single find/replace edit in a fix."""

    file: str
    line: int
    old_code: str
    new_code: str
    justification: str = ""


@dataclass
class Fix:
    """Final validated set of code edits plus supporting rationale."""

    confidence: float
    summary: str
    proposed_changes: list[ProposedChange] = field(default_factory=list)
    evidence: list[str] = field(default_factory=list)
    reasoning: str = ""

    @classmethod
    def from_generation(cls, output: FixGenerationOutput) -> Fix:
        """Convert a fix generation output into the final fix format."""
        return cls(
            confidence=output.confidence,
            summary=output.summary,
            proposed_changes=[
                ProposedChange(
                    file=change.file,
                    line=change.line,
                    old_code=change.old_code,
                    new_code=change.new_code,
                    justification=change.justification,
                )
                for change in output.changes
            ],
            evidence=list(output.evidence),
            reasoning=output.reasoning,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "confidence": self.confidence,
            "summary": self.summary,
            "proposed_changes": [
                {
                    "file": change.file,
                    "line": change.line,
                    "old_code": change.old_code,
                    "new_code": change.new_code,
                    "justification": change.justification,
                }
                for change in self.proposed_changes
            ],
            "evidence": self.evidence,
            "reasoning": self.reasoning,
        }


class Approach(Enum):
    """Strategy label attached to a pipeline outcome."""

    AGENTIC = "agentic"
    SINGLE_SHOT = "single-shot"
    FAILED = "failed"


@dataclass
class StageResults:
    """Latest result of each stage, kept for diagnostics."""

    analysis: StageResult[AnalysisOutput] | None = None
    code_reading: StageResult[CodeReadingOutput] | None = None
    investigation: StageResult[InvestigationOutput] | None = None
    fix_generation: StageResult[FixGenerationOutput] | None = None
    review: StageResult[ReviewOutput] | None = None
    fix_attempts: list[StageResult[FixGenerationOutput]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Summarize each stage as success/error/timing."""
        summary: dict[str, Any] = {}
        for name in ("analysis", "code_reading", "investigation", "fix_generation", "review"):
            result = getattr(self, name)
            if result is None:
                continue
            summary[name] = {
                "success": result.success,
                "error": result.error,
                "execution_time_ms": result.execution_time_ms,
                "generator_call_count": result.generator_call_count,
            }
        summary["fix_attempts"] = len(self.fix_attempts)
        return summary


@dataclass
class PipelineResult:
    """Outcome of one orchestrated repair run."""

    success: bool
    approach: Approach
    total_time_ms: int
    iterations: int
    fix: Fix | None = None
    error: str | None = None
    accepted_without_review: bool = False
    agent_results: StageResults = field(default_factory=StageResults)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "success": self.success,
            "approach": self.approach.value,
            "total_time_ms": self.total_time_ms,
            "iterations": self.iterations,
            "fix": self.fix.to_dict() if self.fix else None,
            "error": self.error,
            "accepted_without_review": self.accepted_without_review,
            "agent_results": self.agent_results.to_dict(),
        }
