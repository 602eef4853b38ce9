"""Pydantic schemas for stage outputs.

Generated payloads use camelCase keys; models accept those aliases as well
as the snake_case field names. Required fields are never defaulted: a
payload missing one fails validation and the stage reports a parse failure.
Optional fields fall back to neutral values, and every closed enum is read
through a total coercion function with an explicit fallback member.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Annotated, Any, TypeVar

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

E = TypeVar("E", bound=Enum)


# ============================================================================
# Closed enums
# ============================================================================


class RootCauseCategory(str, Enum):
    """Primary reason a test failed."""

    SELECTOR_MISMATCH = "SELECTOR_MISMATCH"
    TIMING_ISSUE = "TIMING_ISSUE"
    STATE_DEPENDENCY = "STATE_DEPENDENCY"
    NETWORK_ISSUE = "NETWORK_ISSUE"
    ELEMENT_VISIBILITY = "ELEMENT_VISIBILITY"
    ASSERTION_MISMATCH = "ASSERTION_MISMATCH"
    DATA_DEPENDENCY = "DATA_DEPENDENCY"
    ENVIRONMENT_ISSUE = "ENVIRONMENT_ISSUE"
    UNKNOWN = "UNKNOWN"


class IssueLocation(str, Enum):
    """Where the defect most likely lives."""

    TEST_CODE = "TEST_CODE"
    APP_CODE = "APP_CODE"
    BOTH = "BOTH"
    UNKNOWN = "UNKNOWN"


class FindingType(str, Enum):
    SELECTOR_CHANGE = "SELECTOR_CHANGE"
    MISSING_ELEMENT = "MISSING_ELEMENT"
    TIMING_GAP = "TIMING_GAP"
    STATE_ISSUE = "STATE_ISSUE"
    CODE_CHANGE = "CODE_CHANGE"
    OTHER = "OTHER"


class FindingSeverity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ChangeType(str, Enum):
    SELECTOR_UPDATE = "SELECTOR_UPDATE"
    WAIT_ADDITION = "WAIT_ADDITION"
    LOGIC_CHANGE = "LOGIC_CHANGE"
    ASSERTION_UPDATE = "ASSERTION_UPDATE"
    OTHER = "OTHER"


class ReviewSeverity(str, Enum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    SUGGESTION = "SUGGESTION"


def coerce_enum(enum_cls: type[E], value: Any, fallback: E) -> E:
    """
    Map a raw value onto a closed enum.

    Matching is case-insensitive on the member value. Anything else,
    including None and non-strings, maps to ``fallback``.

    Args:
        enum_cls: Target enum class.
        value: Raw value from the generated payload.
        fallback: Member returned for unrecognized input.

    Returns:
        A member of ``enum_cls``.
    """
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return fallback
    try:
        return enum_cls(value.strip().upper())
    except ValueError:
        return fallback


def coerce_root_cause(value: Any) -> RootCauseCategory:
    """Map a raw category to RootCauseCategory, UNKNOWN when unrecognized."""
    return coerce_enum(RootCauseCategory, value, RootCauseCategory.UNKNOWN)


# ============================================================================
# Field coercions
# ============================================================================


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item if isinstance(item, str) else str(item) for item in value if item is not None]


def _as_dict_list(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _as_optional_dict(value: Any) -> dict[str, Any] | None:
    return value if isinstance(value, dict) else None


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, int | float)
        and not isinstance(value, bool)
        and not (isinstance(value, float) and math.isnan(value))
    )


def _clamp_confidence(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def _required_confidence(value: Any) -> float:
    if not _is_number(value):
        raise ValueError("confidence must be a number")
    return _clamp_confidence(value)


def _optional_confidence(value: Any) -> float:
    return _clamp_confidence(value) if _is_number(value) else 50.0


def _as_int(value: Any) -> int:
    if _is_number(value) and math.isfinite(value):
        return int(value)
    return 0


def _as_optional_int(value: Any) -> int | None:
    return int(value) if _is_number(value) and math.isfinite(value) else None


def _require_text(value: str) -> str:
    if not value:
        raise ValueError("field must not be empty")
    return value


Text = Annotated[str, BeforeValidator(_as_text)]
RequiredText = Annotated[str, BeforeValidator(_as_text), AfterValidator(_require_text)]
StrList = Annotated[list[str], BeforeValidator(_as_str_list)]
Flag = Annotated[bool, BeforeValidator(bool)]
Confidence = Annotated[float, BeforeValidator(_optional_confidence)]


class _Schema(BaseModel):
    """Base for stage output models."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ============================================================================
# Analysis
# ============================================================================


class PatternFlags(_Schema):
    """Fixed set of failure patterns the analysis looks for."""

    has_timeout: Flag = False
    has_visibility_issue: Flag = False
    has_network_call: Flag = False
    has_state_assertion: Flag = False
    has_dynamic_content: Flag = False
    has_responsive_issue: Flag = False


def _require_category(value: Any) -> RootCauseCategory:
    if value is None or value == "":
        raise ValueError("rootCauseCategory is required")
    return coerce_root_cause(value)


def _as_categories(value: Any) -> list[RootCauseCategory]:
    if not isinstance(value, list):
        return []
    return [coerce_root_cause(item) for item in value]


class AnalysisOutput(_Schema):
    """Root cause classification of a failure."""

    root_cause_category: Annotated[RootCauseCategory, BeforeValidator(_require_category)]
    confidence: Annotated[float, BeforeValidator(_required_confidence)]
    contributing_factors: Annotated[
        list[RootCauseCategory], BeforeValidator(_as_categories)
    ] = Field(default_factory=list)
    explanation: Text = ""
    selectors: StrList = Field(default_factory=list)
    elements: StrList = Field(default_factory=list)
    issue_location: Annotated[
        IssueLocation,
        BeforeValidator(lambda v: coerce_enum(IssueLocation, v, IssueLocation.UNKNOWN)),
    ] = IssueLocation.UNKNOWN
    patterns: Annotated[PatternFlags, BeforeValidator(lambda v: v if isinstance(v, dict) else {})] = (
        Field(default_factory=PatternFlags)
    )
    suggested_approach: Text = ""


# ============================================================================
# Code reading (built locally, never parsed from generated text)
# ============================================================================


class RelatedFile(_Schema):
    path: str
    content: str
    relevance: str


class CustomCommand(_Schema):
    name: str
    file: str
    definition: str | None = None


class PageObject(_Schema):
    name: str
    file: str
    selectors: list[str] = Field(default_factory=list)


class CodeReadingOutput(_Schema):
    """Source context gathered for the reasoning stages."""

    test_file_content: str
    related_files: list[RelatedFile] = Field(default_factory=list)
    custom_commands: list[CustomCommand] = Field(default_factory=list)
    page_objects: list[PageObject] = Field(default_factory=list)
    summary: str = ""


# ============================================================================
# Investigation
# ============================================================================


class FindingLocation(_Schema):
    file: Text = ""
    line: Annotated[int | None, BeforeValidator(_as_optional_int)] = None
    code: str | None = None


class InvestigationFinding(_Schema):
    """One evidenced observation about the failure."""

    type: Annotated[
        FindingType, BeforeValidator(lambda v: coerce_enum(FindingType, v, FindingType.OTHER))
    ] = FindingType.OTHER
    severity: Annotated[
        FindingSeverity,
        BeforeValidator(lambda v: coerce_enum(FindingSeverity, v, FindingSeverity.MEDIUM)),
    ] = FindingSeverity.MEDIUM
    description: Text = ""
    evidence: StrList = Field(default_factory=list)
    location: Annotated[FindingLocation | None, BeforeValidator(_as_optional_dict)] = None
    relation_to_error: Text = ""


class SelectorUpdate(_Schema):
    current: Text = ""
    reason: Text = ""
    suggested_replacement: str | None = None


class InvestigationOutput(_Schema):
    """Findings from cross-referencing the analysis with real source."""

    findings: Annotated[list[InvestigationFinding], BeforeValidator(_as_dict_list)] = Field(
        default_factory=list
    )
    primary_finding: Annotated[InvestigationFinding | None, BeforeValidator(_as_optional_dict)] = (
        None
    )
    is_test_code_fixable: Annotated[bool, BeforeValidator(lambda v: v is not False)] = True
    recommended_approach: Text = ""
    selectors_to_update: Annotated[list[SelectorUpdate], BeforeValidator(_as_dict_list)] = Field(
        default_factory=list
    )
    confidence: Confidence = 50.0

    @model_validator(mode="after")
    def _require_findings(self) -> InvestigationOutput:
        if not self.findings and self.primary_finding is None:
            raise ValueError("investigation produced no findings")
        if self.primary_finding is None:
            self.primary_finding = self.findings[0]
        return self


# ============================================================================
# Fix generation
# ============================================================================


class CodeChange(_Schema):
    """An exact find/replace edit.

    ``old_code`` must appear verbatim in ``file``; the review stage checks
    that, not this model.
    """

    file: RequiredText
    old_code: RequiredText
    new_code: RequiredText
    line: Annotated[int, BeforeValidator(_as_int)] = 0
    justification: Text = ""
    change_type: Annotated[
        ChangeType, BeforeValidator(lambda v: coerce_enum(ChangeType, v, ChangeType.OTHER))
    ] = ChangeType.OTHER


class FixGenerationOutput(_Schema):
    """Candidate fix proposed by the generator."""

    changes: Annotated[list[CodeChange], BeforeValidator(lambda v: v if isinstance(v, list) else [])] = (
        Field(min_length=1)
    )
    confidence: Confidence = 50.0
    summary: Text = ""
    reasoning: Text = ""
    evidence: StrList = Field(default_factory=list)
    risks: StrList = Field(default_factory=list)
    alternatives: StrList = Field(default_factory=list)


# ============================================================================
# Review
# ============================================================================


class ReviewIssue(_Schema):
    """A problem the reviewer found with one change."""

    severity: Annotated[
        ReviewSeverity,
        BeforeValidator(lambda v: coerce_enum(ReviewSeverity, v, ReviewSeverity.WARNING)),
    ] = ReviewSeverity.WARNING
    change_index: Annotated[int, BeforeValidator(_as_int)] = 0
    description: Text = ""
    suggestion: str | None = None

    @property
    def is_critical(self) -> bool:
        return self.severity is ReviewSeverity.CRITICAL

    def as_feedback(self) -> str:
        """Render as a feedback line for the next fix attempt."""
        return f"[{self.severity.value}] {self.description}"


def decide_approval(issues: list[ReviewIssue], claimed_approved: Any = True) -> bool:
    """
    Decide whether a reviewed fix is approved.

    A CRITICAL issue always rejects, whatever the reviewer claimed. Without
    one, only an explicit ``false`` claim rejects.

    Args:
        issues: Issues found for the change set.
        claimed_approved: The reviewer's own approval value.

    Returns:
        True if the fix is approved.
    """
    has_critical = any(issue.is_critical for issue in issues)
    return not has_critical and claimed_approved is not False


class ReviewOutput(_Schema):
    """Independent critique of a candidate fix."""

    approved: Any = True
    issues: Annotated[list[ReviewIssue], BeforeValidator(_as_dict_list)] = Field(
        default_factory=list
    )
    assessment: Text = ""
    fix_confidence: Confidence = 50.0
    improvements: StrList = Field(default_factory=list)

    @model_validator(mode="after")
    def _apply_decision_rule(self) -> ReviewOutput:
        self.approved = decide_approval(self.issues, self.approved)
        return self

    @property
    def critical_issues(self) -> list[ReviewIssue]:
        return [issue for issue in self.issues if issue.is_critical]

    def with_issues(self, extra: list[ReviewIssue]) -> ReviewOutput:
        """Return a copy with extra issues merged and the decision re-applied."""
        if not extra:
            return self
        issues = [*self.issues, *extra]
        return self.model_copy(
            update={"issues": issues, "approved": decide_approval(issues, self.approved)}
        )

    def feedback(self) -> str:
        """Newline-joined feedback lines, one per issue."""
        return "\n".join(issue.as_feedback() for issue in self.issues)
