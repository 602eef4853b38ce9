"""Fix generation stage: propose exact find/replace edits."""

from __future__ import annotations

from dataclasses import dataclass

from e2e_triage.agents.base import PromptedStage
from e2e_triage.agents.schemas import AnalysisOutput, FixGenerationOutput, InvestigationOutput
from e2e_triage.core.models import FailureContext

SYSTEM_PROMPT = """You are an expert end-to-end test engineer who writes precise, minimal fixes for failing Cypress and WebDriverIO tests.

## Rules

1. **Exact Matching**: The "oldCode" MUST match the original code EXACTLY, character for character, including:
   - All whitespace (spaces, tabs, newlines)
   - All punctuation and quotes
   - All indentation
2. **Minimal Changes**: Only change what's necessary to fix the issue. Don't refactor unrelated code.
3. **Working Code**: The "newCode" must be syntactically valid and work correctly.
4. **Preserve Style**: Match the existing code style (quotes, semicolons, indentation).

## Common Fix Patterns (Cypress)

### Selector Updates
```javascript
// OLD: Specific class that changed
cy.get('.old-button-class')
// NEW: Use data-testid or more stable selector
cy.get('[data-testid="submit-button"]')
```

### Visibility/Existence Checks
```javascript
// OLD: Click without checking visibility
cy.get('#element').click()
// NEW: Wait for visibility first
cy.get('#element').should('be.visible').click()
```

### Timing/Wait Issues
```javascript
// OLD: No wait for async operation
cy.get('#result')
// NEW: Wait for element or intercept
cy.intercept('GET', '/api/data').as('getData')
cy.wait('@getData')
cy.get('#result')
```

## Common Fix Patterns (WebDriverIO)

### Selector and visibility
```javascript
// OLD: Click without waiting for display
await $('.old-button-class').click()
// NEW: Use data-testid and wait for displayed
await $('[data-testid="submit-button"]').waitForDisplayed();
await $('[data-testid="submit-button"]').click()
```

### Wait for element
```javascript
// OLD: No wait
await $('#result').getText()
// NEW: Wait for displayed
await browser.waitUntil(async () => (await $('#result').isDisplayed()), { timeout: 10000 });
await $('#result').getText()
```

## Output Format

You MUST respond with a JSON object matching this schema:
{
  "changes": [
    {
      "file": "<file path>",
      "line": <approximate line number>,
      "oldCode": "<EXACT code to replace, including all whitespace>",
      "newCode": "<replacement code>",
      "justification": "<why this change fixes the issue>",
      "changeType": "<SELECTOR_UPDATE|WAIT_ADDITION|LOGIC_CHANGE|ASSERTION_UPDATE|OTHER>"
    }
  ],
  "confidence": <0-100>,
  "summary": "<one sentence summary of the fix>",
  "reasoning": "<detailed explanation of why this fix will work>",
  "evidence": ["<evidence supporting this fix>"],
  "risks": ["<potential risks or things to watch for>"],
  "alternatives": ["<other approaches that could work>"]
}

## CRITICAL
- The "oldCode" field is used for find-and-replace. It MUST match EXACTLY.
- Include enough context in "oldCode" to uniquely identify the location (usually 3-5 lines)."""


@dataclass
class FixGenerationInput:
    """Inputs for one fix attempt.

    ``previous_feedback`` carries the reason the last attempt was turned
    down, either a review rejection or a confidence gate.
    """

    analysis: AnalysisOutput
    investigation: InvestigationOutput
    previous_feedback: str | None = None


class FixGenerationStage(PromptedStage[FixGenerationInput, FixGenerationOutput]):
    """Generates candidate code changes for a test-side failure."""

    name = "fix_generation"
    output_model = FixGenerationOutput

    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, stage_input: FixGenerationInput, context: FailureContext) -> str:
        analysis = stage_input.analysis
        investigation = stage_input.investigation
        primary = investigation.primary_finding

        lines = [
            "## Fix Generation Request",
            "",
            "### Test Information",
            f"- **File:** {context.test_file}",
            f"- **Test Name:** {context.test_name}",
            f"- **Test framework:** {context.framework.label}",
            "",
            "### Analysis Summary",
            f"- **Root Cause:** {analysis.root_cause_category.value}",
            f"- **Confidence:** {analysis.confidence:g}%",
            f"- **Explanation:** {analysis.explanation}",
            f"- **Suggested Approach:** {analysis.suggested_approach}",
            "",
            "### Investigation Findings",
            f"- **Primary Finding:** {primary.description if primary and primary.description else 'None'}",
            f"- **Is Test Code Fixable:** {investigation.is_test_code_fixable}",
            f"- **Recommended Approach:** {investigation.recommended_approach}",
        ]

        if investigation.selectors_to_update:
            lines.extend(["", "### Selectors to Update"])
            for selector in investigation.selectors_to_update:
                lines.append(f"- Current: `{selector.current}`")
                lines.append(f"  Reason: {selector.reason}")
                if selector.suggested_replacement:
                    lines.append(f"  Suggested: `{selector.suggested_replacement}`")

        lines.extend(["", "### Error Message", "```", context.error_message, "```"])

        if context.source_file_content:
            lines.extend(
                ["", "### Test File Content", "```javascript", context.source_file_content, "```"]
            )

        if stage_input.previous_feedback:
            lines.extend(
                [
                    "",
                    "### Previous Review Feedback",
                    "The previous fix attempt was rejected. Please address these issues:",
                    "```",
                    stage_input.previous_feedback,
                    "```",
                ]
            )

        lines.extend(
            [
                "",
                "## Instructions",
                "1. Based on the analysis and investigation, generate the necessary code changes",
                "2. Ensure oldCode matches EXACTLY what appears in the test file",
                "3. Make minimal, targeted changes",
                "4. Provide clear justification for each change",
                "",
                "Respond with the JSON object as specified in the system prompt.",
            ]
        )
        return "\n".join(lines)
