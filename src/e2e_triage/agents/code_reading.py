"""Code reading stage: gather source context for a failing test.

This stage makes no generator call. It reads the test file, scans it for
imports, custom commands and page objects, and fetches the files those
point at through a :class:`SourceReader`. Anything that cannot be found is
skipped; only a missing test file fails the stage.
"""

from __future__ import annotations

import asyncio
import posixpath
import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from e2e_triage.agents.base import Stage, StageConfig
from e2e_triage.agents.schemas import CodeReadingOutput, CustomCommand, PageObject, RelatedFile
from e2e_triage.core.models import FailureContext, StageResult
from e2e_triage.utils.logging import get_logger

if TYPE_CHECKING:
    from e2e_triage.sources.base import SourceReader

logger = get_logger(__name__)

SUPPORT_FILE_PATHS = (
    "cypress/support/commands.js",
    "cypress/support/commands.ts",
    "cypress/support/e2e.js",
    "cypress/support/e2e.ts",
    "cypress/support/index.js",
    "cypress/support/index.ts",
    "test/helpers/index.ts",
    "test/helpers/index.js",
    "test/support/index.ts",
    "test/support/index.js",
    "wdio.conf.ts",
    "wdio.conf.js",
)

IMPORT_EXTENSIONS = ("", ".js", ".ts", ".jsx", ".tsx", "/index.js", "/index.ts")

PAGE_OBJECT_DIRS = (
    "cypress/page-objects",
    "cypress/pages",
    "test/pageobjects",
    "test/page-objects",
)

COMPONENT_FILE_RE = re.compile(r"\.(tsx?|jsx?|vue|svelte|css|scss|less)$")

MAX_DIFF_FILE_CHARS = 5000
DEFINITION_SCAN_CHARS = 2000
MAX_DEFINITION_CHARS = 500

CYPRESS_COMMANDS = frozenset(
    {
        "get", "find", "contains", "click", "type", "should", "wait", "visit",
        "request", "intercept", "wrap", "then", "its", "invoke", "log", "pause",
        "debug", "scrollTo", "scrollIntoView", "focus", "blur", "clear", "submit",
        "select", "check", "uncheck", "trigger", "readFile", "writeFile",
        "fixture", "task", "exec", "screenshot", "viewport", "clearCookies",
        "clearLocalStorage", "getCookies", "setCookie", "getCookie", "hash",
        "location", "url", "title", "document", "window", "root", "within", "as",
        "clock", "tick", "stub", "spy", "reload", "go", "session", "origin",
    }
)  # fmt: skip

WDIO_COMMANDS = frozenset(
    {
        "url", "getUrl", "getTitle", "pause", "execute", "executeAsync",
        "waitUntil", "keys", "saveScreenshot", "setWindowSize", "getWindowSize",
        "deleteCookies", "getCookies", "setCookies", "newWindow", "switchWindow",
        "switchToFrame", "switchToParentFrame", "debug", "reloadSession",
        "refresh", "back", "forward", "call", "mock", "emulate", "throttle",
        "action", "actions", "scroll", "getPageSource", "setTimeout", "$", "$$",
    }
)  # fmt: skip

ES_IMPORT_RE = re.compile(
    r"""import\s+(?:(?:\{[^}]+\}|\*\s+as\s+\w+|\w+)\s+from\s+)?['"]([^'"]+)['"]"""
)
REQUIRE_RE = re.compile(r"""require\s*\(\s*['"]([^'"]+)['"]\s*\)""")
COMMAND_CALL_RE = re.compile(r"\b(cy|browser)\.(\w+)\s*\(")
PAGE_OBJECT_RE = re.compile(r"\b(\w+(?:Page|PageObject|PO))\.")
COMMAND_DEFINITION_RE = re.compile(
    r"""(?:Cypress\.Commands\.add|browser\.addCommand)\s*\(\s*['"](\w+)['"]"""
)
CY_GET_SELECTOR_RE = re.compile(r"""cy\.get\s*\(\s*(['"`])(.+?)\1""")
WDIO_SELECTOR_RE = re.compile(r"""\$\$?\(\s*(['"`])(.+?)\1""")
TESTID_SELECTOR_RE = re.compile(r"""\[data-testid=["']([^"']+)["']\]""")


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def extract_imports(code: str) -> list[str]:
    """Module specifiers from ES imports and CommonJS requires."""
    specifiers = [m.group(1) for m in ES_IMPORT_RE.finditer(code)]
    specifiers.extend(m.group(1) for m in REQUIRE_RE.finditer(code))
    return specifiers


def extract_command_calls(code: str) -> list[str]:
    """Names of non-standard ``cy.x(`` / ``browser.x(`` calls, first seen first."""
    names = []
    for match in COMMAND_CALL_RE.finditer(code):
        receiver, name = match.groups()
        standard = CYPRESS_COMMANDS if receiver == "cy" else WDIO_COMMANDS
        if name not in standard:
            names.append(name)
    return _unique(names)


def extract_page_object_refs(code: str) -> list[str]:
    """Identifiers ending in Page, PageObject or PO that are dereferenced."""
    return _unique([m.group(1) for m in PAGE_OBJECT_RE.finditer(code)])


def extract_function_definition(code: str, start: int) -> str:
    """
    Excerpt a brace-balanced definition beginning at ``start``.

    Scans a bounded window for the brace that closes the first opened one.
    Returns an empty string when no block closes inside the window.
    """
    depth = 0
    started = False
    end = start
    for index in range(start, min(len(code), start + DEFINITION_SCAN_CHARS)):
        char = code[index]
        if char == "{":
            started = True
            depth += 1
        elif char == "}":
            depth -= 1
            if started and depth == 0:
                end = index + 1
                break
    return code[start : min(end, start + MAX_DEFINITION_CHARS)]


def extract_custom_commands(code: str, file: str) -> list[CustomCommand]:
    """Custom command registrations found in a support file."""
    return [
        CustomCommand(
            name=match.group(1),
            file=file,
            definition=extract_function_definition(code, match.start()) or None,
        )
        for match in COMMAND_DEFINITION_RE.finditer(code)
    ]


def extract_selectors(code: str) -> list[str]:
    """Selectors used in page object code."""
    selectors = [m.group(2) for m in CY_GET_SELECTOR_RE.finditer(code)]
    selectors.extend(m.group(2) for m in WDIO_SELECTOR_RE.finditer(code))
    selectors.extend(f'[data-testid="{m.group(1)}"]' for m in TESTID_SELECTOR_RE.finditer(code))
    return _unique(selectors)


def to_kebab_case(name: str) -> str:
    return re.sub(r"([a-z])([A-Z])", r"\1-\2", name).lower()


def page_object_candidates(name: str, test_file: str) -> list[str]:
    """Paths where a page object named ``name`` may live, in search order."""
    test_dir = posixpath.dirname(test_file)
    stem = to_kebab_case(name)
    roots = [
        posixpath.join(test_dir, "page-objects"),
        posixpath.join(test_dir, "pages"),
        *PAGE_OBJECT_DIRS,
    ]
    return _unique([posixpath.join(root, f"{stem}{ext}") for root in roots for ext in (".ts", ".js")])


def resolve_relative_import(test_file: str, specifier: str) -> str:
    """Resolve a relative specifier against the test file's directory."""
    return posixpath.normpath(posixpath.join(posixpath.dirname(test_file), specifier))


def build_summary(
    test_file_content: str,
    related_files: list[RelatedFile],
    custom_commands: list[CustomCommand],
    page_objects: list[PageObject],
) -> str:
    line_count = len(test_file_content.split("\n"))
    parts = [
        f"Test file: {line_count} lines",
        f"Related files found: {len(related_files)}",
    ]
    if custom_commands:
        parts.append(f"Custom commands: {', '.join(c.name for c in custom_commands)}")
    if page_objects:
        parts.append(f"Page objects: {', '.join(p.name for p in page_objects)}")
    return ". ".join(parts)


@dataclass
class CodeReadingInput:
    """What to read for one failure."""

    test_file: str
    error_selectors: list[str] = field(default_factory=list)
    additional_files: list[str] = field(default_factory=list)


class CodeReadingStage(Stage[CodeReadingInput, CodeReadingOutput]):
    """Fetches the test file and the helper, page object and diff files around it."""

    name = "code_reading"

    def __init__(
        self,
        source_reader: SourceReader | None = None,
        revision: str = "main",
        config: StageConfig | None = None,
    ):
        super().__init__(config)
        self.source_reader = source_reader
        self.revision = revision

    async def execute(
        self, stage_input: CodeReadingInput, context: FailureContext
    ) -> StageResult[CodeReadingOutput]:
        started = time.monotonic()
        logger.info("stage_started", stage=self.name)

        try:
            output = await asyncio.wait_for(
                self._read(stage_input, context), timeout=self.config.timeout
            )
        except TimeoutError:
            output = None
            error = f"{self.name} timed out after {self.config.timeout:g}s"
        except Exception as e:
            output = None
            error = str(e) or type(e).__name__
        else:
            error = None if output is not None else "Could not fetch test file content"

        elapsed = int((time.monotonic() - started) * 1000)
        if output is None:
            logger.warning("stage_failed", stage=self.name, error=error, execution_time_ms=elapsed)
            return StageResult(success=False, error=error, execution_time_ms=elapsed)

        logger.info(
            "stage_completed",
            stage=self.name,
            execution_time_ms=elapsed,
            related_files=len(output.related_files),
        )
        return StageResult(success=True, data=output, execution_time_ms=elapsed)

    async def _read(
        self, stage_input: CodeReadingInput, context: FailureContext
    ) -> CodeReadingOutput | None:
        cache: dict[str, str | None] = {}

        async def fetch(path: str) -> str | None:
            if path not in cache:
                content = None
                if self.source_reader is not None:
                    try:
                        content = await self.source_reader.read_file(path, self.revision)
                    except Exception as e:
                        logger.debug("source_read_failed", path=path, error=str(e))
                cache[path] = content or None
            return cache[path]

        test_content = context.source_file_content or await fetch(stage_input.test_file)
        if not test_content:
            return None

        related: dict[str, RelatedFile] = {}
        custom_commands: list[CustomCommand] = []
        page_objects: list[PageObject] = []

        def add_related(path: str, content: str, relevance: str) -> None:
            if path != stage_input.test_file and path not in related:
                related[path] = RelatedFile(path=path, content=content, relevance=relevance)

        # Support files and relative imports
        support_paths = list(SUPPORT_FILE_PATHS)
        for specifier in extract_imports(test_content):
            if not specifier.startswith("."):
                continue
            base = resolve_relative_import(stage_input.test_file, specifier)
            for ext in IMPORT_EXTENSIONS:
                candidate = base + ext
                if await fetch(candidate):
                    support_paths.append(candidate)
                    break

        for path in _unique(support_paths):
            content = await fetch(path)
            if not content:
                continue
            add_related(path, content, "Helper/support file")
            custom_commands.extend(extract_custom_commands(content, path))

        invoked = extract_command_calls(test_content)
        defined = {command.name for command in custom_commands}
        unresolved = [name for name in invoked if name not in defined]
        if unresolved:
            logger.debug("custom_commands_unresolved", stage=self.name, commands=unresolved)

        # Page objects
        for ref in extract_page_object_refs(test_content):
            for path in page_object_candidates(ref, stage_input.test_file):
                content = await fetch(path)
                if content:
                    add_related(path, content, "Page object file")
                    page_objects.append(
                        PageObject(name=ref, file=path, selectors=extract_selectors(content))
                    )
                    break

        # Component and style files from the diff
        if stage_input.error_selectors:
            for changed in context.changed_files:
                if not COMPONENT_FILE_RE.search(changed.filename):
                    continue
                content = await fetch(changed.filename)
                if content:
                    add_related(
                        changed.filename,
                        content[:MAX_DIFF_FILE_CHARS],
                        "File from PR diff that may contain relevant selectors",
                    )

        for path in stage_input.additional_files:
            content = await fetch(path)
            if content:
                add_related(path, content, "Requested file")

        related_files = list(related.values())
        return CodeReadingOutput(
            test_file_content=test_content,
            related_files=related_files,
            custom_commands=custom_commands,
            page_objects=page_objects,
            summary=build_summary(test_content, related_files, custom_commands, page_objects),
        )
