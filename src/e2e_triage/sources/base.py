"""Base protocol for source readers."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class SourceReader(Protocol):
    """Protocol for fetching repository files at a revision."""

    async def read_file(self, path: str, revision: str) -> str | None:
        """
        Read a file's text content.

        Args:
            path: Repository-relative file path.
            revision: Branch, tag or commit SHA.

        Returns:
            File content, or None if the file does not exist.
        """
        ...
