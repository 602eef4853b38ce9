"""Readers that fetch repository source for the code reading stage."""

from e2e_triage.sources.base import SourceReader
from e2e_triage.sources.github import GitHubSourceReader
from e2e_triage.sources.local import LocalSourceReader

__all__ = [
    "SourceReader",
    "GitHubSourceReader",
    "LocalSourceReader",
]
