"""Pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from tests.fakes import DictSourceReader, ScriptedGenerator


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires API keys)",
    )


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (require API keys)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly enabled."""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def scripted_generator() -> ScriptedGenerator:
    """Generator fake with an empty script."""
    return ScriptedGenerator()


@pytest.fixture
def source_reader() -> DictSourceReader:
    """Source reader fake with no files."""
    return DictSourceReader()
