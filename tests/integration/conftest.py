"""Pytest configuration for integration tests.

Integration tests in this directory call a real LLM provider and need an
API key (ANTHROPIC_API_KEY, OPENAI_API_KEY or GOOGLE_API_KEY, or their
TRIAGE_-prefixed settings).

Run integration tests with:
    pytest tests/integration/ --run-integration
"""

from __future__ import annotations

import pytest

from e2e_triage.config import Settings, build_generator
from e2e_triage.core.exceptions import ConfigurationError


@pytest.fixture
def live_generator():
    """Generator built from the environment, skipping when no key is set."""
    try:
        return build_generator(Settings())
    except ConfigurationError as e:
        pytest.skip(str(e))
