"""Shared exceptions for the e2e_triage package."""


class TriageError(Exception):
    """Base class for errors raised by e2e_triage."""


class ResponseParseError(TriageError):
    """Generated text could not be turned into a valid stage output.

    Raised inside the stage harness and reported as the stage's error
    string; it never escapes a stage.
    """

    def __init__(self, stage_name: str) -> None:
        self.stage_name = stage_name
        super().__init__(f"Failed to parse {stage_name} response")


class ConfigurationError(TriageError):
    """Settings are incomplete or name something that does not exist."""
