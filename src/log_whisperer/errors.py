from __future__ import annotations

from typing import Optional


class LogWhispererError(Exception):
    """Base class for errors surfaced to the user."""


class AnalysisFailedError(LogWhispererError):
    """The remote analysis call failed (credentials, network, quota or timeout)."""

    USER_MESSAGE = "Analysis failed. Ensure your API Key is valid and try again."

    def __init__(self, message: Optional[str] = None, kind: str = "api") -> None:
        super().__init__(message or self.USER_MESSAGE)
        self.kind = kind


class AnalysisInProgressError(LogWhispererError):
    """A second analysis was submitted while one is still outstanding."""

    def __init__(self) -> None:
        super().__init__("An analysis is already running. Wait for it to finish or cancel it.")


class FileReadError(LogWhispererError):
    """An uploaded or local file could not be read."""

    USER_MESSAGE = "Failed to read file. Please try another file."
