"""
Exceptions raised inside the Privote transcription core.

Public operations never let these escape: the orchestrator and installer
convert them into failure results carrying the same error kind.
"""

from typing import Optional

from privote.core.models import ErrorKind


class PrivoteError(Exception):
    """Base exception for Privote-related errors."""
    pass


class TranscriptionError(PrivoteError):
    """Exception raised when a transcription step fails."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class ModelDownloadError(PrivoteError):
    """Exception raised when a model download fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
