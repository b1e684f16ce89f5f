"""Custom exceptions and error handling for fileflow.

This module provides user-friendly error messages with actionable suggestions.
Errors fall into two groups: fatal errors that terminate a stage (and the
pipeline run), and item-scoped errors that transforms log and drop.
"""

from typing import List, Optional


class FileflowError(Exception):
    """Base exception for fileflow errors."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nHint: {self.suggestion}"
        return self.message


class SourceNotFoundError(FileflowError):
    """Raised when an enumerated path or source folder does not exist."""

    def __init__(self, path: str):
        self.path = path
        suggestion = (
            f"Check that the path exists: {path}\n"
            "  - Verify the path is correct (use absolute paths if unsure)\n"
            "  - Check file permissions\n"
            "  - Relative paths are resolved against the working directory"
        )
        super().__init__(f"Path not found: {path}", suggestion)


class ConfigurationError(FileflowError):
    """Raised when a stage or pipeline configuration is invalid."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors or [])
        suggestion = None
        if self.errors:
            suggestion = "Configuration errors:\n" + "\n".join(
                f"  - {e}" for e in self.errors
            )
        super().__init__(message, suggestion)


class ShapeMismatchError(FileflowError):
    """Raised when a stage receives an item shape it does not accept."""

    def __init__(self, channel: str, received: str, accepted: List[str]):
        self.channel = channel
        self.received = received
        self.accepted = list(accepted)
        suggestion = (
            f"Accepted shapes: {', '.join(self.accepted)}\n"
            "  - Insert a stage that converts the item shape upstream\n"
            "  - Check that the channel is wired to the intended stage"
        )
        super().__init__(
            f"Channel '{channel}' delivered a {received} item", suggestion
        )


class ChannelClosedError(FileflowError):
    """Raised when a producer emits on a channel it already closed."""

    def __init__(self, channel: str):
        self.channel = channel
        super().__init__(f"Cannot emit on closed channel '{channel}'")


class UpstreamFailedError(FileflowError):
    """Raised on the consumer side when the producer closed abruptly."""

    def __init__(self, channel: str, cause: Optional[BaseException] = None):
        self.channel = channel
        self.cause = cause
        detail = f": {type(cause).__name__}: {cause}" if cause else ""
        super().__init__(f"Upstream of channel '{channel}' failed{detail}")


class StageInitError(FileflowError):
    """Raised when a stage fails during its one-shot setup."""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(
            f"Stage '{stage}' failed to initialize: {cause}",
            "The pipeline was not started. Fix the stage setup and run again.",
        )


class PipelineError(FileflowError):
    """Raised when a stage fails while the pipeline is running."""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Stage '{stage}' failed: {cause}")


class CorruptInputError(FileflowError):
    """Raised for a single unreadable archive or compressed stream.

    Transforms catch this, log it and drop the offending item; it never
    terminates a stage.
    """

    def __init__(self, item: str, reason: str):
        self.item = item
        self.reason = reason
        super().__init__(f"Corrupt input {item}: {reason}")


def format_error(e: BaseException) -> str:
    """Format an exception into a user-friendly message.

    Args:
        e: The exception to format.

    Returns:
        A user-friendly error message with suggestions.
    """
    if isinstance(e, (PipelineError, StageInitError)) and isinstance(
        e.cause, FileflowError
    ):
        return f"{e.message}\n\n{format_error(e.cause)}"

    if isinstance(e, FileflowError):
        return str(e)

    if isinstance(e, FileNotFoundError):
        return str(SourceNotFoundError(e.filename or str(e)))

    if isinstance(e, PermissionError):
        return (
            f"Permission denied: {e.filename or e}\n\n"
            "Hint: Check read permissions on sources and write permissions "
            "on the destination directory."
        )

    if isinstance(e, OSError):
        return f"I/O error: {e}"

    if isinstance(e, ValueError):
        return f"Invalid value: {e}\n\nHint: Check your pipeline parameters."

    return f"Unexpected error: {type(e).__name__}: {e}"
