"""Custom exception hierarchy for Guion with helpful error messages."""

from __future__ import annotations

from typing import Any


class GuionError(Exception):
    """Base exception with helpful formatting for all Guion errors.

    Provides structured error messages with hints and details to help users
    understand and fix problems.
    """

    def __init__(
        self,
        message: str,
        hint: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize exception with structured error information.

        Args:
            message: Primary error message describing what went wrong
            hint: Optional hint suggesting how to fix the problem
            details: Optional dictionary with additional debugging information
        """
        self.message = message
        self.hint = hint
        self.details = details
        super().__init__(self.format_error())

    def format_error(self) -> str:
        """Format the error message with hint and details.

        Returns:
            Formatted error string with all available information
        """
        output = f"Error: {self.message}"
        if self.hint:
            output += f"\nHint: {self.hint}"
        if self.details:
            details_str = "\n".join(
                f"  {key}: {value}" for key, value in self.details.items()
            )
            output += f"\nDetails:\n{details_str}"
        return output


class ConfigurationError(GuionError):
    """Configuration errors including invalid settings and missing config files."""

    pass


class ParseError(GuionError):
    """Malformed XML, unreadable bytes or an unsupported text encoding."""

    pass


class GuionFileNotFoundError(GuionError):
    """File not found errors with helpful path information."""

    pass


class UnsupportedFormatError(GuionError):
    """The input path has no known screenplay format."""

    pass


class ResourceError(GuionError):
    """Bundle content is missing or the container could not be read.

    Fatal for the input path that raised it; callers may retry with an
    alternate format of the same screenplay.
    """

    pass


class NoTextBundleFoundError(ResourceError):
    """Archive holds no directory that qualifies as a text bundle."""

    pass


class ExtractionFailedError(ResourceError):
    """Archive is corrupt or could not be opened."""

    pass


class CancellationError(GuionError):
    """Cooperative abort requested through an OperationProgress."""

    def __init__(
        self,
        message: str = "Operation was cancelled",
        hint: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize cancellation error.

        Args:
            message: Error message
            hint: Optional hint
            details: Optional details, usually the stage that observed the flag
        """
        super().__init__(message=message, hint=hint, details=details)


class ProgressError(GuionError):
    """Invalid progress state such as a negative unit count."""

    pass


class StorageError(GuionError):
    """Element store errors including connection and query issues."""

    pass


class ExportError(GuionError):
    """Bundle export errors other than cancellation."""

    pass


def check_config_keys(config: dict[str, Any]) -> None:
    """Check for common configuration mistakes.

    Args:
        config: Configuration dictionary to validate

    Raises:
        ConfigurationError: With hints about correct configuration keys
    """
    wrong_keys = {
        "db_path": "database_path",
        "batch_size": "fountain_batch_size",
        "chunk_size": "export_chunk_size",
        "update_interval": "progress_update_interval",
    }

    for wrong, correct in wrong_keys.items():
        if wrong in config:
            raise ConfigurationError(
                message=f"Invalid configuration key '{wrong}'",
                hint=f"Use '{correct}' instead of '{wrong}'",
                details={
                    "found_keys": list(config.keys()),
                    "invalid_key": wrong,
                    "correct_key": correct,
                },
            )
