"""Error hierarchy for phono-grammar.

Every error carries an ``ErrorCategory`` so callers (the CLI, a transport
wrapper) can tell a malformed request apart from an unavailable G2P model or
a broken cache file without string matching.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from phono_grammar.logging import get_logger

logger = get_logger(__name__)


class ErrorCategory(str, Enum):
    """Categories of errors for handling decisions."""

    VALIDATION = "validation"  # Bad input - don't retry
    CONFIGURATION = "configuration"  # Bad config - don't retry
    RESOURCE = "resource"  # Missing or unreadable file
    EXTERNAL = "external"  # G2P model or other collaborator failed
    INTERNAL = "internal"  # Bug in code


class PhonoGrammarError(Exception):
    """Base exception for phono-grammar errors.

    Attributes:
        message: Human-readable error message
        category: Error category for handling
        context: Additional context information
        recoverable: Whether the error is recoverable
    """

    category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        context: dict | None = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} (context: {self.context})"
        return self.message


class OracleUnavailable(PhonoGrammarError):
    """The grapheme-to-phoneme oracle could not be invoked.

    Examples: ``g2p_en`` not installed, model files failed to load.
    """

    category = ErrorCategory.EXTERNAL

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message, context, recoverable=False)


class MalformedRequest(PhonoGrammarError):
    """A line protocol request could not be parsed.

    Distinct from a request that parses but matches nothing.
    """

    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message, context, recoverable=False)


class SnapshotError(PhonoGrammarError):
    """A phoneme snapshot could not be read or written."""

    category = ErrorCategory.RESOURCE

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message, context, recoverable=True)


class GrammarFileError(PhonoGrammarError):
    """A grammar file exists but could not be read.

    Examples: a directory instead of a file, text that is not UTF-8.
    """

    category = ErrorCategory.RESOURCE

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message, context, recoverable=False)


class ConfigurationError(PhonoGrammarError):
    """Configuration error.

    Examples: unreadable settings file, unknown oracle kind.
    """

    category = ErrorCategory.CONFIGURATION

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message, context, recoverable=False)


class ErrorContext:
    """Context manager that logs a failing operation and re-raises.

    Callers that report the error themselves pass a lower ``level``.

    Example:
        with ErrorContext("build phoneme database", context={"source": path}):
            database = cache.load_or_build(path, entries)
    """

    def __init__(self, operation: str, context: dict | None = None, level: int = logging.ERROR):
        self.operation = operation
        self.context = context or {}
        self.level = level
        self.error: Exception | None = None

    def __enter__(self) -> "ErrorContext":
        logger.debug(f"Starting operation: {self.operation}")
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: Any) -> bool:
        if exc_val is not None:
            self.error = exc_val
            logger.log(
                self.level,
                f"Error in {self.operation}: {exc_val}",
                extra={
                    "operation": self.operation,
                    "error_type": type(exc_val).__name__,
                    **self.context,
                },
            )
        else:
            logger.debug(f"Completed operation: {self.operation}")

        # Don't suppress the exception
        return False


def format_error_for_display(error: Exception) -> str:
    """Format an error message for user display.

    Args:
        error: Error to format

    Returns:
        Human-readable error message
    """
    if isinstance(error, PhonoGrammarError):
        category = error.category.value
        if error.context:
            context_str = ", ".join(f"{k}={v}" for k, v in error.context.items())
            return f"[{category}] {error.message} ({context_str})"
        return f"[{category}] {error.message}"

    return f"[error] {type(error).__name__}: {error}"
