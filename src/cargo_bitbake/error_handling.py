"""
Error handling for cargo-bitbake.

Provides the exception hierarchy surfaced at the CLI top level, structured
error contexts, and the diagnostics context threaded through recipe
generation in place of process-wide output state.
"""

import logging
import re
import sys
import traceback
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from rich.console import Console


class ErrorLevel(Enum):
    """Error severity levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ErrorCategory(Enum):
    """Error categories for better classification."""

    MANIFEST = "MANIFEST"
    LOCKFILE = "LOCKFILE"
    METADATA = "METADATA"
    REVISION = "REVISION"
    REPOSITORY = "REPOSITORY"
    CONFIGURATION = "CONFIGURATION"
    FILESYSTEM = "FILESYSTEM"


class BitbakeError(Exception):
    """Base class for every fatal recipe generation error."""

    category = ErrorCategory.CONFIGURATION


class ManifestError(BitbakeError):
    """The Cargo.toml could not be located or read."""

    category = ErrorCategory.MANIFEST


class LockfileError(BitbakeError):
    """The Cargo.lock could not be produced or parsed."""

    category = ErrorCategory.LOCKFILE


class MetadataError(BitbakeError):
    """A required manifest field is missing."""

    category = ErrorCategory.METADATA


class RevisionError(BitbakeError):
    """A git dependency has no revision that can be fetched."""

    category = ErrorCategory.REVISION

    def __init__(self, dependency: str, reference: str):
        self.dependency = dependency
        self.reference = reference
        super().__init__(
            f"cannot find rev in correct format for git dependency "
            f"'{dependency}' (reference: {reference}); "
            f"an abbreviated revision needs a locked commit in Cargo.lock"
        )


class GitUrlError(BitbakeError):
    """A git remote could not be rewritten into a fetch URL."""

    category = ErrorCategory.REPOSITORY


class RepositoryError(BitbakeError):
    """The project's own git checkout could not be introspected."""

    category = ErrorCategory.REPOSITORY


class RecipeWriteError(BitbakeError):
    """The recipe file could not be opened or written."""

    category = ErrorCategory.FILESYSTEM


@dataclass
class ErrorContext:
    """Structured error context information."""

    level: ErrorLevel
    category: ErrorCategory
    message: str
    module: str
    function: str
    details: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[Exception] = None
    traceback_info: Optional[str] = None


class SecureLogger:
    """Logger that strips credentials out of remote URLs before emitting."""

    _CREDENTIAL_URL = re.compile(r"([a-z][a-z0-9+.-]*://[^:@/\s]+:)[^@\s]+@", re.IGNORECASE)

    def __init__(self, name: str, level: int = logging.WARNING):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
            self.logger.addHandler(handler)

    def _sanitize_message(self, message: str) -> str:
        """
        Sanitize message to remove credentials embedded in URLs.

        Args:
            message: Original message

        Returns:
            str: Sanitized message
        """
        return self._CREDENTIAL_URL.sub(r"\1[REDACTED]@", message)

    def log_error_context(self, context: ErrorContext):
        """
        Log error context with appropriate level.

        Args:
            context: Error context to log
        """
        log_data = {
            "category": context.category.value,
            "module": context.module,
            "function": context.function,
            "details": {
                key: self._sanitize_message(value) if isinstance(value, str) else value
                for key, value in context.details.items()
            },
        }
        if context.exception:
            log_data["exception"] = type(context.exception).__name__

        log_message = f"{self._sanitize_message(context.message)} | {log_data}"
        self.logger.log(getattr(logging, context.level.value), log_message)


ErrorCallback = Callable[[ErrorContext], None]


class ErrorHandler:
    """
    Records error contexts and forwards them to the secure logger.

    Every warning and fatal error raised during one generation run passes
    through here so that callers (and tests) can inspect what happened.
    """

    def __init__(self, logger_name: str = "cargo_bitbake", log_level: int = logging.WARNING):
        self.logger = SecureLogger(logger_name, log_level)
        self.callbacks: List[ErrorCallback] = []
        self.contexts: List[ErrorContext] = []

    def register_callback(self, callback: ErrorCallback):
        """Register a callback invoked for each handled error."""
        self.callbacks.append(callback)

    def handle_error(
        self,
        level: ErrorLevel,
        category: ErrorCategory,
        message: str,
        module: str,
        function: str,
        exception: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> ErrorContext:
        """
        Handle an error with structured logging and callbacks.

        Args:
            level: Error severity level
            category: Error category
            message: Error message
            module: Module where error occurred
            function: Function where error occurred
            exception: Optional exception object
            details: Additional error details

        Returns:
            ErrorContext: The created error context
        """
        context = ErrorContext(
            level=level,
            category=category,
            message=message,
            module=module,
            function=function,
            details=details or {},
            exception=exception,
            traceback_info=(
                "".join(traceback.format_exception(type(exception), exception, exception.__traceback__))
                if exception
                else None
            ),
        )
        self.contexts.append(context)
        self.logger.log_error_context(context)

        for callback in self.callbacks:
            callback(context)

        return context

    def warning(
        self, category: ErrorCategory, message: str, module: str, function: str, **kwargs
    ) -> ErrorContext:
        """Handle warning level error."""
        return self.handle_error(ErrorLevel.WARNING, category, message, module, function, **kwargs)

    def error(
        self, category: ErrorCategory, message: str, module: str, function: str, **kwargs
    ) -> ErrorContext:
        """Handle error level error."""
        return self.handle_error(ErrorLevel.ERROR, category, message, module, function, **kwargs)

    def get_error_stats(self) -> Dict[str, int]:
        """Count handled errors per category and level."""
        stats: Dict[str, int] = {}
        for context in self.contexts:
            key = f"{context.category.value}_{context.level.value}"
            stats[key] = stats.get(key, 0) + 1
        return stats


class Diagnostics:
    """
    Diagnostics context for one generation run.

    Carries verbosity, the quiet flag, the console used as warning sink and
    the error handler. Components receive it explicitly instead of reading
    global output state.
    """

    def __init__(
        self,
        verbosity: int = 0,
        quiet: bool = False,
        console: Optional[Console] = None,
        error_handler: Optional[ErrorHandler] = None,
        log_level: int = logging.ERROR,
    ):
        self.verbosity = verbosity
        self.quiet = quiet
        self.console = console or Console(highlight=False)
        self.error_handler = error_handler or ErrorHandler(log_level=log_level)
        self.warnings: List[str] = []

    def warn(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.METADATA,
        module: str = "cargo_bitbake",
        function: str = "",
        exception: Optional[Exception] = None,
    ) -> None:
        """Print an advisory line; never affects the exit status."""
        self.warnings.append(message)
        self.error_handler.warning(category, message, module, function, exception=exception)
        if not self.quiet:
            self.console.print(message, markup=False, soft_wrap=True)

    def info(self, message: str) -> None:
        """Print a line unless running quietly."""
        if not self.quiet:
            self.console.print(message, markup=False, soft_wrap=True)

    def debug(self, message: str, level: int = 1) -> None:
        """Print a line when verbosity is at least ``level``."""
        if not self.quiet and self.verbosity >= level:
            self.console.print(message, style="dim", markup=False, soft_wrap=True)


def report_fatal(error: BitbakeError, module: str, function: str, handler: ErrorHandler) -> ErrorContext:
    """
    Record a fatal error before the CLI reports it.

    Args:
        error: The fatal error
        module: Module reporting the error
        function: Function reporting the error
        handler: Error handler of the current run

    Returns:
        ErrorContext: The recorded context
    """
    details: Dict[str, Any] = {}
    if isinstance(error, RevisionError):
        details = {"dependency": error.dependency, "reference": error.reference}
    elif isinstance(error, RecipeWriteError) and error.__cause__ is not None:
        filename = getattr(error.__cause__, "filename", None)
        if filename:
            details["file_path"] = Path(str(filename)).name
    return handler.error(error.category, str(error), module, function, exception=error, details=details)
