"""
Structured logging configuration for cargo-bitbake.

Provides consistent, machine-readable events describing one recipe
generation run.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_RESERVED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "getMessage",
    "exc_info",
    "exc_text",
    "stack_info",
}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": getattr(record, "component", record.name),
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class GeneratorLogger:
    """Structured logger for recipe generation events."""

    def __init__(self, name: str = "cargo_bitbake.generator"):
        self.logger = logging.getLogger(name)
        self.logger.propagate = False
        self._setup_logger()
        self.run_context: Dict[str, Any] = {}

    def _setup_logger(self) -> None:
        """Setup logger with structured formatting."""
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.ERROR)

    def set_run_context(
        self, package_name: Optional[str] = None, package_version: Optional[str] = None
    ) -> None:
        """Set the package being packaged as context for every event."""
        self.run_context = {}
        if package_name:
            self.run_context["package_name"] = package_name
        if package_version:
            self.run_context["package_version"] = package_version

    def clear_run_context(self) -> None:
        """Clear run context."""
        self.run_context.clear()

    def _log(self, level: str, event_type: str, **kwargs) -> None:
        log_data = {"event_type": event_type, **self.run_context, **kwargs}
        getattr(self.logger, level)(event_type, extra=log_data)

    def info(self, event_type: str, **kwargs) -> None:
        """Log info level event."""
        self._log("info", event_type, **kwargs)

    def warning(self, event_type: str, **kwargs) -> None:
        """Log warning level event."""
        self._log("warning", event_type, **kwargs)

    def debug(self, event_type: str, **kwargs) -> None:
        """Log debug level event."""
        self._log("debug", event_type, **kwargs)


_generator_logger = GeneratorLogger()


def get_generator_logger() -> GeneratorLogger:
    """Get recipe generation logger."""
    return _generator_logger


def log_generation_start(package_name: str, package_version: str, dependency_count: int) -> None:
    """Log generation start event."""
    logger = get_generator_logger()
    logger.set_run_context(package_name, package_version)
    logger.info("recipe_generation_started", dependency_count=dependency_count)


def log_dependency_translated(name: str, version: str, source_kind: str, revision: Optional[str] = None) -> None:
    """Log the translation of one resolved dependency."""
    log_data: Dict[str, Any] = {"dependency": name, "version": version, "source_kind": source_kind}
    if revision is not None:
        log_data["revision"] = revision
    get_generator_logger().debug("dependency_translated", **log_data)


def log_project_repo_defaulted(reason: str) -> None:
    """Log that repository introspection failed and defaults are used."""
    get_generator_logger().warning("project_repo_defaulted", reason=reason)


def log_recipe_written(recipe_path: str, source_uri_count: int) -> None:
    """Log generation completion event."""
    logger = get_generator_logger()
    logger.info("recipe_written", recipe_path=recipe_path, source_uri_count=source_uri_count)
    logger.clear_run_context()


def verbosity_to_level(verbosity: int, quiet: bool, configured: str = "ERROR") -> int:
    """
    Map CLI verbosity onto a logging level.

    Args:
        verbosity: Number of ``-v`` flags
        quiet: Whether ``--quiet`` was given
        configured: Level name from configuration, used as the baseline

    Returns:
        int: Logging level
    """
    if quiet:
        return logging.CRITICAL
    level = getattr(logging, configured.upper(), logging.ERROR)
    if verbosity >= 2:
        return min(level, logging.DEBUG)
    if verbosity == 1:
        return min(level, logging.INFO)
    return level


def configure_logging(log_level: int = logging.ERROR) -> None:
    """Configure logging for the application."""
    get_generator_logger().logger.setLevel(log_level)
