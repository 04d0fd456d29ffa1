"""
Error taxonomy and centralized error handling for licensed.

Every failure in a generation run is fatal. Exceptions carry an
ErrorCategory so the CLI can record them through the ErrorHandler before
printing a single diagnostic line and exiting.
"""

import logging
import re
import sys
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorLevel(Enum):
    """Error severity levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ErrorCategory(Enum):
    """Error categories for better classification."""

    CONFIGURATION = "CONFIGURATION"
    COLLABORATOR = "COLLABORATOR"
    GENERATION = "GENERATION"
    DATA = "DATA"
    FILESYSTEM = "FILESYSTEM"


def _single_line(message: str) -> str:
    return " ".join(str(message).split())


class LicensedError(Exception):
    """Base class for all fatal errors raised during a run."""

    category = ErrorCategory.GENERATION

    def __init__(self, message: str):
        super().__init__(_single_line(message))


class ConfigurationError(LicensedError):
    """Invalid generated identifiers or unusable destination."""

    category = ErrorCategory.CONFIGURATION


class DependencyToolError(LicensedError):
    """The dependency tool is missing, failed, or returned garbage."""

    category = ErrorCategory.COLLABORATOR


class ProjectRootNotFound(LicensedError):
    category = ErrorCategory.COLLABORATOR


class TargetModuleError(LicensedError):
    """The destination directory holds no usable Python source."""

    category = ErrorCategory.COLLABORATOR


class SkeletonParseError(LicensedError):
    """The rendered skeleton does not have the expected shape."""


class SlotCountMismatch(LicensedError):
    def __init__(self, slots: int, records: int):
        super().__init__(
            f"Generated skeleton has {slots} license slots for {records} dependencies"
        )
        self.slots = slots
        self.records = records


class UnknownDependency(LicensedError):
    def __init__(self, name: str):
        super().__init__(f"Generated skeleton references unknown dependency {name!r}")
        self.name = name


class DependencyDataError(LicensedError):
    """A data error tied to one dependency."""

    category = ErrorCategory.DATA

    def __init__(self, name: str, message: str):
        super().__init__(message)
        self.name = name


class MissingLicenseFile(DependencyDataError):
    def __init__(self, name: str):
        super().__init__(name, f"No license file found for {name}")


class LicenseReadError(DependencyDataError):
    def __init__(self, name: str, cause: Exception):
        super().__init__(name, f"Failed to read license of {name}: {cause}")
        self.__cause__ = cause


class UnencodableLicenseText(DependencyDataError):
    def __init__(self, name: str, cause: Exception):
        super().__init__(
            name, f"License text of {name} cannot be embedded as a literal: {cause}"
        )
        self.__cause__ = cause


class OutputWriteError(LicensedError):
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
    """Logger that masks credentials embedded in paths and command output."""

    _SENSITIVE_PATTERNS = [
        (r"(https?://[^@\s]+:)[^@\s]+@", r"\1[REDACTED]@"),
        (r'token["\s]*[:=]["\s]*([a-zA-Z0-9_\-+=/.]{8,})', 'token="[REDACTED]"'),
        (r'password["\s]*[:=]["\s]*([^\s"\']+)', 'password="[REDACTED]"'),
    ]

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
        sanitized = message
        for pattern, replacement in self._SENSITIVE_PATTERNS:
            sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)
        return sanitized

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
        if context.traceback_info:
            self.logger.debug(context.traceback_info)


class ErrorHandler:
    """
    Centralized error handler.

    Records every fatal error with its category and traceback so that
    --verbose runs show the full context behind the one-line diagnostic.
    """

    def __init__(
        self,
        logger_name: str = "licensed",
        log_level: int = logging.WARNING,
    ):
        self.logger = SecureLogger(logger_name, log_level)

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
        Handle an error with structured logging.

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
        traceback_info = None
        if exception is not None and exception.__traceback__ is not None:
            traceback_info = "".join(
                traceback.format_exception(
                    type(exception), exception, exception.__traceback__
                )
            )

        context = ErrorContext(
            level=level,
            category=category,
            message=message,
            module=module,
            function=function,
            details=details or {},
            exception=exception,
            traceback_info=traceback_info,
        )
        self.logger.log_error_context(context)
        return context

    def report(
        self, error: Exception, module: str, function: str, level: ErrorLevel = ErrorLevel.DEBUG
    ) -> ErrorContext:
        """Record a fatal exception raised by a run."""
        category = getattr(error, "category", ErrorCategory.GENERATION)
        details = {}
        if isinstance(error, DependencyDataError):
            details["dependency"] = error.name
        return self.handle_error(
            level,
            category,
            str(error),
            module,
            function,
            exception=error,
            details=details,
        )


_global_error_handler: Optional[ErrorHandler] = ErrorHandler()


def get_error_handler() -> ErrorHandler:
    """
    Get the global error handler instance.

    Returns:
        ErrorHandler: Global error handler
    """
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def setup_error_handling(
    log_level: int = logging.WARNING, logger_name: str = "licensed"
) -> ErrorHandler:
    """Replace the global error handler with a freshly configured one."""
    global _global_error_handler
    _global_error_handler = ErrorHandler(logger_name, log_level)
    return _global_error_handler
