"""
Structured logging configuration for licensed.

Emits one JSON object per line on stderr, keeping stdout free for a
generated module written to the stream destination.
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
    "message",
}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class GeneratorLogger:
    """Structured logger for pipeline events."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self._setup_logger()
        self.run_context: Dict[str, Any] = {}

    def _setup_logger(self) -> None:
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.WARNING)
            self.logger.propagate = False

    def use_plain_format(self, log_format: str) -> None:
        for handler in self.logger.handlers:
            handler.setFormatter(logging.Formatter(log_format))

    def set_run_context(
        self, run_id: Optional[str] = None, output: Optional[str] = None
    ) -> None:
        self.run_context = {}
        if run_id:
            self.run_context["run_id"] = run_id
        if output:
            self.run_context["output"] = output

    def clear_run_context(self) -> None:
        self.run_context.clear()

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        log_data = {"event_type": event_type, **self.run_context, **kwargs}
        self.logger.log(level, event_type, extra=log_data)

    def info(self, event_type: str, **kwargs) -> None:
        self._log(logging.INFO, event_type, **kwargs)

    def debug(self, event_type: str, **kwargs) -> None:
        self._log(logging.DEBUG, event_type, **kwargs)


_discovery_logger = GeneratorLogger("licensed.discovery")
_generator_logger = GeneratorLogger("licensed.generator")

_ALL_LOGGERS = [_discovery_logger, _generator_logger]


def get_discovery_logger() -> GeneratorLogger:
    """Get the project/dependency/license discovery logger."""
    return _discovery_logger


def get_generator_logger() -> GeneratorLogger:
    """Get the code generation logger."""
    return _generator_logger


def log_dependencies_loaded(root: str, count: int) -> None:
    get_discovery_logger().info("dependencies_loaded", project_root=root, total_dependencies=count)


def log_license_located(name: str, license_path: Optional[str]) -> None:
    logger = get_discovery_logger()
    if license_path is None:
        logger.info("license_missing", dependency=name)
    else:
        logger.debug("license_located", dependency=name, license_path=license_path)


def log_license_injected(name: str, size_bytes: int) -> None:
    get_generator_logger().debug("license_injected", dependency=name, size_bytes=size_bytes)


def log_generation_completed(function_name: str, records: int, size_chars: int) -> None:
    get_generator_logger().info(
        "generation_completed",
        function_name=function_name,
        records=records,
        size_chars=size_chars,
    )


def log_output_written(destination: str) -> None:
    get_generator_logger().info("output_written", destination=destination)


def set_run_context(run_id: Optional[str] = None, output: Optional[str] = None) -> None:
    """Set the run context on every pipeline logger."""
    for logger in _ALL_LOGGERS:
        logger.set_run_context(run_id, output)


def clear_run_context() -> None:
    for logger in _ALL_LOGGERS:
        logger.clear_run_context()


def configure_logging(
    log_level: str = "WARNING",
    enable_json: bool = True,
    log_format: Optional[str] = None,
) -> None:
    """Configure the level and format of every pipeline logger."""
    level = getattr(logging, log_level.upper(), logging.WARNING)

    for logger in _ALL_LOGGERS:
        logger.logger.setLevel(level)
        if not enable_json and log_format:
            logger.use_plain_format(log_format)
