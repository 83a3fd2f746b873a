"""Logging configuration for the workflow execution engine.

Run-scoped records carry ``event_type``, ``execution_id``, ``workflow_id``
and ``node_id`` fields (attached by ``log_with_context``). Both formatters
surface them: the JSON formatter as top-level keys, the text formatter as a
bracketed suffix.
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..models.core import LogEventType

if TYPE_CHECKING:
    from ..config import AppConfig

RUN_FIELDS = ("event_type", "execution_id", "workflow_id", "node_id")

# Third-party loggers that are too chatty at the engine's level
QUIET_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
}


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Context fields attached to a record, without unset values."""
    fields = getattr(record, "extra_fields", None) or {}
    return {key: value for key, value in fields.items() if value is not None}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Run fields become top-level keys so log pipelines can filter a single
    execution or node; any other context lands under ``context``.
    """

    def format(self, record: logging.LogRecord) -> str:
        fields = record_fields(record)
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in RUN_FIELDS:
            if key in fields:
                entry[key] = fields.pop(key)
        if fields:
            entry["context"] = fields

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": "".join(traceback.format_exception(*record.exc_info)),
            }

        return json.dumps(entry, default=str)


class RunContextFormatter(logging.Formatter):
    """Plain-text formatter that appends the record's run fields."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        fields = record_fields(record)
        run_context = " ".join(f"{key}={fields[key]}" for key in RUN_FIELDS if key in fields)
        return f"{text} [{run_context}]" if run_context else text


def setup_logging(config: "AppConfig") -> logging.Logger:
    """
    Configure the root logger from application settings.

    Console output always goes to stderr so CLI results on stdout stay
    machine-readable. A rotating file handler is added when ``log_file``
    is set.

    Returns:
        Root logger instance
    """
    if config.structured_logging:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = RunContextFormatter(fmt=config.log_format, datefmt="%Y-%m-%d %H:%M:%S")

    level = getattr(logging, config.log_level.value)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if config.log_file:
        Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.log_file,
            maxBytes=config.log_max_size,
            backupCount=config.log_backup_count
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(quiet_level, level))

    logging.getLogger("workflow_engine").setLevel(level)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log a message with additional context fields."""
    logger.log(level, message, extra={"extra_fields": context})


class NodeRetryLogger:
    """Logs the retry lifecycle of node attempts with run context."""

    def __init__(self, component_name: str):
        self.logger = get_logger(f"workflow_engine.retry.{component_name}")
        self.component_name = component_name

    def attempt_failed(self, node_id: str, error: BaseException, attempt: int, max_attempts: int,
                       delay: float, execution_id: Optional[str] = None):
        log_with_context(
            self.logger, logging.WARNING,
            f"Node {node_id} attempt {attempt}/{max_attempts} failed, retrying in {delay:.2f}s: {error}",
            event_type=LogEventType.NODE_RETRY.value,
            execution_id=execution_id,
            node_id=node_id,
            component=self.component_name,
            error_type=type(error).__name__,
            attempt=attempt,
            max_attempts=max_attempts,
            retry_delay=delay
        )

    def recovered(self, node_id: str, attempts_used: int, execution_id: Optional[str] = None):
        log_with_context(
            self.logger, logging.INFO,
            f"Node {node_id} recovered after {attempts_used} attempts",
            event_type=LogEventType.NODE_RETRY.value,
            execution_id=execution_id,
            node_id=node_id,
            component=self.component_name,
            attempts_used=attempts_used,
            retry_status="recovered"
        )

    def exhausted(self, node_id: str, final_error: BaseException, attempts_used: int,
                  execution_id: Optional[str] = None):
        """Log a node whose retry budget is spent."""
        log_with_context(
            self.logger, logging.ERROR,
            f"Node {node_id} failed after {attempts_used} attempts: {final_error}",
            event_type=LogEventType.NODE_RETRY.value,
            execution_id=execution_id,
            node_id=node_id,
            component=self.component_name,
            error_type=type(final_error).__name__,
            attempts_used=attempts_used,
            retry_status="exhausted"
        )
