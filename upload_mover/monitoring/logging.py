"""
Structured logging for file moves

Every log line emitted while a worker handles a file carries the
manifest and upload ids, so the outcome of each file can be traced in
the task logs.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variable for propagating the file being moved
file_context: ContextVar[dict[str, Any] | None] = ContextVar("file_context", default=None)


class MoverJsonFormatter(logging.Formatter):
    """
    JSON formatter for mover logs with structured fields
    """

    # Fields to extract from log record if present
    _EXTRA_FIELDS = (
        "manifest_id",
        "upload_id",
        "worker_id",
        "bucket",
        "key",
        "duration_ms",
        "error_type",
    )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""
        log_entry = self._build_base_entry(record)
        self._add_file_context(log_entry)
        self._add_record_extras(log_entry, record)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)

    def _build_base_entry(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

    def _add_file_context(self, log_entry: dict[str, Any]) -> None:
        context = file_context.get()
        if context:
            log_entry.update(context)

    def _add_record_extras(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self._EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)


class FileContextFilter(logging.Filter):
    """
    Logging filter that adds the current file context to log records
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = file_context.get() or {}
        record.manifest_id = context.get("manifest_id", "-")
        record.upload_id = context.get("upload_id", "-")
        return True


def set_file_context(manifest_id: str, upload_id: str, worker_id: int | None = None) -> None:
    """Set the file handled by the current task."""
    context: dict[str, Any] = {"manifest_id": manifest_id, "upload_id": upload_id}
    if worker_id is not None:
        context["worker_id"] = worker_id
    file_context.set(context)


def clear_file_context() -> None:
    file_context.set(None)


def setup_mover_logging(log_level: str = "INFO", json_format: bool = False) -> logging.Logger:
    """
    Set up logging for a mover run

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON formatting for structured logs

    Returns:
        The configured package logger
    """
    root_logger = logging.getLogger("upload_mover")
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    if json_format:
        console_handler.setFormatter(MoverJsonFormatter())
    else:
        console_handler.addFilter(FileContextFilter())
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(manifest_id)s/%(upload_id)s] - %(message)s"
            )
        )
    root_logger.addHandler(console_handler)
    root_logger.propagate = False

    return root_logger
