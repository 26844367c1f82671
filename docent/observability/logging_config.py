"""
Docent - Logging Configuration
==============================

Every module logs through ``logging.getLogger(__name__)``. This module wires
the root logger to either a readable line format or one JSON object per line,
and stamps each record with the turn and conversation it belongs to.

Usage:
    from docent.observability import setup_logging_from_settings, OperationLogger

    setup_logging_from_settings(settings)

    with OperationLogger(logger, "send_message", conversation_id=conversation_id):
        logger.info("Prompt assembled")
"""

import contextvars
import json
import logging
import sys
import time
import traceback
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any
from uuid import uuid4

DEFAULT_LOG_FILE = "./logs/docent.log"

# SDK and driver loggers that are chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "sqlalchemy.engine")

_turn_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("docent_turn_id", default=None)
_conversation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "docent_conversation_id", default=None
)
_log_fields: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("docent_log_fields", default={})


def get_turn_id() -> str | None:
    return _turn_id.get()


def set_turn_id(turn_id: str | None) -> contextvars.Token:
    return _turn_id.set(turn_id)


def get_conversation_id() -> str | None:
    return _conversation_id.get()


def set_conversation_id(conversation_id: str | None) -> contextvars.Token:
    return _conversation_id.set(conversation_id)


def generate_turn_id() -> str:
    """Short random id for one request/response turn."""
    return "turn-" + uuid4().hex[:12]


def _current_ids() -> list[tuple[str, str]]:
    ids = []
    if turn_id := _turn_id.get():
        ids.append(("turn_id", turn_id))
    if conversation_id := _conversation_id.get():
        ids.append(("conversation_id", conversation_id))
    return ids


class OperationContext:
    """
    Bind a turn id, a conversation id and free-form fields to everything
    logged inside the block.

    Nested contexts only override what they set; leaving a block restores the
    outer values.
    """

    def __init__(
        self,
        turn_id: str | None = None,
        conversation_id: str | None = None,
        auto_generate_turn: bool = False,
        **fields: Any,
    ):
        self.turn_id = turn_id
        self.conversation_id = conversation_id
        self.auto_generate_turn = auto_generate_turn
        self.fields = fields
        self._tokens: list[contextvars.Token] = []

    def __enter__(self):
        turn_id = self.turn_id
        if turn_id is None and self.auto_generate_turn and get_turn_id() is None:
            turn_id = generate_turn_id()
        if turn_id:
            self._tokens.append(_turn_id.set(turn_id))
        if self.conversation_id:
            self._tokens.append(_conversation_id.set(self.conversation_id))
        if self.fields:
            self._tokens.append(_log_fields.set({**_log_fields.get(), **self.fields}))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        while self._tokens:
            token = self._tokens.pop()
            token.var.reset(token)
        return False


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def __init__(
        self,
        include_timestamp: bool = True,
        include_location: bool = True,
        include_context: bool = True,
        extra_fields: dict[str, Any] | None = None,
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_location = include_location
        self.include_context = include_context
        self.extra_fields = dict(extra_fields or {})

    @staticmethod
    def _exception(exc_info) -> dict[str, Any]:
        exc_type, exc_value, _ = exc_info
        return {
            "type": exc_type.__name__ if exc_type else None,
            "message": str(exc_value) if exc_value is not None else None,
            "traceback": traceback.format_exception(*exc_info) if exc_type else None,
        }

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.include_timestamp:
            stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
            payload["timestamp"] = stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        if self.include_location:
            payload["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }
        if self.include_context:
            payload.update(_current_ids())
            if fields := _log_fields.get():
                payload["context"] = fields
        if record.exc_info:
            payload["exception"] = self._exception(record.exc_info)
        extra_data = getattr(record, "extra_data", None)
        if extra_data is not None:
            payload["data"] = extra_data
        payload.update(self.extra_fields)
        return json.dumps(payload, default=str)


class ContextFormatter(logging.Formatter):
    """Readable lines prefixed with ``[turn] [conversation]`` when known."""

    DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(context)s%(name)s - %(message)s"
    DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

    def __init__(self, fmt: str | None = None, datefmt: str | None = None):
        super().__init__(fmt=fmt or self.DEFAULT_FORMAT, datefmt=datefmt or self.DEFAULT_DATEFMT)

    def format(self, record: logging.LogRecord) -> str:
        record.context = "".join(f"[{value}] " for _, value in _current_ids())
        return super().format(record)


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_to_console: bool = True,
    log_to_file: bool = False,
    log_file_path: str | None = None,
    max_file_size_mb: int = 10,
    backup_count: int = 5,
    include_location: bool = True,
    extra_fields: dict[str, Any] | None = None,
) -> None:
    """
    Replace the root logger's handlers.

    Args:
        level: Root level name, e.g. "INFO"
        json_format: Use StructuredFormatter instead of ContextFormatter
        log_to_console: Attach a stdout handler
        log_to_file: Attach a rotating file handler
        log_file_path: File for the rotating handler (parents are created)
        max_file_size_mb: Rotation threshold
        backup_count: Rotated files to keep
        include_location: Add file/line/function to JSON records
        extra_fields: Static keys merged into every JSON record
    """
    if json_format:
        formatter: logging.Formatter = StructuredFormatter(
            include_location=include_location, extra_fields=extra_fields
        )
    else:
        formatter = ContextFormatter()

    handlers: list[logging.Handler] = []
    if log_to_console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_to_file:
        path = Path(log_file_path or DEFAULT_LOG_FILE)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(path, maxBytes=max_file_size_mb * 1024 * 1024, backupCount=backup_count)
        )

    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging_from_settings(settings, **overrides: Any) -> None:
    """Configure logging from ``LOG_LEVEL`` and ``LOG_JSON``."""
    options = {"level": settings.LOG_LEVEL, "json_format": settings.LOG_JSON}
    options.update(overrides)
    setup_logging(**options)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def preview(text: str | None, length: int = 50) -> str:
    """Shorten user text for log lines."""
    if not text:
        return ""
    if len(text) <= length:
        return text
    return text[:length] + "..."


class OperationLogger(OperationContext):
    """
    Log the start, success or failure of a unit of work along with its
    duration. A turn id is always bound: the given one, the surrounding one,
    or a fresh one.
    """

    def __init__(
        self,
        logger: logging.Logger,
        operation_name: str,
        turn_id: str | None = None,
        conversation_id: str | None = None,
        **fields: Any,
    ):
        super().__init__(
            turn_id=turn_id or get_turn_id() or generate_turn_id(),
            conversation_id=conversation_id,
            **fields,
        )
        self.logger = logger
        self.operation_name = operation_name
        self.start_time: float | None = None

    @property
    def duration_ms(self) -> int:
        if self.start_time is None:
            return 0
        return int((time.monotonic() - self.start_time) * 1000)

    def _event(self, event: str, **data: Any) -> dict[str, Any]:
        return {"extra_data": {"event": event, "operation": self.operation_name, **data}}

    def __enter__(self):
        super().__enter__()
        self.start_time = time.monotonic()
        self.logger.info(
            f"Starting operation: {self.operation_name}", extra=self._event("operation_start", **self.fields)
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = self.duration_ms
        if exc_type is None:
            self.logger.info(
                f"Completed operation: {self.operation_name} ({elapsed}ms)",
                extra=self._event("operation_success", duration_ms=elapsed),
            )
        else:
            self.logger.error(
                f"Failed operation: {self.operation_name} ({elapsed}ms): {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
                extra=self._event("operation_failed", duration_ms=elapsed),
            )
        return super().__exit__(exc_type, exc_val, exc_tb)


def log_exception(logger: logging.Logger, message: str, exception: Exception | None = None, **data: Any) -> None:
    """Log ``message`` at ERROR with a traceback and optional structured data."""
    exc_info = (type(exception), exception, exception.__traceback__) if exception is not None else True
    logger.error(message, exc_info=exc_info, extra={"extra_data": data} if data else None)
