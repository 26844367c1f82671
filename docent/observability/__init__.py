"""Logging setup and turn-scoped log context."""

from .logging_config import (
    ContextFormatter,
    OperationContext,
    OperationLogger,
    StructuredFormatter,
    generate_turn_id,
    get_conversation_id,
    get_logger,
    get_turn_id,
    log_exception,
    preview,
    set_conversation_id,
    set_turn_id,
    setup_logging,
    setup_logging_from_settings,
)

__all__ = [
    "setup_logging",
    "setup_logging_from_settings",
    "get_logger",
    "OperationContext",
    "OperationLogger",
    "StructuredFormatter",
    "ContextFormatter",
    "get_turn_id",
    "set_turn_id",
    "get_conversation_id",
    "set_conversation_id",
    "generate_turn_id",
    "log_exception",
    "preview",
]
