"""Error taxonomy and collaborator-level retry helpers."""

from .errors import (
    CollaboratorUnavailableError,
    DocentError,
    EmbeddingError,
    GenerationError,
    InvalidInputError,
    MalformedDataError,
    NotFoundError,
    PersistenceError,
    handle_errors,
)
from .retry import async_retry

__all__ = [
    "DocentError",
    "InvalidInputError",
    "NotFoundError",
    "CollaboratorUnavailableError",
    "EmbeddingError",
    "GenerationError",
    "PersistenceError",
    "MalformedDataError",
    "handle_errors",
    "async_retry",
]
