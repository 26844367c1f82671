"""Error taxonomy and centralized error conversion."""

import functools
import inspect


class DocentError(Exception):
    """Base exception for the assistant core."""

    pass


class InvalidInputError(DocentError):
    """Caller supplied a missing or inconsistent combination of inputs."""

    pass


class NotFoundError(DocentError):
    """Referenced conversation, message or knowledge item does not exist."""

    pass


class CollaboratorUnavailableError(DocentError):
    """An external collaborator (database, embedding or generation model) failed."""

    pass


class EmbeddingError(CollaboratorUnavailableError):
    """Embedding model call failed."""

    pass


class GenerationError(CollaboratorUnavailableError):
    """Text-generation model call failed."""

    pass


class PersistenceError(CollaboratorUnavailableError):
    """Database operation error."""

    pass


class MalformedDataError(DocentError):
    """A stored value (usually an embedding) has the wrong shape or type."""

    pass


def handle_errors(error_class=DocentError, logger=None, catch=(Exception,)):
    """Decorator converting foreign exceptions into a taxonomy error.

    Exceptions already belonging to the taxonomy pass through untouched.
    Works on both plain and coroutine functions.
    """

    def convert(func, e):
        if logger:
            logger.error(f"Error in {func.__name__}: {e}")
        return error_class(str(e))

    def decorator(func):
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except DocentError:
                    raise
                except catch as e:
                    raise convert(func, e) from e

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except DocentError:
                raise
            except catch as e:
                raise convert(func, e) from e

        return wrapper

    return decorator
