"""
OPERATION LOGGING UTILITY
=========================

One decorator that every mutating store method wears. On success it writes a
single line naming the operation and the affected id; on a typed storage error
it logs a warning and re-raises the same exception. Store methods therefore
contain no try/except of their own.

Example:
  @log_operation("create_user")
  def create_user(self, fields): ...

  -> 2026-10-19 12:00:01 | INFO     | J.A.R.V.I.S          | storage.create_user id=3
"""

import functools
import logging
from typing import Any, Callable, TypeVar

from app.exceptions import StorageError


logger = logging.getLogger("J.A.R.V.I.S")

F = TypeVar("F", bound=Callable[..., Any])


def _affected_id(args: tuple, result: Any) -> Any:
    """The id of the returned entity, else the first positional argument (e.g. delete_conversation(id))."""
    entity_id = getattr(result, "id", None)
    if entity_id is not None:
        return entity_id
    return args[0] if args else None


def log_operation(operation: str) -> Callable[[F], F]:
    """Wrap a store method so each call is logged as storage.<operation>."""
    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(self, *args, **kwargs):
            try:
                result = fn(self, *args, **kwargs)
            except StorageError as e:
                logger.warning("storage.%s failed (%s): %s", operation, type(e).__name__, e)
                raise
            if isinstance(result, bool):
                logger.info("storage.%s id=%s removed=%s", operation, _affected_id(args, None), result)
            else:
                logger.info("storage.%s id=%s", operation, _affected_id(args, result))
            return result
        return wrapper  # type: ignore[return-value]
    return decorator
