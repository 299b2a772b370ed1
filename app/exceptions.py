"""
ERRORS MODULE
=============

Typed errors raised by the entity store and the chat service. Route handlers
never check for None; they let these propagate and the exception handlers in
app.main turn them into HTTP responses:

  ValidationError        -> 400  (missing or malformed required fields)
  PermissionDeniedError  -> 403  (entity exists but belongs to another user)
  NotFoundError          -> 404  (lookup or mutation target absent)
  ConflictError          -> 409  (uniqueness violation on create/update)
"""

from typing import Any, Optional


class StorageError(Exception):
    """Base class for everything the entity store raises on purpose."""


class ValidationError(StorageError):
    """Required fields are missing, empty, or of the wrong shape."""


class ConflictError(StorageError):
    """A unique field (username, email, google id) is already taken."""

    def __init__(self, entity: str, field: str, value: Any):
        self.entity = entity
        self.field = field
        self.value = value
        super().__init__(f"{entity} with {field} {value!r} already exists")


class NotFoundError(StorageError):
    """No entity matches the given key."""

    def __init__(self, entity: str, key: Any, field: str = "id"):
        self.entity = entity
        self.key = key
        self.field = field
        super().__init__(f"{entity} with {field} {key!r} not found")


class PermissionDeniedError(Exception):
    """The entity exists but the current user does not own it."""

    def __init__(self, entity: str, key: Any, user_id: Optional[int] = None):
        self.entity = entity
        self.key = key
        self.user_id = user_id
        super().__init__(f"Access denied to this {entity.lower()}")
