"""
ENTITY STORE MODULE
===================

The persistence seam of J.A.R.V.I.S. Everything above this module (chat
service, HTTP routes) talks to the abstract Storage class; MemStorage is the
one implementation, chosen once in app.main's lifespan and passed down. A
database-backed class can replace it later without touching any caller.

ENTITIES: users, conversations, messages, files (see app.models).

RULES:
  - Ids come from one counter per entity type, start at 1 and are never reused,
    not even after a conversation is deleted.
  - Single-entity reads and mutations raise NotFoundError instead of returning
    None. List and search methods return [] when nothing matches.
  - create_user rejects empty username/email/google_id (ValidationError) and
    duplicates of any of the three (ConflictError).
  - New conversations, messages and files must point at an existing parent
    (NotFoundError otherwise).
  - Messages come back oldest first; ties on timestamp keep insertion order.
  - A user's conversations come back most recently updated first.
  - Deleting a conversation does not delete its messages or files.
  - Entities handed out are copies; changing them does not change the store.

Every mutating method is wrapped by log_operation, which logs the call and
re-raises typed errors unchanged.
"""

import itertools
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import (
    Conversation,
    File,
    InsertConversation,
    InsertFile,
    InsertMessage,
    InsertUser,
    Message,
    User,
)
from app.utils.logging_utils import log_operation

M = TypeVar("M", bound=BaseModel)

Fields = Union[BaseModel, Mapping[str, Any]]


# ==============================================================================
# STORAGE INTERFACE
# ==============================================================================

class Storage(ABC):
    """Every persistence operation the rest of the server may use."""

    # -- users -----------------------------------------------------------------

    @abstractmethod
    def create_user(self, fields: Fields) -> User: ...

    @abstractmethod
    def get_user(self, user_id: int) -> User: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> User: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> User: ...

    @abstractmethod
    def get_user_by_google_id(self, google_id: str) -> User: ...

    @abstractmethod
    def update_user(self, user_id: int, changes: Fields) -> User: ...

    @abstractmethod
    def search_users(self, query: str, case_sensitive: bool = True) -> List[User]: ...

    @abstractmethod
    def get_users_by_ids(self, ids: Iterable[int]) -> List[User]: ...

    # -- conversations ---------------------------------------------------------

    @abstractmethod
    def create_conversation(self, fields: Fields) -> Conversation: ...

    @abstractmethod
    def get_conversation(self, conversation_id: int) -> Conversation: ...

    @abstractmethod
    def get_conversations_by_user_id(self, user_id: int) -> List[Conversation]: ...

    @abstractmethod
    def update_conversation(self, conversation_id: int, changes: Fields) -> Conversation: ...

    @abstractmethod
    def delete_conversation(self, conversation_id: int) -> bool: ...

    @abstractmethod
    def search_conversations(self, query: str, case_sensitive: bool = True) -> List[Conversation]: ...

    # -- messages --------------------------------------------------------------

    @abstractmethod
    def create_message(self, fields: Fields) -> Message: ...

    @abstractmethod
    def get_message(self, message_id: int) -> Message: ...

    @abstractmethod
    def get_messages_by_conversation_id(self, conversation_id: int) -> List[Message]: ...

    @abstractmethod
    def search_messages(self, query: str, case_sensitive: bool = True) -> List[Message]: ...

    # -- files -----------------------------------------------------------------

    @abstractmethod
    def create_file(self, fields: Fields) -> File: ...

    @abstractmethod
    def get_file(self, file_id: int) -> File: ...

    @abstractmethod
    def get_files_by_message_id(self, message_id: int) -> List[File]: ...


# ==============================================================================
# HELPERS
# ==============================================================================

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _coerce(model: Type[M], fields: Fields) -> M:
    """Turn a dict or another model into `model`, converting pydantic errors into ValidationError."""
    if type(fields) is model:
        return fields
    if isinstance(fields, BaseModel):
        fields = fields.model_dump()
    try:
        return model.model_validate(fields)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model.__name__} fields: {e}") from e


def _normalize_changes(model: Type[BaseModel], changes: Fields, immutable: Iterable[str]) -> Dict[str, Any]:
    """
    Map a partial update (snake_case or camelCase keys) onto `model`'s field names.
    Unknown keys and fields listed in `immutable` raise ValidationError.
    """
    if isinstance(changes, BaseModel):
        changes = changes.model_dump(exclude_unset=True)
    by_alias = {info.alias or name: name for name, info in model.model_fields.items()}
    normalized = {}
    for key, value in changes.items():
        name = key if key in model.model_fields else by_alias.get(key)
        if name is None:
            raise ValidationError(f"{model.__name__} has no field {key!r}")
        if name in immutable:
            raise ValidationError(f"{model.__name__}.{name} cannot be changed")
        normalized[name] = value
    return normalized


def _merge(entity: M, changes: Dict[str, Any]) -> M:
    try:
        return type(entity).model_validate({**entity.model_dump(), **changes})
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {type(entity).__name__} update: {e}") from e


def _matches(text: str, query: str, case_sensitive: bool) -> bool:
    if case_sensitive:
        return query in text
    return query.casefold() in text.casefold()


# ==============================================================================
# IN-MEMORY IMPLEMENTATION
# ==============================================================================

class MemStorage(Storage):
    """
    Keeps all four entity types in dicts keyed by id. Lives as long as the
    process (or the test) that created it; nothing is written to disk.
    """

    def __init__(self):
        self._users: Dict[int, User] = {}
        self._conversations: Dict[int, Conversation] = {}
        self._messages: Dict[int, Message] = {}
        self._files: Dict[int, File] = {}

        self._user_ids = itertools.count(1)
        self._conversation_ids = itertools.count(1)
        self._message_ids = itertools.count(1)
        self._file_ids = itertools.count(1)

    # ------------------------------------------------------------------------------
    # USERS
    # ------------------------------------------------------------------------------

    def _check_user_fields(self, user: Union[InsertUser, User]):
        for field in ("username", "email", "google_id"):
            if not getattr(user, field).strip():
                raise ValidationError(f"User {field} must not be empty")

    def _check_user_unique(self, user: Union[InsertUser, User], exclude_id: int = None):
        for existing in self._users.values():
            if existing.id == exclude_id:
                continue
            for field in ("username", "email", "google_id"):
                if getattr(existing, field) == getattr(user, field):
                    raise ConflictError("User", field, getattr(user, field))

    def _find_user(self, field: str, value: Any) -> User:
        for user in self._users.values():
            if getattr(user, field) == value:
                return user.model_copy(deep=True)
        raise NotFoundError("User", value, field)

    @log_operation("create_user")
    def create_user(self, fields: Fields) -> User:
        insert = _coerce(InsertUser, fields)
        self._check_user_fields(insert)
        self._check_user_unique(insert)
        user = User(id=next(self._user_ids), **insert.model_dump())
        self._users[user.id] = user
        return user.model_copy(deep=True)

    def get_user(self, user_id: int) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user.model_copy(deep=True)

    def get_user_by_username(self, username: str) -> User:
        return self._find_user("username", username)

    def get_user_by_email(self, email: str) -> User:
        return self._find_user("email", email)

    def get_user_by_google_id(self, google_id: str) -> User:
        return self._find_user("google_id", google_id)

    @log_operation("update_user")
    def update_user(self, user_id: int, changes: Fields) -> User:
        current = self._users.get(user_id)
        if current is None:
            raise NotFoundError("User", user_id)
        updated = _merge(current, _normalize_changes(User, changes, immutable=("id", "google_id")))
        self._check_user_fields(updated)
        self._check_user_unique(updated, exclude_id=user_id)
        self._users[user_id] = updated
        return updated.model_copy(deep=True)

    def search_users(self, query: str, case_sensitive: bool = True) -> List[User]:
        return [
            user.model_copy(deep=True)
            for user in self._users.values()
            if _matches(user.username, query, case_sensitive) or _matches(user.email, query, case_sensitive)
        ]

    def get_users_by_ids(self, ids: Iterable[int]) -> List[User]:
        # dict.fromkeys drops repeated ids but keeps the caller's order.
        return [
            self._users[user_id].model_copy(deep=True)
            for user_id in dict.fromkeys(ids)
            if user_id in self._users
        ]

    # ------------------------------------------------------------------------------
    # CONVERSATIONS
    # ------------------------------------------------------------------------------

    @log_operation("create_conversation")
    def create_conversation(self, fields: Fields) -> Conversation:
        insert = _coerce(InsertConversation, fields)
        if insert.user_id not in self._users:
            raise NotFoundError("User", insert.user_id)
        now = _now()
        conversation = Conversation(
            id=next(self._conversation_ids),
            created_at=now,
            updated_at=now,
            **insert.model_dump(),
        )
        self._conversations[conversation.id] = conversation
        return conversation.model_copy(deep=True)

    def get_conversation(self, conversation_id: int) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation", conversation_id)
        return conversation.model_copy(deep=True)

    def get_conversations_by_user_id(self, user_id: int) -> List[Conversation]:
        owned = [c for c in self._conversations.values() if c.user_id == user_id]
        # sorted() is stable with reverse=True, so equal updated_at keep insertion order.
        owned = sorted(owned, key=lambda c: c.updated_at, reverse=True)
        return [c.model_copy(deep=True) for c in owned]

    @log_operation("update_conversation")
    def update_conversation(self, conversation_id: int, changes: Fields) -> Conversation:
        current = self._conversations.get(conversation_id)
        if current is None:
            raise NotFoundError("Conversation", conversation_id)
        normalized = _normalize_changes(Conversation, changes, immutable=("id",))
        if "user_id" in normalized and normalized["user_id"] not in self._users:
            raise NotFoundError("User", normalized["user_id"])
        updated = _merge(current, normalized)
        self._conversations[conversation_id] = updated
        return updated.model_copy(deep=True)

    @log_operation("delete_conversation")
    def delete_conversation(self, conversation_id: int) -> bool:
        return self._conversations.pop(conversation_id, None) is not None

    def search_conversations(self, query: str, case_sensitive: bool = True) -> List[Conversation]:
        return [
            c.model_copy(deep=True)
            for c in self._conversations.values()
            if _matches(c.title, query, case_sensitive)
        ]

    # ------------------------------------------------------------------------------
    # MESSAGES
    # ------------------------------------------------------------------------------

    @log_operation("create_message")
    def create_message(self, fields: Fields) -> Message:
        insert = _coerce(InsertMessage, fields)
        if insert.conversation_id not in self._conversations:
            raise NotFoundError("Conversation", insert.conversation_id)
        message = Message(id=next(self._message_ids), timestamp=_now(), **insert.model_dump())
        self._messages[message.id] = message
        return message.model_copy(deep=True)

    def get_message(self, message_id: int) -> Message:
        message = self._messages.get(message_id)
        if message is None:
            raise NotFoundError("Message", message_id)
        return message.model_copy(deep=True)

    def get_messages_by_conversation_id(self, conversation_id: int) -> List[Message]:
        thread = [m for m in self._messages.values() if m.conversation_id == conversation_id]
        thread.sort(key=lambda m: (m.timestamp, m.id))
        return [m.model_copy(deep=True) for m in thread]

    def search_messages(self, query: str, case_sensitive: bool = True) -> List[Message]:
        return [
            m.model_copy(deep=True)
            for m in self._messages.values()
            if _matches(m.content, query, case_sensitive)
        ]

    # ------------------------------------------------------------------------------
    # FILES
    # ------------------------------------------------------------------------------

    @log_operation("create_file")
    def create_file(self, fields: Fields) -> File:
        insert = _coerce(InsertFile, fields)
        if insert.message_id not in self._messages:
            raise NotFoundError("Message", insert.message_id)
        file = File(id=next(self._file_ids), created_at=_now(), **insert.model_dump())
        self._files[file.id] = file
        return file.model_copy(deep=True)

    def get_file(self, file_id: int) -> File:
        file = self._files.get(file_id)
        if file is None:
            raise NotFoundError("File", file_id)
        return file.model_copy(deep=True)

    def get_files_by_message_id(self, message_id: int) -> List[File]:
        return [f.model_copy(deep=True) for f in self._files.values() if f.message_id == message_id]
