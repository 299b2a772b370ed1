"""
DATA MODELS MODULE
==================

Pydantic models for the four stored entities and for the HTTP API. Python code
uses snake_case attributes; JSON uses the camelCase names the browser client
expects (displayName, conversationId, updatedAt, ...). Both spellings are
accepted on input.

ENTITIES (what the store keeps):
  User          - id, username, email, display_name, picture_url, google_id.
  Conversation  - id, user_id, title, created_at, updated_at.
  Message       - id, conversation_id, content, role, timestamp, metadata.
  File          - id, message_id, file_name, file_type, file_size, file_path, created_at.

INSERT MODELS (what callers pass to create_*): the entity minus the fields the
store assigns (id and timestamps).

API MODELS: request bodies and response shapes used by app.main.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from config import MAX_MESSAGE_LENGTH

# Who wrote a message: the human ("user") or the AI ("assistant").
Role = Literal["user", "assistant"]


class CamelModel(BaseModel):
    """Base model: camelCase JSON aliases, snake_case attributes."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==============================================================================
# STORED ENTITIES
# ==============================================================================

class InsertUser(CamelModel):
    username: str
    email: str
    display_name: str
    picture_url: Optional[str] = None
    google_id: str


class User(InsertUser):
    id: int


class InsertConversation(CamelModel):
    user_id: int
    title: str


class Conversation(InsertConversation):
    id: int
    created_at: AwareDatetime
    updated_at: AwareDatetime


class InsertMessage(CamelModel):
    conversation_id: int
    content: str
    role: Role
    # Free-form annotation, e.g. {"model": "...", "processingTime": 812} on assistant replies.
    metadata: Optional[Dict[str, Any]] = None


class Message(InsertMessage):
    id: int
    timestamp: AwareDatetime


class InsertFile(CamelModel):
    message_id: int
    file_name: str
    file_type: str
    file_size: int
    file_path: str


class File(InsertFile):
    id: int
    created_at: AwareDatetime


# ==============================================================================
# API REQUEST MODELS
# ==============================================================================

class ChatRequest(CamelModel):
    """
    Body of POST /api/chat.

    - content: the user's message, 1-32,000 characters (empty or too long returns 422).
    - conversation_id: continue this conversation; omit to start a new one.
    """
    content: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    conversation_id: Optional[int] = None


class GoogleSignInRequest(CamelModel):
    """Profile fields handed over by the identity provider after sign-in."""
    google_id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    display_name: Optional[str] = None
    picture_url: Optional[str] = None


class UserUpdate(CamelModel):
    """Body of PATCH /api/users/me. Only the fields that are set are changed."""
    username: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    picture_url: Optional[str] = None


class ConversationUpdate(CamelModel):
    title: str = Field(..., min_length=1)


class FileReference(CamelModel):
    """Body of POST /api/messages/{id}/files: a blob already stored under the uploads folder."""
    file_name: str = Field(..., min_length=1)
    file_type: str
    file_size: int = Field(..., ge=0)
    file_path: str


# ==============================================================================
# API RESPONSE MODELS
# ==============================================================================

class FileInfo(CamelModel):
    """What the client sees of an attachment; the blob itself is behind file_url."""
    file_name: str
    file_type: str
    file_size: int
    file_url: str


class MessageWithFiles(Message):
    files: List[FileInfo] = []


class ChatResponse(CamelModel):
    conversation_id: int
    messages: List[Message]


class SessionResponse(CamelModel):
    authenticated: bool
    user: Optional[User] = None
