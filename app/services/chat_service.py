"""
CHAT SERVICE MODULE
===================

The glue between the HTTP routes, the entity store and the AI service. Routes
call these methods with the current user; this module decides which
conversation a message goes to, checks that the user owns what they touch,
stores both sides of the exchange and keeps conversations' updated_at fresh.

CHAT FLOW (process_message):
  1. Use the given conversation (must belong to the user) or create one titled
     with the first five words of the message.
  2. Store the user's message.
  3. Send the conversation history to the AI service.
  4. Store the assistant's reply with its metadata (model, processingTime).
  5. Set the conversation's updated_at to now so it moves to the top of the list.

The steps are not atomic: if the AI call fails, the user's message (and a new
conversation) stay in the store.
"""

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from app.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from app.models import (
    Conversation,
    File,
    FileInfo,
    FileReference,
    Message,
    MessageWithFiles,
    User,
    UserUpdate,
)
from app.services.ai_service import AIService
from app.services.storage import Storage
from config import (
    ALLOWED_FILE_TYPES,
    DEMO_DISPLAY_NAME,
    DEMO_EMAIL,
    DEMO_GOOGLE_ID,
    DEMO_USERNAME,
    MAX_FILE_SIZE,
    MAX_FILES_PER_MESSAGE,
    UPLOADS_DIR,
)

logger = logging.getLogger("J.A.R.V.I.S")

TITLE_WORDS = 5


def make_title(content: str) -> str:
    """First five words of the opening message, e.g. 'How do I sort a...'."""
    return " ".join(content.split()[:TITLE_WORDS]) + "..."


# ==============================================================================
# CHAT SERVICE CLASS
# ==============================================================================

class ChatService:
    """
    Owns no state of its own: everything lives in the injected Storage, so a
    fresh MemStorage gives a fresh service (handy in tests).
    """

    def __init__(self, storage: Storage, ai_service: AIService, uploads_dir: Path = UPLOADS_DIR):
        self.storage = storage
        self.ai_service = ai_service
        self.uploads_dir = Path(uploads_dir).resolve()

    # ------------------------------------------------------------------------------
    # USERS
    # ------------------------------------------------------------------------------

    def _free_username(self, base: str) -> str:
        """base, or base2, base3, ... whichever is not taken yet."""
        candidate, n = base, 1
        while True:
            try:
                self.storage.get_user_by_username(candidate)
            except NotFoundError:
                return candidate
            n += 1
            candidate = f"{base}{n}"

    def get_or_create_user(
        self,
        google_id: str,
        email: str,
        display_name: Optional[str] = None,
        picture_url: Optional[str] = None,
    ) -> User:
        """Find the user for an identity-provider id, creating them on first sign-in."""
        try:
            return self.storage.get_user_by_google_id(google_id)
        except NotFoundError:
            pass

        base = email.split("@")[0] or f"user{int(time.time() * 1000)}"
        user = self.storage.create_user({
            "username": self._free_username(base),
            "email": email,
            "display_name": display_name or "User",
            "picture_url": picture_url,
            "google_id": google_id,
        })
        logger.info("New user signed in: %s (id=%s)", user.username, user.id)
        return user

    def get_demo_user(self) -> User:
        """The development identity used when a request carries no X-Google-Id."""
        try:
            return self.storage.get_user_by_google_id(DEMO_GOOGLE_ID)
        except NotFoundError:
            return self.storage.create_user({
                "username": DEMO_USERNAME,
                "email": DEMO_EMAIL,
                "display_name": DEMO_DISPLAY_NAME,
                "google_id": DEMO_GOOGLE_ID,
            })

    def resolve_user(self, google_id: Optional[str]) -> User:
        """The user behind a request. Unknown google ids raise NotFoundError (they must sign in first)."""
        if not google_id:
            return self.get_demo_user()
        return self.storage.get_user_by_google_id(google_id)

    def update_profile(self, user: User, changes: UserUpdate) -> User:
        return self.storage.update_user(user.id, changes)

    def search_users(self, query: str) -> List[User]:
        return self.storage.search_users(query)

    # ------------------------------------------------------------------------------
    # CONVERSATIONS
    # ------------------------------------------------------------------------------

    def get_user_conversation(self, user: User, conversation_id: int) -> Conversation:
        """The conversation if the user owns it; NotFoundError or PermissionDeniedError otherwise."""
        conversation = self.storage.get_conversation(conversation_id)
        if conversation.user_id != user.id:
            raise PermissionDeniedError("Conversation", conversation_id, user.id)
        return conversation

    def list_conversations(self, user: User) -> List[Conversation]:
        return self.storage.get_conversations_by_user_id(user.id)

    def rename_conversation(self, user: User, conversation_id: int, title: str) -> Conversation:
        self.get_user_conversation(user, conversation_id)
        return self.storage.update_conversation(conversation_id, {"title": title})

    def delete_conversation(self, user: User, conversation_id: int) -> bool:
        # Messages and files of the conversation are left in the store.
        self.get_user_conversation(user, conversation_id)
        return self.storage.delete_conversation(conversation_id)

    def search_conversations(self, user: User, query: str) -> List[Conversation]:
        return [c for c in self.storage.search_conversations(query, case_sensitive=False) if c.user_id == user.id]

    # ------------------------------------------------------------------------------
    # MESSAGES
    # ------------------------------------------------------------------------------

    async def process_message(
        self,
        user: User,
        content: str,
        conversation_id: Optional[int] = None,
    ) -> Tuple[Conversation, List[Message]]:
        """Store the user's message, get the AI reply, store it; returns the conversation and all its messages."""
        if not content.strip():
            raise ValidationError("Message content must not be empty")

        if conversation_id is not None:
            conversation = self.get_user_conversation(user, conversation_id)
        else:
            conversation = self.storage.create_conversation({"user_id": user.id, "title": make_title(content)})

        self.storage.create_message({
            "conversation_id": conversation.id,
            "content": content,
            "role": "user",
        })

        history = self.storage.get_messages_by_conversation_id(conversation.id)
        reply = await self.ai_service.chat_completion(history)

        self.storage.create_message({
            "conversation_id": conversation.id,
            "content": reply.text,
            "role": "assistant",
            "metadata": reply.metadata,
        })
        conversation = self.storage.update_conversation(
            conversation.id, {"updated_at": datetime.now(timezone.utc)}
        )
        return conversation, self.storage.get_messages_by_conversation_id(conversation.id)

    def get_messages_with_files(self, user: User, conversation_id: int) -> List[MessageWithFiles]:
        self.get_user_conversation(user, conversation_id)
        return [
            MessageWithFiles(**message.model_dump(), files=self._file_infos(message.id))
            for message in self.storage.get_messages_by_conversation_id(conversation_id)
        ]

    def search_messages(self, user: User, query: str) -> List[Message]:
        """Store-wide content search narrowed to conversations the user still owns."""
        owned = {c.id for c in self.storage.get_conversations_by_user_id(user.id)}
        return [m for m in self.storage.search_messages(query, case_sensitive=False) if m.conversation_id in owned]

    # ------------------------------------------------------------------------------
    # FILES
    # ------------------------------------------------------------------------------

    def _file_infos(self, message_id: int) -> List[FileInfo]:
        return [
            FileInfo(
                file_name=f.file_name,
                file_type=f.file_type,
                file_size=f.file_size,
                file_url=f"/api/files/{f.id}",
            )
            for f in self.storage.get_files_by_message_id(message_id)
        ]

    def _resolve_blob_path(self, file_path: str) -> Path:
        path = Path(file_path)
        if not path.is_absolute():
            path = self.uploads_dir / path
        path = path.resolve()
        if not path.is_relative_to(self.uploads_dir):
            raise ValidationError("File path must point inside the uploads folder")
        if not path.is_file():
            raise ValidationError(f"No stored file at {file_path}")
        return path

    def attach_file(self, user: User, message_id: int, ref: FileReference) -> File:
        """Record an already stored blob as an attachment of one of the user's messages."""
        message = self.storage.get_message(message_id)
        self.get_user_conversation(user, message.conversation_id)

        if ref.file_type not in ALLOWED_FILE_TYPES:
            raise ValidationError(f"File type {ref.file_type} not supported")
        if ref.file_size > MAX_FILE_SIZE:
            raise ValidationError(f"File is larger than {MAX_FILE_SIZE // (1024 * 1024)} MB")
        if len(self.storage.get_files_by_message_id(message_id)) >= MAX_FILES_PER_MESSAGE:
            raise ValidationError(f"A message can carry at most {MAX_FILES_PER_MESSAGE} files")

        return self.storage.create_file({
            "message_id": message_id,
            "file_name": ref.file_name,
            "file_type": ref.file_type,
            "file_size": ref.file_size,
            "file_path": str(self._resolve_blob_path(ref.file_path)),
        })

    def get_file_for_user(self, user: User, file_id: int) -> File:
        file = self.storage.get_file(file_id)
        message = self.storage.get_message(file.message_id)
        self.get_user_conversation(user, message.conversation_id)
        return file
