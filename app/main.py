"""
J.A.R.V.I.S MAIN API
====================

This module builds the FastAPI application and all HTTP endpoints.

ENDPOINTS:
  GET    /                                 - API name and list of endpoints.
  GET    /health                           - Status of each service (for monitoring).
  GET    /api/auth/session                 - Current user (demo user without X-Google-Id).
  POST   /api/auth/google                  - Sign in with identity-provider profile fields.
  POST   /api/auth/logout                  - End the session on the client.
  PATCH  /api/users/me                     - Update the current user's profile.
  GET    /api/users/search?q=              - Find users by username or email.
  POST   /api/chat                         - Send a message, get the whole conversation back.
  GET    /api/conversations                - Current user's conversations, most recent first.
  GET    /api/conversations/search?q=      - Search the user's conversations by title.
  PATCH  /api/conversations/{id}           - Rename a conversation.
  DELETE /api/conversations/{id}           - Delete a conversation.
  GET    /api/conversations/{id}/messages  - Messages of a conversation with their files.
  GET    /api/messages/search?q=           - Search the user's messages by content.
  POST   /api/messages/{id}/files          - Attach an already stored file to a message.
  GET    /api/files/{id}                   - Download an attached file.

CURRENT USER:
  The X-Google-Id header names the signed-in user. Without it the request acts
  as the demo user, which is created on first use.

STARTUP:
  create_app() wires a lifespan that builds the entity store (MemStorage), the
  AI service and the chat service, and keeps them on app.state. Tests pass
  their own storage / AI service into create_app() instead.

ERRORS:
  Typed errors from the store and chat service become 400 / 403 / 404 / 409;
  AI provider failures become 429 (rate limit) or 500.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
import uvicorn

from app.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from app.models import (
    ChatRequest,
    ChatResponse,
    Conversation,
    ConversationUpdate,
    File,
    FileReference,
    GoogleSignInRequest,
    Message,
    MessageWithFiles,
    SessionResponse,
    User,
    UserUpdate,
)
from app.services.ai_service import AIService
from app.services.chat_service import ChatService
from app.services.storage import MemStorage, Storage

# User-friendly message when the AI provider's rate limit is exceeded.
RATE_LIMIT_MESSAGE = (
    "You've reached the API limit for this assistant. "
    "Please try again in a little while."
)


def _is_rate_limit_error(exc: Exception) -> bool:
    """True if the exception looks like a provider rate limit (429 / tokens per day)."""
    msg = str(exc).lower()
    return "429" in msg or "rate limit" in msg or "tokens per day" in msg


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("J.A.R.V.I.S")


# -----------------------------------------------------------------------------
# DEPENDENCIES
# -----------------------------------------------------------------------------

async def get_chat_service(request: Request) -> ChatService:
    chat_service = getattr(request.app.state, "chat_service", None)
    if chat_service is None:
        raise HTTPException(status_code=503, detail="Chat service not initialized")
    return chat_service


async def get_current_user(
    x_google_id: Optional[str] = Header(default=None),
    chat_service: ChatService = Depends(get_chat_service),
) -> User:
    try:
        return chat_service.resolve_user(x_google_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="User not found")


# =========================================================================
# API ENDPOINTS
# =========================================================================

router = APIRouter()


@router.get("/")
async def root():
    """Return the API name and a short description of each endpoint (for discovery)."""
    return {
        "message": "J.A.R.V.I.S API",
        "endpoints": {
            "/api/auth/session": "Current user",
            "/api/chat": "Send a message (creates a conversation when conversationId is omitted)",
            "/api/conversations": "List, rename, delete and search conversations",
            "/api/conversations/{id}/messages": "Messages of a conversation with attachments",
            "/api/messages/search": "Search your messages",
            "/api/files/{id}": "Download an attachment",
            "/health": "System health check",
        }
    }


@router.get("/health")
async def health(request: Request):
    """Return 'healthy' and whether each service is initialized."""
    state = request.app.state
    return {
        "status": "healthy",
        "storage": getattr(state, "storage", None) is not None,
        "ai_service": getattr(state, "ai_service", None) is not None,
        "chat_service": getattr(state, "chat_service", None) is not None,
    }


# -- auth & users ---------------------------------------------------------------

@router.get("/api/auth/session", response_model=SessionResponse)
async def session(user: User = Depends(get_current_user)):
    return SessionResponse(authenticated=True, user=user)


@router.post("/api/auth/google", response_model=SessionResponse)
async def google_sign_in(body: GoogleSignInRequest, chat_service: ChatService = Depends(get_chat_service)):
    """
    Sign in with the profile the identity provider returned. Token verification
    happens in front of this service; here we only find or create the user.
    """
    user = chat_service.get_or_create_user(
        google_id=body.google_id,
        email=body.email,
        display_name=body.display_name,
        picture_url=body.picture_url,
    )
    return SessionResponse(authenticated=True, user=user)


@router.post("/api/auth/logout")
async def logout():
    return {"success": True}


@router.patch("/api/users/me", response_model=User)
async def update_me(
    body: UserUpdate,
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    return chat_service.update_profile(user, body)


@router.get("/api/users/search", response_model=List[User])
async def search_users(
    q: str = Query(default=""),
    _user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    return chat_service.search_users(q)


# -- chat -----------------------------------------------------------------------

@router.post("/api/chat", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    """
    Send a message to J.A.R.V.I.S.

    HOW IT WORKS:
    1. Uses conversationId if given (must be yours), otherwise starts a new conversation
    2. Stores your message
    3. Sends the conversation so far to the AI service
    4. Stores the reply and marks the conversation as just updated
    5. Returns the conversation id and all of its messages

    REQUEST BODY:
    {
        "content": "What is Python?",
        "conversationId": 3          (optional)
    }
    """
    try:
        conversation, messages = await chat_service.process_message(
            user, body.content, body.conversation_id
        )
        return ChatResponse(conversation_id=conversation.id, messages=messages)
    except (StorageError, PermissionDeniedError):
        raise
    except Exception as e:
        if _is_rate_limit_error(e):
            logger.warning(f"Rate limit hit: {e}")
            raise HTTPException(status_code=429, detail=RATE_LIMIT_MESSAGE)
        logger.error(f"Error processing chat: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process chat message")


# -- conversations --------------------------------------------------------------

@router.get("/api/conversations", response_model=List[Conversation])
async def list_conversations(
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    return chat_service.list_conversations(user)


@router.get("/api/conversations/search", response_model=List[Conversation])
async def search_conversations(
    q: str = Query(default=""),
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    return chat_service.search_conversations(user, q)


@router.patch("/api/conversations/{conversation_id}", response_model=Conversation)
async def rename_conversation(
    conversation_id: int,
    body: ConversationUpdate,
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    return chat_service.rename_conversation(user, conversation_id, body.title)


@router.delete("/api/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: int,
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    return {"success": chat_service.delete_conversation(user, conversation_id)}


@router.get("/api/conversations/{conversation_id}/messages", response_model=List[MessageWithFiles])
async def get_conversation_messages(
    conversation_id: int,
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    return chat_service.get_messages_with_files(user, conversation_id)


# -- messages & files -----------------------------------------------------------

@router.get("/api/messages/search", response_model=List[Message])
async def search_messages(
    q: str = Query(default=""),
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    return chat_service.search_messages(user, q)


@router.post("/api/messages/{message_id}/files", response_model=File, status_code=201)
async def attach_file(
    message_id: int,
    body: FileReference,
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    return chat_service.attach_file(user, message_id, body)


@router.get("/api/files/{file_id}")
async def download_file(
    file_id: int,
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    file = chat_service.get_file_for_user(user, file_id)
    if not Path(file.file_path).is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(file.file_path, media_type=file.file_type, filename=file.file_name)


# -------------------------------------------------------------------------
# ERROR HANDLERS
# -------------------------------------------------------------------------

def _error_response(status_code: int):
    async def handler(request: Request, exc: Exception):
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


# -------------------------------------------------------------------------
# APP FACTORY
# -------------------------------------------------------------------------

def create_app(storage: Optional[Storage] = None, ai_service: Optional[AIService] = None) -> FastAPI:
    """
    Build the FastAPI app. Services are created in the lifespan (once per
    process start) unless passed in, and live on app.state until shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 60)
        logger.info("J.A.R.V.I.S - Starting Up...")
        logger.info("=" * 60)

        try:
            app.state.storage = storage if storage is not None else MemStorage()
            logger.info("Entity store ready: %s", type(app.state.storage).__name__)

            app.state.ai_service = ai_service if ai_service is not None else AIService()
            logger.info("AI service ready")

            app.state.chat_service = ChatService(app.state.storage, app.state.ai_service)
            logger.info("Chat service ready")
        except Exception as e:
            logger.error(f"Fatal error during startup: {e}", exc_info=True)
            raise

        logger.info("J.A.R.V.I.S is online and ready!")
        yield

        logger.info("Shutting down J.A.R.V.I.S...")
        app.state.chat_service = None
        app.state.ai_service = None
        app.state.storage = None
        logger.info("Goodbye!")

    app = FastAPI(
        title="J.A.R.V.I.S API",
        description="Just A Rather Very Intelligent System",
        lifespan=lifespan,
    )

    # Allow any origin so a frontend on another port or device can call this API.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ValidationError, _error_response(400))
    app.add_exception_handler(PermissionDeniedError, _error_response(403))
    app.add_exception_handler(NotFoundError, _error_response(404))
    app.add_exception_handler(ConflictError, _error_response(409))

    app.include_router(router)
    return app


app = create_app()


# -------------------------------------------------------------------------
# STANDALONE RUN (python -m app.main)
# -------------------------------------------------------------------------
def run():
    """Start the uvicorn server (same as run.py); used if someone does python -m app.main"""
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )

if __name__ == "__main__":
    run()
