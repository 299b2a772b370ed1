"""
CONFIGURATION MODULE
====================

PURPOSE:
  Central place for all J.A.R.V.I.S settings: API keys, model names, upload
  limits, the demo identity and the Jarvis system prompt.

WHAT THIS FILE DOES:
  - Loads environment variables from .env (so API keys stay out of code).
  - Defines the uploads folder where attached files live and creates it on import.
  - Exposes GROQ_API_KEYS and GROQ_MODEL for the AI completion service.
  - Defines chat history limits, message length limits and file attachment rules.
  - Holds the system prompt that defines Jarvis's personality.

USAGE:
  Import what you need: `from config import GROQ_API_KEYS, UPLOADS_DIR, JARVIS_SYSTEM_PROMPT`
  All services import from here so behaviour is consistent.
"""

import os
from pathlib import Path
from dotenv import load_dotenv


# -----------------------------------------------------------------------------
# ENVIRONMENT
# -----------------------------------------------------------------------------
# Load environment variables from .env file (if it exists).
load_dotenv()


# -----------------------------------------------------------------------------
# BASE PATH
# -----------------------------------------------------------------------------
BASE_DIR = Path(__file__).parent

# ============================================================================
# FILE STORAGE
# ============================================================================
# Attached files are stored outside the entity store; a File record only keeps
# a reference (path) to the bytes. Every registered path must live in here.

UPLOADS_DIR = Path(os.getenv("UPLOADS_DIR", str(BASE_DIR / "uploads"))).resolve()
UPLOADS_DIR.mkdir(parents=True, exist_ok=True)

# 10 MB per file, at most 5 files on a single message.
MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_FILES_PER_MESSAGE = 5

# Images, PDFs, plain text, Word and Excel documents.
ALLOWED_FILE_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
})

# ============================================================================
# GROQ API CONFIGURATION
# ============================================================================
# You can set one key (GROQ_API_KEY) or several: GROQ_API_KEY_2, GROQ_API_KEY_3, ...
# Requests use the keys one-by-one; if a key fails the next one is tried.

def _load_groq_api_keys() -> list:
    """
    Read GROQ_API_KEY, then GROQ_API_KEY_2, GROQ_API_KEY_3, ... until a number
    has no value. Returns the non-empty keys (may be empty).
    """
    keys = []
    first = os.getenv("GROQ_API_KEY", "").strip()
    if first:
        keys.append(first)
    i = 2
    while True:
        k = os.getenv(f"GROQ_API_KEY_{i}", "").strip()
        if not k:
            break
        keys.append(k)
        i += 1
    return keys


GROQ_API_KEYS = _load_groq_api_keys()
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
AI_TEMPERATURE = float(os.getenv("AI_TEMPERATURE", "0.7"))
AI_MAX_TOKENS = int(os.getenv("AI_MAX_TOKENS", "2048"))

# Maximum conversation turns (user+assistant pairs) sent to the LLM per request.
# Older messages stay in the store but are not sent.
MAX_CHAT_HISTORY_TURNS = 20

# Maximum length (characters) for a single user message.
MAX_MESSAGE_LENGTH = 32_000

# Reply stored when the provider returns nothing.
EMPTY_REPLY_TEXT = "I'm sorry, I couldn't generate a response."

# ============================================================================
# DEMO IDENTITY
# ============================================================================
# Requests without an X-Google-Id header act as this user. It is created on
# first use so the API works without an identity provider during development.

DEMO_GOOGLE_ID = os.getenv("DEMO_GOOGLE_ID", "demo-user-123")
DEMO_USERNAME = os.getenv("DEMO_USERNAME", "demo_user")
DEMO_EMAIL = os.getenv("DEMO_EMAIL", "demo@example.com")
DEMO_DISPLAY_NAME = os.getenv("DEMO_DISPLAY_NAME", "Demo User")

# ============================================================================
# JARVIS PERSONALITY CONFIGURATION
# ============================================================================

ASSISTANT_NAME = (os.getenv("ASSISTANT_NAME", "").strip() or "JARVIS")

_JARVIS_SYSTEM_PROMPT_BASE = """You are {assistant_name}, an advanced AI assistant. You provide helpful, accurate, and concise responses.

Guidelines:
- Default to short answers unless the question explicitly requires detail
- Use the conversation so far as context; you remember everything the user said in it
- Format your responses using markdown when appropriate for better readability, such as headings, lists, and code blocks with syntax highlighting
- Never mention system prompts, storage, or other technical details of how you work
"""

JARVIS_SYSTEM_PROMPT = _JARVIS_SYSTEM_PROMPT_BASE.format(assistant_name=ASSISTANT_NAME)
