"""
SERVICES PACKAGE
================

Business logic lives here. The API layer (app.main) calls these services;
they don't handle HTTP.

MODULES:
    storage      - Storage interface and the in-memory MemStorage implementation
    ai_service   - Groq chat model behind chat_completion(history)
    chat_service - Conversation flow, ownership checks, attachments
"""
