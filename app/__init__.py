"""
J.A.R.V.I.S APPLICATION PACKAGE
===============================

Main Python package for the J.A.R.V.I.S chat backend:

  from app.main import app, create_app
  from app.services.storage import Storage, MemStorage
  from app.services.chat_service import ChatService

FILE STRUCTURE:
  app/
    __init__.py    - This file; marks 'app' as a package.
    main.py        - FastAPI app factory and all HTTP endpoints.
    models.py      - Pydantic models for users, conversations, messages, files and API bodies.
    exceptions.py  - Typed errors (ValidationError, ConflictError, NotFoundError, PermissionDeniedError).
    services/      - Entity store, AI completion service, chat orchestration.
    utils/         - Helpers: retry with backoff, logging of store operations.
"""
