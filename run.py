"""
RUN SCRIPT - Start the J.A.R.V.I.S server
=========================================

PURPOSE:
  Single entry point to start the backend.

WHAT IT DOES:
  - Serves app.main:app with uvicorn on HOST:PORT (default 0.0.0.0:8000).
  - RELOAD=1 restarts the server when .py files change. The entity store is
    in memory, so every restart starts with no users or conversations.

USAGE:
  python run.py

  API docs: http://localhost:8000/docs

NOTE:
  Set GROQ_API_KEY in .env before running; startup fails without it.
"""

import os

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "0") == "1",
    )
