from __future__ import annotations

from typing import List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.models import Message
from app.services.ai_service import AIReply
from app.services.chat_service import ChatService
from app.services.storage import MemStorage


class FakeAIService:
    """Stands in for AIService: records each history it gets and answers with a fixed reply."""

    def __init__(self, reply: str = "Hi there", error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: List[List[Message]] = []

    async def chat_completion(self, history: Sequence[Message]) -> AIReply:
        self.calls.append(list(history))
        if self.error is not None:
            raise self.error
        return AIReply(text=self.reply, metadata={"model": "x", "processingTime": 5})


@pytest.fixture
def storage() -> MemStorage:
    return MemStorage()


@pytest.fixture
def fake_ai() -> FakeAIService:
    return FakeAIService()


@pytest.fixture
def uploads_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def chat_service(storage, fake_ai, uploads_dir) -> ChatService:
    return ChatService(storage, fake_ai, uploads_dir=uploads_dir)


@pytest.fixture
def user(storage):
    return storage.create_user({
        "username": "tony",
        "email": "tony@stark.com",
        "display_name": "Tony Stark",
        "google_id": "g-tony",
    })


@pytest.fixture
def other_user(storage):
    return storage.create_user({
        "username": "pepper",
        "email": "pepper@stark.com",
        "display_name": "Pepper Potts",
        "google_id": "g-pepper",
    })


@pytest.fixture
def client(storage, fake_ai):
    with TestClient(create_app(storage=storage, ai_service=fake_ai)) as c:
        yield c
