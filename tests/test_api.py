from __future__ import annotations

from fastapi.testclient import TestClient

from app.main import create_app
from tests.conftest import FakeAIService

TONY = {"X-Google-Id": "g-tony"}


def test_root_and_health(client):
    assert client.get("/").json()["message"] == "J.A.R.V.I.S API"
    health = client.get("/health").json()
    assert health == {"status": "healthy", "storage": True, "ai_service": True, "chat_service": True}


def test_session_creates_demo_user_once(client):
    first = client.get("/api/auth/session").json()
    second = client.get("/api/auth/session").json()

    assert first["authenticated"] is True
    assert first["user"]["googleId"] == "demo-user-123"
    assert first["user"]["displayName"] == "Demo User"
    assert first["user"] == second["user"]


def test_unknown_google_id_is_404(client):
    response = client.get("/api/auth/session", headers={"X-Google-Id": "g-ghost"})
    assert response.status_code == 404


def test_google_sign_in_then_session(client):
    response = client.post("/api/auth/google", json={
        "googleId": "g-tony",
        "email": "tony@stark.com",
        "displayName": "Tony Stark",
        "pictureUrl": "https://img/tony.png",
    })
    assert response.status_code == 200
    user = response.json()["user"]
    assert user["username"] == "tony"

    session = client.get("/api/auth/session", headers=TONY).json()
    assert session["user"]["id"] == user["id"]
    assert client.post("/api/auth/logout").json() == {"success": True}


def test_chat_round_trip(client, fake_ai):
    response = client.post("/api/chat", json={"content": "Hello"})
    assert response.status_code == 200
    body = response.json()

    assert [(m["role"], m["content"]) for m in body["messages"]] == [("user", "Hello"), ("assistant", "Hi there")]
    assert body["messages"][1]["metadata"] == {"model": "x", "processingTime": 5}
    assert all(m["conversationId"] == body["conversationId"] for m in body["messages"])

    follow_up = client.post("/api/chat", json={"content": "Again", "conversationId": body["conversationId"]})
    assert len(follow_up.json()["messages"]) == 4

    conversations = client.get("/api/conversations").json()
    assert [c["id"] for c in conversations] == [body["conversationId"]]
    assert conversations[0]["title"] == "Hello..."


def test_chat_rejects_empty_content(client):
    assert client.post("/api/chat", json={"content": ""}).status_code == 422
    assert client.post("/api/chat", json={"content": "   "}).status_code == 400


def test_other_users_conversation_is_forbidden(client):
    client.post("/api/auth/google", json={"googleId": "g-tony", "email": "tony@stark.com"})
    conversation_id = client.post("/api/chat", json={"content": "demo secret"}).json()["conversationId"]

    assert client.get(f"/api/conversations/{conversation_id}/messages", headers=TONY).status_code == 403
    assert client.post(
        "/api/chat", json={"content": "hi", "conversationId": conversation_id}, headers=TONY
    ).status_code == 403
    assert client.delete(f"/api/conversations/{conversation_id}", headers=TONY).status_code == 403
    assert client.get("/api/conversations/999/messages").status_code == 404


def test_rename_search_and_delete_conversation(client):
    conversation_id = client.post("/api/chat", json={"content": "Quantum physics basics"}).json()["conversationId"]

    renamed = client.patch(f"/api/conversations/{conversation_id}", json={"title": "Physics"})
    assert renamed.json()["title"] == "Physics"
    assert [c["id"] for c in client.get("/api/conversations/search", params={"q": "phys"}).json()] == [conversation_id]

    hits = client.get("/api/messages/search", params={"q": "quantum"}).json()
    assert [m["content"] for m in hits] == ["Quantum physics basics"]

    assert client.delete(f"/api/conversations/{conversation_id}").json() == {"success": True}
    assert client.get("/api/conversations").json() == []
    assert client.get(f"/api/conversations/{conversation_id}/messages").status_code == 404


def test_profile_update_and_user_search(client):
    client.get("/api/auth/session")
    client.post("/api/auth/google", json={"googleId": "g-tony", "email": "tony@stark.com"})

    updated = client.patch("/api/users/me", json={"displayName": "Demo Person"})
    assert updated.status_code == 200
    assert updated.json()["displayName"] == "Demo Person"

    taken = client.patch("/api/users/me", json={"username": "tony"})
    assert taken.status_code == 409

    found = client.get("/api/users/search", params={"q": "stark"}).json()
    assert [u["username"] for u in found] == ["tony"]


def test_attach_and_download_file(client, uploads_dir):
    # Point the app's chat service at the test uploads folder.
    client.app.state.chat_service.uploads_dir = uploads_dir.resolve()
    (uploads_dir / "report.txt").write_text("quarterly numbers")

    body = client.post("/api/chat", json={"content": "Summarize the report"}).json()
    message_id = body["messages"][0]["id"]

    created = client.post(f"/api/messages/{message_id}/files", json={
        "fileName": "report.txt",
        "fileType": "text/plain",
        "fileSize": 17,
        "filePath": "report.txt",
    })
    assert created.status_code == 201
    file_id = created.json()["id"]

    messages = client.get(f"/api/conversations/{body['conversationId']}/messages").json()
    assert messages[0]["files"] == [{
        "fileName": "report.txt",
        "fileType": "text/plain",
        "fileSize": 17,
        "fileUrl": f"/api/files/{file_id}",
    }]

    download = client.get(f"/api/files/{file_id}")
    assert download.status_code == 200
    assert download.text == "quarterly numbers"

    bad = client.post(f"/api/messages/{message_id}/files", json={
        "fileName": "virus.exe",
        "fileType": "application/x-msdownload",
        "fileSize": 1,
        "filePath": "report.txt",
    })
    assert bad.status_code == 400
    assert client.get("/api/files/999").status_code == 404


def test_ai_rate_limit_maps_to_429(storage):
    ai = FakeAIService(error=RuntimeError("Error code: 429 - rate limit reached"))
    with TestClient(create_app(storage=storage, ai_service=ai)) as c:
        response = c.post("/api/chat", json={"content": "Hello"})
    assert response.status_code == 429


def test_ai_failure_maps_to_500(storage):
    ai = FakeAIService(error=RuntimeError("provider exploded"))
    with TestClient(create_app(storage=storage, ai_service=ai)) as c:
        response = c.post("/api/chat", json={"content": "Hello"})
    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to process chat message"
