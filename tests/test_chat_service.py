from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from app.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from app.models import FileReference, UserUpdate
from app.services.chat_service import make_title
from config import DEMO_GOOGLE_ID, MAX_FILES_PER_MESSAGE


def _chat(chat_service, user, content, conversation_id=None):
    return asyncio.run(chat_service.process_message(user, content, conversation_id))


def test_make_title_uses_first_five_words():
    assert make_title("How do I sort a list in Python?") == "How do I sort a..."
    assert make_title("Hello") == "Hello..."


# -- users -----------------------------------------------------------------------

def test_get_or_create_user_is_idempotent_per_google_id(chat_service):
    first = chat_service.get_or_create_user("g-1", "natasha@shield.gov", "Natasha")
    again = chat_service.get_or_create_user("g-1", "natasha@shield.gov", "Natasha")

    assert first == again
    assert first.username == "natasha"
    assert first.display_name == "Natasha"


def test_get_or_create_user_picks_free_username(chat_service):
    chat_service.get_or_create_user("g-1", "sam@a.com")
    second = chat_service.get_or_create_user("g-2", "sam@b.com")
    third = chat_service.get_or_create_user("g-3", "sam@c.com")

    assert (second.username, third.username) == ("sam2", "sam3")


def test_get_or_create_user_without_email_local_part_gets_generated_username(chat_service):
    user = chat_service.get_or_create_user("g-x", "@example.com")
    assert user.username.startswith("user")
    assert len(user.username) > len("user")


def test_get_or_create_user_with_taken_email_conflicts(chat_service):
    chat_service.get_or_create_user("g-1", "sam@a.com")
    with pytest.raises(ConflictError):
        chat_service.get_or_create_user("g-2", "sam@a.com")


def test_resolve_user(chat_service, user):
    demo = chat_service.resolve_user(None)
    assert demo.google_id == DEMO_GOOGLE_ID
    assert chat_service.resolve_user(None) == demo
    assert chat_service.resolve_user("g-tony") == user
    with pytest.raises(NotFoundError):
        chat_service.resolve_user("g-unknown")


def test_update_profile(chat_service, user):
    updated = chat_service.update_profile(user, UserUpdate(display_name="Iron Man"))
    assert updated.display_name == "Iron Man"
    assert updated.username == user.username


# -- chat flow -------------------------------------------------------------------

def test_first_message_creates_conversation(chat_service, storage, fake_ai, user):
    conversation, messages = _chat(chat_service, user, "Hello there my old friend JARVIS")

    assert conversation.user_id == user.id
    assert conversation.title == "Hello there my old friend..."
    assert [(m.role, m.content) for m in messages] == [
        ("user", "Hello there my old friend JARVIS"),
        ("assistant", "Hi there"),
    ]
    assert messages[0].metadata is None
    assert messages[1].metadata == {"model": "x", "processingTime": 5}
    assert conversation.updated_at >= conversation.created_at
    assert storage.get_conversations_by_user_id(user.id) == [conversation]

    # The AI saw the stored user message as the end of the history.
    assert [m.content for m in fake_ai.calls[0]] == ["Hello there my old friend JARVIS"]


def test_follow_up_uses_existing_conversation_and_full_history(chat_service, fake_ai, user):
    conversation, _ = _chat(chat_service, user, "Hello")
    again, messages = _chat(chat_service, user, "And again", conversation.id)

    assert again.id == conversation.id
    assert [m.content for m in messages] == ["Hello", "Hi there", "And again", "Hi there"]
    assert [m.content for m in fake_ai.calls[1]] == ["Hello", "Hi there", "And again"]


def test_chat_moves_conversation_to_top(chat_service, storage, user):
    older, _ = _chat(chat_service, user, "first topic")
    newer, _ = _chat(chat_service, user, "second topic")
    storage.update_conversation(older.id, {"updated_at": datetime.now(timezone.utc) - timedelta(hours=1)})
    storage.update_conversation(newer.id, {"updated_at": datetime.now(timezone.utc) - timedelta(minutes=30)})

    _chat(chat_service, user, "back to the first", older.id)

    assert [c.id for c in chat_service.list_conversations(user)] == [older.id, newer.id]


def test_chat_in_someone_elses_conversation_is_denied(chat_service, storage, user, other_user):
    theirs = storage.create_conversation({"user_id": other_user.id, "title": "private"})

    with pytest.raises(PermissionDeniedError):
        _chat(chat_service, user, "let me in", theirs.id)
    assert storage.get_messages_by_conversation_id(theirs.id) == []


def test_chat_in_missing_conversation_is_not_found(chat_service, user):
    with pytest.raises(NotFoundError):
        _chat(chat_service, user, "hello?", 404)


def test_blank_message_is_rejected(chat_service, fake_ai, user):
    with pytest.raises(ValidationError):
        _chat(chat_service, user, "   ")
    assert fake_ai.calls == []


def test_ai_failure_keeps_user_message(chat_service, storage, fake_ai, user):
    fake_ai.error = RuntimeError("provider down")

    with pytest.raises(RuntimeError):
        _chat(chat_service, user, "Are you there?")

    conversation = storage.get_conversations_by_user_id(user.id)[0]
    assert [m.role for m in storage.get_messages_by_conversation_id(conversation.id)] == ["user"]


# -- conversations ---------------------------------------------------------------

def test_rename_and_delete_check_ownership(chat_service, storage, user, other_user):
    mine, _ = _chat(chat_service, user, "Hello")

    assert chat_service.rename_conversation(user, mine.id, "Renamed").title == "Renamed"
    with pytest.raises(PermissionDeniedError):
        chat_service.rename_conversation(other_user, mine.id, "Hijacked")
    with pytest.raises(PermissionDeniedError):
        chat_service.delete_conversation(other_user, mine.id)

    assert chat_service.delete_conversation(user, mine.id) is True
    with pytest.raises(NotFoundError):
        storage.get_conversation(mine.id)


def test_searches_are_limited_to_own_conversations(chat_service, storage, user, other_user):
    mine, _ = _chat(chat_service, user, "Weather in Malibu")
    _chat(chat_service, other_user, "Weather in Boston")

    assert chat_service.search_conversations(user, "weather") == [mine]
    hits = chat_service.search_messages(user, "weather")
    assert [m.content for m in hits] == ["Weather in Malibu"]

    chat_service.delete_conversation(user, mine.id)
    assert chat_service.search_messages(user, "weather") == []


# -- files -----------------------------------------------------------------------

def _ref(name="notes.txt", **overrides) -> FileReference:
    fields = {"file_name": name, "file_type": "text/plain", "file_size": 5, "file_path": name}
    fields.update(overrides)
    return FileReference(**fields)


def test_attach_file_and_list_with_messages(chat_service, uploads_dir, user):
    (uploads_dir / "notes.txt").write_text("hello")
    conversation, messages = _chat(chat_service, user, "See attachment")

    attached = chat_service.attach_file(user, messages[0].id, _ref())

    assert attached.file_path == str((uploads_dir / "notes.txt").resolve())
    listed = chat_service.get_messages_with_files(user, conversation.id)
    assert [len(m.files) for m in listed] == [1, 0]
    info = listed[0].files[0]
    assert (info.file_name, info.file_type, info.file_size) == ("notes.txt", "text/plain", 5)
    assert info.file_url == f"/api/files/{attached.id}"
    assert chat_service.get_file_for_user(user, attached.id) == attached


def test_attach_file_validation(chat_service, uploads_dir, tmp_path, user):
    (uploads_dir / "notes.txt").write_text("hello")
    (tmp_path / "secret.txt").write_text("nope")
    _, messages = _chat(chat_service, user, "files")
    message_id = messages[0].id

    with pytest.raises(ValidationError):
        chat_service.attach_file(user, message_id, _ref(file_type="application/x-msdownload"))
    with pytest.raises(ValidationError):
        chat_service.attach_file(user, message_id, _ref(file_size=50 * 1024 * 1024))
    with pytest.raises(ValidationError):
        chat_service.attach_file(user, message_id, _ref(file_path="../secret.txt"))
    with pytest.raises(ValidationError):
        chat_service.attach_file(user, message_id, _ref(file_path="missing.txt"))

    for _ in range(MAX_FILES_PER_MESSAGE):
        chat_service.attach_file(user, message_id, _ref())
    with pytest.raises(ValidationError):
        chat_service.attach_file(user, message_id, _ref())


def test_files_are_private_to_their_owner(chat_service, uploads_dir, user, other_user):
    (uploads_dir / "notes.txt").write_text("hello")
    _, messages = _chat(chat_service, user, "mine")
    attached = chat_service.attach_file(user, messages[0].id, _ref())

    with pytest.raises(PermissionDeniedError):
        chat_service.get_file_for_user(other_user, attached.id)
    with pytest.raises(PermissionDeniedError):
        chat_service.attach_file(other_user, messages[0].id, _ref())
    with pytest.raises(NotFoundError):
        chat_service.get_file_for_user(user, 999)
