"""Tests for conversation models."""

import pytest

from chatbridge.core.messages import (
    DEFAULT_SESSION_TITLE,
    Attachment,
    AttachmentKind,
    ChatRole,
    ChatSession,
    create_assistant_turn,
    create_error_turn,
    create_user_turn,
)


def test_turn_factories():
    attachment = Attachment(name="a.txt", payload=b"hi")
    user = create_user_turn("hello", [attachment])
    assistant = create_assistant_turn("hi there")
    error = create_error_turn("Failed to parse response.", "response_parse_failed")

    assert user.is_user and user.attachments == [attachment]
    assert assistant.role == ChatRole.ASSISTANT and not assistant.is_error
    assert error.is_error and error.error_code == "response_parse_failed"
    assert user.id != assistant.id
    assert user.timestamp <= assistant.timestamp


def test_turns_are_immutable():
    turn = create_user_turn("hello")
    with pytest.raises(Exception):
        turn.content = "changed"  # type: ignore[misc]


def test_attachment_decoding():
    assert Attachment(name="x").decoded_text() == ""
    assert Attachment(name="x", payload="héllo".encode("utf-8")).decoded_text() == "héllo"
    assert Attachment(name="x", payload=b"\xff").decoded_text() == "�"
    assert Attachment(name="x.png", kind=AttachmentKind.IMAGE).is_image


def test_session_titles_from_first_user_line():
    session = ChatSession()
    session.append(create_user_turn("  Plan a trip\nto Lisbon"))
    session.append(create_assistant_turn("Sure"))
    session.append(create_user_turn("Another question"))
    assert session.title == "Plan a trip"

    long_session = ChatSession()
    long_session.append(create_user_turn("x" * 200))
    assert len(long_session.title) == 80


def test_session_history_is_a_snapshot_and_clear_resets_title():
    session = ChatSession()
    session.append(create_user_turn("hello"))
    history = session.history()
    session.append(create_assistant_turn("hi"))

    assert len(history) == 1
    session.clear()
    assert session.turns == []
    assert session.title == DEFAULT_SESSION_TITLE
