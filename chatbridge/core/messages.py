"""Conversation models shared by the chat layer and its callers."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class ChatRole(str, Enum):
    """Author of a turn."""

    USER = "user"
    ASSISTANT = "assistant"


class AttachmentKind(str, Enum):
    IMAGE = "image"
    DOCUMENT = "document"
    PDF = "pdf"
    CODE = "code"
    AUDIO = "audio"
    VIDEO = "video"
    OTHER = "other"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class Attachment(BaseModel):
    """A named blob attached to a turn.

    ``payload`` may be absent for placeholder attachments added before the
    underlying file has been read.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    name: str
    kind: AttachmentKind = AttachmentKind.OTHER
    payload: Optional[bytes] = None

    @property
    def is_image(self) -> bool:
        return self.kind == AttachmentKind.IMAGE

    def decoded_text(self) -> str:
        """Payload as text; undecodable bytes are replaced rather than raised."""
        if not self.payload:
            return ""
        return self.payload.decode("utf-8", errors="replace")


class ChatTurn(BaseModel):
    """One immutable message in a conversation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    role: ChatRole
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    attachments: List[Attachment] = Field(default_factory=list)
    # Set on assistant turns that report a failed request instead of a reply.
    is_error: bool = False
    error_code: Optional[str] = None

    @property
    def is_user(self) -> bool:
        return self.role == ChatRole.USER


def create_user_turn(content: str, attachments: Sequence[Attachment] = ()) -> ChatTurn:
    return ChatTurn(role=ChatRole.USER, content=content, attachments=list(attachments))


def create_assistant_turn(content: str) -> ChatTurn:
    return ChatTurn(role=ChatRole.ASSISTANT, content=content)


def create_error_turn(content: str, error_code: Optional[str]) -> ChatTurn:
    """Assistant-authored notice that keeps history linear after a failure."""
    return ChatTurn(
        role=ChatRole.ASSISTANT,
        content=content,
        is_error=True,
        error_code=error_code,
    )


DEFAULT_SESSION_TITLE = "New Chat"


class ChatSession(BaseModel):
    """A titled, ordered list of turns."""

    id: str = Field(default_factory=_new_id)
    title: str = DEFAULT_SESSION_TITLE
    created_at: datetime = Field(default_factory=_utcnow)
    turns: List[ChatTurn] = Field(default_factory=list)

    def append(self, turn: ChatTurn) -> None:
        if not self.turns and turn.is_user and self.title == DEFAULT_SESSION_TITLE:
            first_line = turn.content.strip().split("\n", 1)[0]
            if first_line:
                self.title = first_line[:80]
        self.turns.append(turn)

    def history(self) -> List[ChatTurn]:
        """Snapshot of the turns, safe to hand to a request builder."""
        return list(self.turns)

    def clear(self) -> None:
        self.turns.clear()
        self.title = DEFAULT_SESSION_TITLE
