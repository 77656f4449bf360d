"""Domain and wire models for the presence hub."""

from __future__ import annotations

from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

SYSTEM_USERNAME = "System"


class ChatMessage(BaseModel):
    """Single entry of the shared message log."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Opaque identifier, unique for the process lifetime.")
    username: str = Field(..., description="Author; `System` for hub-generated messages.")
    text: str
    ts: int = Field(..., description="Creation time, epoch milliseconds.")

    @classmethod
    def create(cls, username: str, text: str, ts: int) -> "ChatMessage":
        return cls(id=f"msg-{ts}-{uuid4().hex}", username=username, text=text, ts=ts)

    @property
    def is_system(self) -> bool:
        return self.username == SYSTEM_USERNAME


def joined_text(username: str) -> str:
    return f"{username} joined the chat"


def left_text(username: str) -> str:
    return f"{username} left the chat"


def messages_deleted_text(username: str, removed: int) -> str:
    return f"{username} deleted their messages ({removed} removed)"


def account_removed_text(username: str) -> str:
    return f"{username} removed their account and messages"


class AckResult(BaseModel):
    """Outcome of an acknowledged operation (leave and the two deletions)."""

    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    removed_count: int | None = Field(default=None, alias="removedCount", ge=0)
    err: str | None = None

    @classmethod
    def success(cls, removed_count: int | None = None) -> "AckResult":
        return cls(ok=True, removed_count=removed_count)

    @classmethod
    def failure(cls, exc: BaseException) -> "AckResult":
        return cls(ok=False, err=f"{type(exc).__name__}: {exc}")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class InitPayload(BaseModel):
    """State sent to a connection right after it joins."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage]
    online: list[str]
    known_users: list[str] = Field(..., alias="knownUsers")


class DebugSnapshot(BaseModel):
    """Point-in-time view of the whole in-memory state."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage]
    known_users: list[str] = Field(..., alias="knownUsers")
    online: list[str]


class InboundFrame(BaseModel):
    """Socket event received from a client."""

    model_config = ConfigDict(populate_by_name=True)

    event: str = Field(..., description="Event name, e.g. `join` or `delete_user_account`.")
    data: Any = None
    ack_id: str | int | None = Field(
        default=None,
        alias="ackId",
        description="Set by clients that expect an `ack` frame back.",
    )


class OutboundFrame(BaseModel):
    """Socket event sent to a client."""

    model_config = ConfigDict(populate_by_name=True)

    event: str
    data: Any = None
    ack_id: str | int | None = Field(default=None, alias="ackId")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
