"""Pydantic v2 models for stored conversation sessions."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant"]


class _RecordBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ts: str = Field(description="ISO 8601 timestamp with milliseconds")


class SessionHeader(_RecordBase):
    """First line of a session file."""

    type: Literal["session"] = "session"
    id: str = Field(description="Session identifier")
    cwd: str | None = Field(default=None, description="Project working directory")


class Turn(_RecordBase):
    """One message in the conversation."""

    type: Literal["turn"] = "turn"
    role: Role = Field(description="Who produced the message")
    content: str = Field(description="Message text")


class Session(BaseModel):
    """A session reassembled from its file."""

    id: str
    cwd: str | None = None
    created_at: str
    turns: list[Turn] = Field(default_factory=list)

    @property
    def last_activity(self) -> str:
        return self.turns[-1].ts if self.turns else self.created_at
