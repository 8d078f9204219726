"""Pydantic v2 models for the events a turn emits to its channel."""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

from codexbridge.errors import ErrorType


class _EventBase(BaseModel):
    """Shared config: events are immutable once built and use wire aliases."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)


class SessionCreatedEvent(_EventBase):
    """A new session identity was minted for this turn."""

    type: Literal["session-created"] = "session-created"
    session_id: str = Field(alias="sessionId", description="Minted session id")


class StatusEvent(_EventBase):
    """The tool entered a reasoning block."""

    type: Literal["status"] = "status"
    status: Literal["thinking"] = "thinking"


class MessageEvent(_EventBase):
    """A chunk of user-visible response text."""

    type: Literal["message"] = "message"
    content: str = Field(description="Trimmed message text")


class ErrorEvent(_EventBase):
    """An error surfaced to the client.

    ``error_type`` is absent for forwarded stderr text.
    """

    type: Literal["error"] = "error"
    error: str = Field(description="Human-readable error text")
    error_type: ErrorType | None = Field(
        default=None,
        alias="errorType",
        description="Error category, when one applies",
    )


class CompleteEvent(_EventBase):
    """The child process exited; always the last event of a spawned turn."""

    type: Literal["complete"] = "complete"
    exit_code: int | None = Field(alias="exitCode", description="Child exit status")
    is_new_session: bool = Field(
        alias="isNewSession",
        description="Whether this turn minted the session id",
    )


def _event_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


BridgeEvent = Annotated[
    Annotated[SessionCreatedEvent, Tag("session-created")]
    | Annotated[StatusEvent, Tag("status")]
    | Annotated[MessageEvent, Tag("message")]
    | Annotated[ErrorEvent, Tag("error")]
    | Annotated[CompleteEvent, Tag("complete")],
    Discriminator(_event_discriminator),
]
"""Discriminated union of all bridge event types."""

#: The outbound message channel: receives every event in emission order.
EventSink = Callable[[BridgeEvent], None]


def event_to_wire(event: BridgeEvent) -> dict[str, Any]:
    """Serialise *event* to the client-facing dict (camelCase, no nulls)."""
    return event.model_dump(by_alias=True, exclude_none=True)
