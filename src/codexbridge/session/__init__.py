"""Conversation storage — models, store contract and JSONL store."""

from codexbridge.session.models import Role, Session, SessionHeader, Turn
from codexbridge.session.store import (
    JsonlSessionStore,
    SessionNotFoundError,
    SessionStore,
)

__all__ = [
    "JsonlSessionStore",
    "Role",
    "Session",
    "SessionHeader",
    "SessionNotFoundError",
    "SessionStore",
    "Turn",
]
