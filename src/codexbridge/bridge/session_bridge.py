"""Session identity and persistence for a single turn."""

from __future__ import annotations

import logging
import time

from codexbridge.bridge.events import CompleteEvent, EventSink, SessionCreatedEvent
from codexbridge.bridge.registry import ProcessRegistry
from codexbridge.constants import SESSION_ID_PREFIX
from codexbridge.session.models import Role
from codexbridge.session.store import SessionStore

logger = logging.getLogger(__name__)


def provisional_key() -> str:
    """Registry key used until the session id is known."""
    return str(int(time.time() * 1000))


def mint_session_id() -> str:
    """Timestamp-derived id; collisions are acceptable at this scale."""
    return f"{SESSION_ID_PREFIX}{int(time.time() * 1000)}"


class SessionBridge:
    """Binds a turn to its session in the external store.

    A turn without a session id gets a fresh one, announced with a
    ``session-created`` event before any output is forwarded.
    """

    def __init__(
        self,
        store: SessionStore,
        emit: EventSink,
        session_id: str | None,
        cwd: str | None,
    ) -> None:
        self._store = store
        self._emit = emit
        self._session_id = session_id or None
        self._cwd = cwd
        self._is_new = self._session_id is None

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def is_new(self) -> bool:
        return self._is_new

    def open(self, registry: ProcessRegistry, key: str, prompt: str) -> str:
        """Finalise the session id, re-key the registry, persist the prompt."""
        session_id = self._session_id
        if session_id is None:
            session_id = self._session_id = mint_session_id()
            self._persist_create(session_id)
            registry.rekey(key, session_id)
            self._emit(SessionCreatedEvent(session_id=session_id))
            logger.info("Created session %s", session_id)
        elif key != session_id:
            registry.rekey(key, session_id)

        if prompt.strip():
            self._persist(session_id, "user", prompt)
        return session_id

    def complete(self, exit_code: int | None, full_response: str) -> None:
        """Persist the response (if any) and emit the completion event."""
        if self._session_id is not None and full_response:
            self._persist(self._session_id, "assistant", full_response)
        self._emit(CompleteEvent(exit_code=exit_code, is_new_session=self._is_new))

    def _persist_create(self, session_id: str) -> None:
        try:
            self._store.create_session(session_id, self._cwd)
        except (OSError, ValueError) as exc:
            logger.warning("Could not create session %s: %s", session_id, exc)

    def _persist(self, session_id: str, role: Role, content: str) -> None:
        try:
            self._store.add_message(session_id, role, content)
        except (OSError, ValueError) as exc:
            logger.warning(
                "Could not save %s message to session %s: %s",
                role,
                session_id,
                exc,
            )
