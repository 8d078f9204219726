"""Session store — append-only JSONL file per conversation."""

from __future__ import annotations

import logging
import re
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Protocol, runtime_checkable

from pydantic import Field, TypeAdapter, ValidationError

from codexbridge.session.models import Role, Session, SessionHeader, Turn

logger = logging.getLogger(__name__)

#: Session ids may only contain alphanumerics, hyphens and underscores.
_SAFE_ID_RE = re.compile(r"^[a-zA-Z0-9_-]+$")

_RECORD_ADAPTER: TypeAdapter[SessionHeader | Turn] = TypeAdapter(
    Annotated[SessionHeader | Turn, Field(discriminator="type")]
)


class SessionNotFoundError(LookupError):
    """No stored session matches the requested id."""


@runtime_checkable
class SessionStore(Protocol):
    """The narrow contract the bridge needs from conversation storage."""

    def create_session(self, session_id: str, cwd: str | None) -> None:
        """Create an empty session."""
        ...

    def add_message(self, session_id: str, role: Role, content: str) -> None:
        """Append one message to a session."""
        ...


class JsonlSessionStore:
    """Stores each session as ``<sessions_dir>/<session_id>.jsonl``.

    The first line is a ``session`` header, every following line a
    ``turn``.  Writes are serialised through a ``threading.Lock`` and
    flushed immediately.
    """

    def __init__(self, sessions_dir: Path | None = None) -> None:
        self._dir = sessions_dir if sessions_dir is not None else Path("sessions")
        self._lock = threading.Lock()

    @property
    def sessions_dir(self) -> Path:
        return self._dir

    def path_for(self, session_id: str) -> Path:
        if not _SAFE_ID_RE.match(session_id):
            msg = (
                f"Invalid session id {session_id!r}: must contain only "
                "alphanumeric characters, hyphens, and underscores."
            )
            raise ValueError(msg)
        return self._dir / f"{session_id}.jsonl"

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def create_session(self, session_id: str, cwd: str | None) -> None:
        path = self.path_for(session_id)
        with self._lock:
            if path.exists():
                return
            header = SessionHeader(ts=_iso_now(), id=session_id, cwd=cwd)
            self._append(path, header.model_dump_json())

    def add_message(self, session_id: str, role: Role, content: str) -> None:
        """Append a turn, creating the session on first use."""
        path = self.path_for(session_id)
        with self._lock:
            if not path.exists():
                header = SessionHeader(ts=_iso_now(), id=session_id)
                self._append(path, header.model_dump_json())
            turn = Turn(ts=_iso_now(), role=role, content=content)
            self._append(path, turn.model_dump_json())

    def _append(self, path: Path, line: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")
            fh.flush()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def load(self, session_id: str) -> Session:
        """Reassemble a session from its file.

        Raises:
            SessionNotFoundError: No file exists for *session_id*.
        """
        path = self.path_for(session_id)
        if not path.is_file():
            raise SessionNotFoundError(session_id)
        return _parse_session_file(path)

    def match(self, prefix: str) -> list[str]:
        """Ids of stored sessions starting with *prefix*."""
        return [sid for sid in self.session_ids() if sid.startswith(prefix)]

    def session_ids(self) -> list[str]:
        if not self._dir.is_dir():
            return []
        return sorted(p.stem for p in self._dir.glob("*.jsonl"))

    def list_sessions(self) -> list[Session]:
        """All stored sessions, most recently active first."""
        sessions = [self.load(sid) for sid in self.session_ids()]
        sessions.sort(key=lambda s: s.last_activity, reverse=True)
        return sessions


def _parse_session_file(path: Path) -> Session:
    header: SessionHeader | None = None
    turns: list[Turn] = []
    with path.open(encoding="utf-8") as fh:
        for line_no, line in enumerate(fh, 1):
            if not line.strip():
                continue
            try:
                record = _RECORD_ADAPTER.validate_json(line)
            except ValidationError:
                logger.warning("%s:%d: skipping malformed record", path.name, line_no)
                continue
            if isinstance(record, SessionHeader):
                header = header or record
            else:
                turns.append(record)

    if header is None:
        return Session(id=path.stem, created_at=turns[0].ts if turns else "", turns=turns)
    return Session(id=header.id, cwd=header.cwd, created_at=header.ts, turns=turns)


def _iso_now() -> str:
    """Return the current UTC time as ISO 8601 with milliseconds."""
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
