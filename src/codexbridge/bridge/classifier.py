"""Classify codex's human-readable output into bridge events.

The CLI prints a banner, metadata, the echoed prompt, bracketed section
markers (``[ts] thinking``, ``[ts] codex``) and a token summary around the
actual answer.  Nothing is structured, so lines are matched against the
rule tables below, top to bottom, and everything that survives is
batched into ``message`` events.
"""

from __future__ import annotations

import codecs
import logging
import re
from dataclasses import dataclass

from codexbridge.bridge.events import ErrorEvent, EventSink, MessageEvent, StatusEvent

logger = logging.getLogger(__name__)

#: Retained stderr lines for the non-zero exit log message.
_STDERR_TAIL_LINES = 20


@dataclass(frozen=True)
class LineRule:
    """A named line predicate."""

    name: str
    pattern: re.Pattern[str]

    def matches(self, line: str) -> bool:
        return self.pattern.search(line) is not None


def _rule(name: str, pattern: str, flags: int = 0) -> LineRule:
    return LineRule(name, re.compile(pattern, flags))


TIMESTAMP = _rule("timestamp", r"^\[\d{4}-\d{2}-\d{2}")
TOKENS_USED = _rule("tokens_used", r"tokens used:\s*\d+", re.IGNORECASE)
THINKING_MARKER = _rule("thinking_marker", r"\[.*\]\s*thinking", re.IGNORECASE)
ASSISTANT_MARKER = _rule("assistant_marker", r"\[.*\]\s*codex", re.IGNORECASE)

#: Preamble printed before any content.
HEADER_RULES: tuple[LineRule, ...] = (
    TIMESTAMP,
    _rule("stdin_banner", r"^Reading prompt from stdin"),
    _rule("version_banner", r"OpenAI Codex v"),
    _rule("separator", r"^-{3,}$"),
    _rule(
        "metadata",
        r"^(workdir|model|provider|approval|sandbox"
        r"|reasoning(?: effort| summaries)?):\s*",
    ),
    _rule("instructions", r"User instructions:"),
    _rule("trust_warning", r"Not inside a trusted directory"),
)

#: Noise discarded once content has started.
BODY_NOISE_RULES: tuple[LineRule, ...] = (TOKENS_USED, TIMESTAMP)

#: Applied once more to whatever is left when the process exits.
FINAL_NOISE_RULES: tuple[LineRule, ...] = (
    TOKENS_USED,
    TIMESTAMP,
    _rule("thinking_fragment", r"^\s*(\[[^\]]*\])?\s*thinking\s*$", re.IGNORECASE),
)

#: Substrings marking stderr text that is logged but never forwarded.
BENIGN_STDERR_MARKERS: tuple[str, ...] = (
    "DEP0040",
    "DeprecationWarning",
    "--trace-deprecation",
    "Reading prompt",
)


def matches_any(rules: tuple[LineRule, ...], line: str) -> LineRule | None:
    """Return the first rule in *rules* matching *line*."""
    for rule in rules:
        if rule.matches(line):
            return rule
    return None


def is_benign_stderr(text: str) -> bool:
    return any(marker in text for marker in BENIGN_STDERR_MARKERS)


@dataclass
class ParserState:
    """Mutable per-invocation classifier state."""

    header_complete: bool = False
    in_thinking: bool = False
    thinking_announced: bool = False
    message_buffer: str = ""
    full_response: str = ""
    partial_line: str = ""


class OutputClassifier:
    """Turns raw stdout/stderr chunks into events on *emit*.

    ``feed`` classifies complete lines as they arrive; ``flush`` is
    called on a timer and decides when buffered text becomes a
    ``message`` event; ``finish`` drains everything at exit.
    """

    def __init__(
        self,
        emit: EventSink,
        prompt: str | None = None,
        flush_threshold: int = 100,
    ) -> None:
        self._emit = emit
        self._prompt = prompt.strip() if prompt and prompt.strip() else None
        self._flush_threshold = flush_threshold
        self._state = ParserState()
        self._stdout_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._stderr_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._stderr_tail: list[str] = []
        self._finished = False

    @property
    def state(self) -> ParserState:
        return self._state

    @property
    def full_response(self) -> str:
        return self._state.full_response

    @property
    def stderr_text(self) -> str:
        """The last few lines seen on stderr, forwarded or not."""
        return "\n".join(self._stderr_tail)

    # ------------------------------------------------------------------ #
    # stdout
    # ------------------------------------------------------------------ #

    def feed(self, chunk: bytes | str) -> None:
        """Classify every complete line in *chunk*; hold back the remainder."""
        text = chunk if isinstance(chunk, str) else self._stdout_decoder.decode(chunk)
        if not text:
            return
        state = self._state
        lines = (state.partial_line + text).split("\n")
        state.partial_line = lines.pop()
        for line in lines:
            self._classify(line.rstrip("\r"))

    def flush(self) -> None:
        """Emit buffered content if it is large or ends on a line boundary."""
        state = self._state
        if len(state.message_buffer) > self._flush_threshold or (
            not state.partial_line and state.message_buffer.strip()
        ):
            self._emit_buffer()

    def finish(self) -> str:
        """Drain the decoder and buffers; returns the full response."""
        if self._finished:
            return self._state.full_response
        self._finished = True

        state = self._state
        tail = state.partial_line + self._stdout_decoder.decode(b"", final=True)
        state.partial_line = ""
        if tail.strip():
            self._classify(tail.rstrip("\r"))

        lines = [
            line
            for line in state.message_buffer.split("\n")
            if matches_any(FINAL_NOISE_RULES, line) is None
        ]
        state.message_buffer = ""
        content = "\n".join(lines).strip()
        if content:
            self._emit(MessageEvent(content=content))
            state.full_response += content
        state.full_response = state.full_response.rstrip("\n")
        return state.full_response

    def _classify(self, line: str) -> None:
        state = self._state

        if not state.header_complete:
            if self._is_header_line(line):
                return
            state.header_complete = True

        if THINKING_MARKER.matches(line):
            state.in_thinking = True
            if not state.thinking_announced:
                self._emit_buffer()
                self._emit(StatusEvent(status="thinking"))
                state.thinking_announced = True
            return

        if state.in_thinking:
            if ASSISTANT_MARKER.matches(line):
                state.in_thinking = False
            return

        if matches_any(BODY_NOISE_RULES, line) is not None:
            return

        if not state.message_buffer and not line.strip():
            return
        state.message_buffer += line + "\n"

    def _is_header_line(self, line: str) -> bool:
        if matches_any(HEADER_RULES, line) is not None:
            return True
        stripped = line.strip()
        if self._prompt is not None and stripped == self._prompt:
            return True
        return not stripped

    def _emit_buffer(self) -> None:
        state = self._state
        content = state.message_buffer.strip()
        state.message_buffer = ""
        if not content:
            return
        self._emit(MessageEvent(content=content))
        state.full_response += content + "\n"

    # ------------------------------------------------------------------ #
    # stderr
    # ------------------------------------------------------------------ #

    def feed_stderr(self, chunk: bytes | str) -> None:
        """Forward stderr text as an error event unless it is known noise."""
        text = chunk if isinstance(chunk, str) else self._stderr_decoder.decode(chunk)
        if not text:
            return
        self._remember_stderr(text)
        if is_benign_stderr(text):
            logger.debug("Ignoring stderr noise: %s", text.strip()[:200])
            return
        if not text.strip():
            return
        logger.info("codex stderr: %s", text.strip()[:500])
        self._emit(ErrorEvent(error=text))

    def _remember_stderr(self, text: str) -> None:
        self._stderr_tail.extend(line for line in text.splitlines() if line.strip())
        del self._stderr_tail[:-_STDERR_TAIL_LINES]
