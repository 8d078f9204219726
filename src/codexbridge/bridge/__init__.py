"""Subprocess bridge — launch, classify, register, abort."""

from codexbridge.bridge.classifier import OutputClassifier, ParserState
from codexbridge.bridge.cli_bridge import CodexBridge, TurnResult
from codexbridge.bridge.events import (
    BridgeEvent,
    CompleteEvent,
    ErrorEvent,
    EventSink,
    MessageEvent,
    SessionCreatedEvent,
    StatusEvent,
    event_to_wire,
)
from codexbridge.bridge.launcher import ProcessLauncher, StartupWatchdog
from codexbridge.bridge.paths import ResolvedCommand, resolve_command
from codexbridge.bridge.registry import ProcessRecord, ProcessRegistry
from codexbridge.bridge.session_bridge import SessionBridge
from codexbridge.bridge.tempfiles import Attachment, TempResourceManager, TempResources

__all__ = [
    "Attachment",
    "BridgeEvent",
    "CodexBridge",
    "CompleteEvent",
    "ErrorEvent",
    "EventSink",
    "MessageEvent",
    "OutputClassifier",
    "ParserState",
    "ProcessLauncher",
    "ProcessRecord",
    "ProcessRegistry",
    "ResolvedCommand",
    "SessionBridge",
    "SessionCreatedEvent",
    "StartupWatchdog",
    "StatusEvent",
    "TempResourceManager",
    "TempResources",
    "TurnResult",
    "event_to_wire",
    "resolve_command",
]
