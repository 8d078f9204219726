"""Pydantic v2 models for codexbridge.yaml configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from codexbridge.constants import DEFAULT_MODEL, DEFAULT_REASONING_EFFORT

ReasoningEffort = Literal["minimal", "low", "medium", "high"]


class BridgeConfig(BaseModel):
    """Process-wide defaults for the bridge.

    Everything here is a default; individual turns override model and
    reasoning effort through ``TurnOptions``.
    """

    model_config = ConfigDict(extra="forbid")

    codex_path: str | None = Field(
        default=None,
        description="Executable to run; falls back to $CODEX_PATH, then 'codex'",
    )
    default_model: str = Field(
        default=DEFAULT_MODEL,
        description="Model passed with -m when a turn does not name one",
    )
    reasoning_effort: ReasoningEffort = Field(
        default=DEFAULT_REASONING_EFFORT,
        description="Reasoning effort for reasoning-capable models",
    )
    startup_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Seconds to wait for the first byte of output",
    )
    flush_interval: float = Field(
        default=0.1,
        gt=0,
        description="Seconds between message buffer flushes",
    )
    flush_threshold: int = Field(
        default=100,
        ge=0,
        description="Buffered characters that force a flush mid-line",
    )
    kill_grace: float = Field(
        default=2.0,
        gt=0,
        description="Seconds between SIGTERM and SIGKILL",
    )
    sessions_dir: Path = Field(
        default=Path("sessions"),
        description="Directory holding the JSONL session store",
    )
    temp_subdir: str = Field(
        default=".tmp/images",
        description="Attachment directory, relative to the working directory",
    )

    @field_validator("temp_subdir")
    @classmethod
    def _relative_temp_subdir(cls, value: str) -> str:
        path = Path(value)
        if path.is_absolute() or ".." in path.parts:
            msg = f"temp_subdir must be a relative path inside the project: {value!r}"
            raise ValueError(msg)
        return value


class TurnOptions(BaseModel):
    """Per-turn invocation options."""

    model_config = ConfigDict(extra="forbid")

    cwd: str | None = Field(
        default=None,
        description="Working directory for the child (defaults to the current one)",
    )
    model: str | None = Field(default=None, description="Model identifier")
    reasoning_effort: ReasoningEffort | None = Field(
        default=None,
        description="Reasoning effort override",
    )
    skip_permissions: bool = Field(
        default=False,
        description="Bypass approval and sandbox prompts",
    )
