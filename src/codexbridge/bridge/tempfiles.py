"""Per-turn temporary files for inline attachments."""

from __future__ import annotations

import base64
import binascii
import contextlib
import logging
import re
import shutil
import tempfile
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)
_SAFE_EXT_RE = re.compile(r"[^a-z0-9]")


class Attachment(BaseModel):
    """An inline binary attachment encoded as a ``data:`` URL."""

    model_config = ConfigDict(extra="ignore")

    data: str = Field(description="data:<mime>;base64,<payload>")

    def decode(self) -> tuple[str, bytes] | None:
        """Return ``(mime_type, payload)`` or None if the URL is malformed."""
        match = _DATA_URL_RE.match(self.data.strip())
        if match is None:
            return None
        mime_type, payload = match.groups()
        try:
            return mime_type, base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError):
            return None


def extension_for(mime_type: str) -> str:
    """File extension for *mime_type*: ``image/jpeg`` -> ``jpeg``."""
    _, _, subtype = mime_type.partition("/")
    ext = _SAFE_EXT_RE.sub("", subtype.split("+")[0].lower())
    return ext or "png"


@dataclass
class TempResources:
    """Files written for one turn, removed together by ``cleanup``."""

    directory: Path | None = None
    paths: list[Path] = field(default_factory=list)
    _released: bool = field(default=False, init=False, repr=False)

    @property
    def released(self) -> bool:
        return self._released

    def cleanup(self) -> None:
        """Delete every file and the directory.  Idempotent, never raises."""
        if self._released:
            return
        self._released = True
        for path in self.paths:
            with contextlib.suppress(OSError):
                path.unlink(missing_ok=True)
        if self.directory is not None:
            shutil.rmtree(self.directory, ignore_errors=True)


class TempResourceManager:
    """Materialises attachments under ``<cwd>/<subdir>/<unique>/``.

    The directory lives inside the project so the child can read the
    files from its own working directory.
    """

    def __init__(self, subdir: str = ".tmp/images") -> None:
        self._subdir = subdir

    def materialize(self, attachments: Iterable[Attachment], cwd: str) -> TempResources:
        """Decode *attachments* to files and return their resources.

        Malformed attachments are skipped.  Filesystem errors stop the
        materialisation but keep what was already written so it is still
        cleaned up with the turn.
        """
        resources = TempResources()
        items = list(attachments)
        if not items:
            return resources

        base = Path(cwd) / self._subdir
        try:
            base.mkdir(parents=True, exist_ok=True)
            prefix = f"{int(time.time() * 1000)}-"
            resources.directory = Path(tempfile.mkdtemp(prefix=prefix, dir=base))
            for index, attachment in enumerate(items):
                decoded = attachment.decode()
                if decoded is None:
                    logger.warning("Skipping attachment %d: not a base64 data URL", index)
                    continue
                mime_type, payload = decoded
                path = resources.directory / f"image_{index}.{extension_for(mime_type)}"
                path.write_bytes(payload)
                resources.paths.append(path)
        except OSError as exc:
            logger.error("Failed to write attachments under %s: %s", base, exc)

        logger.debug("Materialised %d attachment(s) in %s", len(resources.paths), resources.directory)
        return resources
