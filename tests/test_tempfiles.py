"""Tests for attachment materialisation and cleanup."""

from __future__ import annotations

import base64
from pathlib import Path
from unittest.mock import patch

from codexbridge.bridge.tempfiles import (
    Attachment,
    TempResourceManager,
    TempResources,
    extension_for,
)

_PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


def _data_url(payload: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(payload).decode()}"


class TestAttachment:
    def test_decode(self) -> None:
        decoded = Attachment(data=_data_url(_PNG_BYTES)).decode()
        assert decoded == ("image/png", _PNG_BYTES)

    def test_decode_malformed(self) -> None:
        assert Attachment(data="not a data url").decode() is None
        assert Attachment(data="data:image/png,plain").decode() is None

    def test_extension_for(self) -> None:
        assert extension_for("image/png") == "png"
        assert extension_for("image/jpeg") == "jpeg"
        assert extension_for("image/svg+xml") == "svg"
        assert extension_for("garbage") == "png"


class TestTempResourceManager:
    def test_materialize_under_cwd(self, tmp_path: Path) -> None:
        manager = TempResourceManager(".tmp/images")
        resources = manager.materialize(
            [
                Attachment(data=_data_url(_PNG_BYTES)),
                Attachment(data=_data_url(b"jpeg", "image/jpeg")),
            ],
            str(tmp_path),
        )

        assert resources.directory is not None
        assert resources.directory.parent == tmp_path / ".tmp" / "images"
        assert [p.name for p in resources.paths] == ["image_0.png", "image_1.jpeg"]
        assert resources.paths[0].read_bytes() == _PNG_BYTES

    def test_unique_directory_per_turn(self, tmp_path: Path) -> None:
        manager = TempResourceManager()
        attachment = Attachment(data=_data_url(_PNG_BYTES))
        first = manager.materialize([attachment], str(tmp_path))
        second = manager.materialize([attachment], str(tmp_path))
        assert first.directory != second.directory

    def test_malformed_attachment_skipped(self, tmp_path: Path) -> None:
        resources = TempResourceManager().materialize(
            [Attachment(data="bogus"), Attachment(data=_data_url(_PNG_BYTES))],
            str(tmp_path),
        )
        assert [p.name for p in resources.paths] == ["image_1.png"]

    def test_no_attachments(self, tmp_path: Path) -> None:
        resources = TempResourceManager().materialize([], str(tmp_path))
        assert resources.directory is None
        assert resources.paths == []
        assert not (tmp_path / ".tmp").exists()

    def test_write_failure_keeps_partial_result(self, tmp_path: Path) -> None:
        calls = 0
        real_write = Path.write_bytes

        def _flaky_write(self: Path, data: bytes) -> int:
            nonlocal calls
            calls += 1
            if calls > 1:
                raise OSError("disk full")
            return real_write(self, data)

        attachment = Attachment(data=_data_url(_PNG_BYTES))
        with patch.object(Path, "write_bytes", _flaky_write):
            resources = TempResourceManager().materialize(
                [attachment, attachment], str(tmp_path)
            )

        assert len(resources.paths) == 1
        resources.cleanup()
        assert resources.directory is not None
        assert not resources.directory.exists()


class TestTempResources:
    def test_cleanup_removes_everything(self, tmp_path: Path) -> None:
        resources = TempResourceManager().materialize(
            [Attachment(data=_data_url(_PNG_BYTES))], str(tmp_path)
        )
        assert resources.directory is not None

        resources.cleanup()

        assert resources.released
        assert not resources.directory.exists()
        assert not resources.paths[0].exists()

    def test_cleanup_is_idempotent(self, tmp_path: Path) -> None:
        directory = tmp_path / "gone"
        resources = TempResources(directory=directory, paths=[directory / "image_0.png"])
        resources.cleanup()
        resources.cleanup()
        assert resources.released
