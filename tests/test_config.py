"""Tests for codexbridge.yaml loading and validation."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from codexbridge.config import BridgeConfig, ConfigError, TurnOptions, load_config


class TestLoadConfig:
    def test_explicit_file(self, tmp_path: Path) -> None:
        path = tmp_path / "codexbridge.yaml"
        path.write_text(
            "codex_path: /opt/codex\n"
            "default_model: o3\n"
            "reasoning_effort: high\n"
            "startup_timeout: 30\n"
        )

        config = load_config(path)

        assert config.codex_path == "/opt/codex"
        assert config.default_model == "o3"
        assert config.reasoning_effort == "high"
        assert config.startup_timeout == 30
        assert config.flush_interval == 0.1

    def test_defaults_without_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        config = load_config()
        assert config == BridgeConfig()
        assert config.default_model == "gpt-5"
        assert config.sessions_dir == Path("sessions")

    def test_default_file_in_cwd(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "codexbridge.yaml").write_text("default_model: gpt-5-codex\n")
        monkeypatch.chdir(tmp_path)
        assert load_config().default_model == "gpt-5-codex"

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "codexbridge.yaml"
        path.write_text("")
        assert load_config(path) == BridgeConfig()

    def test_dotenv_loaded(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("CODEX_PATH", raising=False)
        (tmp_path / ".env").write_text("CODEX_PATH=/from/dotenv/codex\n")
        path = tmp_path / "codexbridge.yaml"
        path.write_text("kill_grace: 1\n")

        load_config(path)

        assert os.environ["CODEX_PATH"] == "/from/dotenv/codex"


class TestPathSettings:
    """Relative paths are taken relative to the config file."""

    def test_relative_paths_anchored(self, tmp_path: Path) -> None:
        path = tmp_path / "codexbridge.yaml"
        path.write_text("sessions_dir: data/sessions\ncodex_path: bin/codex\n")

        config = load_config(path)

        assert config.sessions_dir == tmp_path / "data" / "sessions"
        assert config.codex_path == str(tmp_path / "bin" / "codex")

    def test_bare_command_left_for_path_lookup(self, tmp_path: Path) -> None:
        path = tmp_path / "codexbridge.yaml"
        path.write_text("codex_path: codex-nightly\n")
        assert load_config(path).codex_path == "codex-nightly"

    def test_absolute_paths_unchanged(self, tmp_path: Path) -> None:
        path = tmp_path / "codexbridge.yaml"
        path.write_text("sessions_dir: /var/lib/codexbridge\n")
        assert load_config(path).sessions_dir == Path("/var/lib/codexbridge")


class TestConfigErrors:
    def test_missing_explicit_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Config file not found"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "codexbridge.yaml"
        path.write_text("default_model: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "codexbridge.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_config(path)

    def test_unknown_setting(self, tmp_path: Path) -> None:
        path = tmp_path / "codexbridge.yaml"
        path.write_text("modle: o3\n")
        with pytest.raises(ConfigError, match="Unknown setting"):
            load_config(path)

    def test_bad_effort(self, tmp_path: Path) -> None:
        path = tmp_path / "codexbridge.yaml"
        path.write_text("reasoning_effort: extreme\n")
        with pytest.raises(ConfigError, match="reasoning_effort"):
            load_config(path)

    def test_temp_subdir_must_stay_inside_project(self) -> None:
        with pytest.raises(ValidationError):
            BridgeConfig(temp_subdir="../outside")
        with pytest.raises(ValidationError):
            BridgeConfig(temp_subdir="/tmp/images")

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            BridgeConfig(startup_timeout=0)


class TestTurnOptions:
    def test_defaults(self) -> None:
        options = TurnOptions()
        assert options.cwd is None
        assert options.model is None
        assert options.reasoning_effort is None
        assert options.skip_permissions is False

    def test_rejects_unknown_fields(self) -> None:
        with pytest.raises(ValidationError):
            TurnOptions.model_validate({"permissionMode": "bypass"})
