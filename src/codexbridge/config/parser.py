"""Find, read and validate codexbridge.yaml."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from codexbridge.config.models import BridgeConfig
from codexbridge.errors import BridgeError

DEFAULT_CONFIG_NAME = "codexbridge.yaml"

#: Settings holding filesystem paths, resolved against the config file.
_PATH_SETTINGS = ("sessions_dir", "codex_path")


class ConfigError(BridgeError):
    """User-facing configuration error."""


def load_config(path: Path | None = None) -> BridgeConfig:
    """Build the bridge configuration.

    An explicit *path* must exist.  Without one, ``codexbridge.yaml`` in
    the current directory is used when present and built-in defaults
    otherwise.  A ``.env`` beside the config (or in the current
    directory) is loaded first so ``CODEX_PATH`` can live there.

    Raises:
        ConfigError: On a missing explicit file, bad YAML, or validation failure.
    """
    if path is not None:
        config_path = Path(path)
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise ConfigError(msg)
    else:
        config_path = Path.cwd() / DEFAULT_CONFIG_NAME
        if not config_path.is_file():
            _load_env(Path.cwd())
            return BridgeConfig()

    _load_env(config_path.parent)
    settings = _read_settings(config_path)
    _anchor_paths(settings, config_path.parent)
    return _build(settings, config_path.name)


def _read_settings(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        msg = f"Cannot read config file: {exc}"
        raise ConfigError(msg) from exc
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" (line {mark.line + 1}, column {mark.column + 1})" if mark else ""
        msg = f"Invalid YAML in {path.name}{where}"
        raise ConfigError(msg) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        raise ConfigError(msg)
    return data


def _anchor_paths(settings: dict[str, Any], base_dir: Path) -> None:
    """Make relative path settings relative to the config file, not the cwd.

    A bare command name for ``codex_path`` (no separator) is left alone
    so it is still looked up on PATH.
    """
    for key in _PATH_SETTINGS:
        value = settings.get(key)
        if not isinstance(value, str) or not value:
            continue
        candidate = Path(value).expanduser()
        if key == "codex_path" and len(candidate.parts) == 1:
            continue
        if not candidate.is_absolute():
            candidate = base_dir / candidate
        settings[key] = str(candidate)


def _load_env(directory: Path) -> None:
    env_file = directory / ".env"
    if env_file.is_file():
        load_dotenv(env_file)


def _build(settings: dict[str, Any], source: str) -> BridgeConfig:
    try:
        return BridgeConfig.model_validate(settings)
    except ValidationError as exc:
        problems = "\n".join(_describe(err) for err in exc.errors())
        msg = f"Invalid settings in {source}:\n{problems}"
        raise ConfigError(msg) from exc


def _describe(err: Any) -> str:
    setting = ".".join(str(part) for part in err["loc"]) or "(root)"
    if err["type"] == "extra_forbidden":
        return f"  {setting}: Unknown setting"
    return f"  {setting}: {err['msg']} (got {err.get('input')!r})"
