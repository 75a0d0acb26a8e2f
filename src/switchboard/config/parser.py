"""Load, validate, and resolve switchboard configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from switchboard.config.models import SwitchboardConfig

DEFAULT_CONFIG_NAME = "switchboard.yaml"

#: Environment variables that override config file values.
ENV_OVERRIDES = {
    "CLAUDE_CLI_PATH": "cli_path",
    "MAX_SESSIONS": "max_sessions",
    "DEFAULT_MODEL": "default_model",
    "DEFAULT_PERMISSION_MODE": "default_permission_mode",
    "STOP_GRACE": "stop_grace",
    "CLAUDE_DIR": "claude_dir",
}


class ConfigError(Exception):
    """User-facing configuration error."""


def load_config(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> SwitchboardConfig:
    """Load and validate switchboard configuration.

    Args:
        path: Explicit config file path. If None, uses switchboard.yaml in
              the current directory when present, else defaults only.
        env: Environment to read overrides from. Defaults to ``os.environ``
             after loading a ``.env`` file beside the config.

    Returns:
        A validated SwitchboardConfig instance.

    Raises:
        ConfigError: On a missing explicit file, bad YAML, or validation
            failure.
    """
    config_path = _resolve_path(path)
    raw = _read_yaml(config_path) if config_path is not None else {}
    if env is None:
        _load_env(config_path.parent if config_path is not None else Path.cwd())
        env = os.environ
    _apply_env_overrides(raw, env)
    return _validate(raw)


def _resolve_path(path: Path | None) -> Path | None:
    if path is not None:
        resolved = Path(path)
        if not resolved.is_file():
            msg = f"Config file not found: {resolved}"
            raise ConfigError(msg)
        return resolved

    default = Path.cwd() / DEFAULT_CONFIG_NAME
    return default if default.is_file() else None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read config file: {exc}"
        raise ConfigError(msg) from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        detail = ""
        if hasattr(exc, "problem_mark") and exc.problem_mark is not None:
            mark = exc.problem_mark
            detail = f" (line {mark.line + 1}, column {mark.column + 1})"
        msg = f"Invalid YAML in {path.name}{detail}"
        raise ConfigError(msg) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        raise ConfigError(msg)

    return data


def _load_env(config_dir: Path) -> None:
    env_path = config_dir / ".env"
    if env_path.is_file():
        load_dotenv(env_path)


def _apply_env_overrides(raw: dict[str, Any], env: Mapping[str, str]) -> None:
    for var, field in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            raw[field] = value.strip()


def _validate(raw: dict[str, Any]) -> SwitchboardConfig:
    try:
        return SwitchboardConfig.model_validate(raw)
    except ValidationError as exc:
        errors = exc.errors()
        parts: list[str] = []
        for err in errors:
            loc = " → ".join(str(s) for s in err["loc"])
            msg = err["msg"]
            if "extra inputs" in msg.lower():
                msg = "Unknown setting"
            elif "input should be" in msg.lower():
                msg = f"Invalid value: {msg}"
            parts.append(f"  {loc}: {msg}")
        joined = "\n".join(parts)
        msg = f"Config validation failed:\n{joined}"
        raise ConfigError(msg) from exc
