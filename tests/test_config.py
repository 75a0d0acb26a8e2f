"""Tests for switchboard config model and loader."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml
from pydantic import ValidationError

from switchboard.config.models import SwitchboardConfig
from switchboard.config.parser import ConfigError, load_config

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: Any) -> Path:
    """Write *data* as YAML and return the file path."""
    path.write_text(yaml.dump(data), encoding="utf-8")
    return path


# ===================================================================
# Model validation tests
# ===================================================================


class TestDefaults:
    def test_empty_config(self) -> None:
        cfg = SwitchboardConfig.model_validate({})
        assert cfg.cli_path == "claude"
        assert cfg.max_sessions == 5
        assert cfg.default_model == "sonnet"
        assert cfg.default_permission_mode == "dangerously-skip-permissions"
        assert cfg.stop_grace == 5.0
        assert cfg.claude_dir == Path.home() / ".claude"


class TestValidation:
    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SwitchboardConfig.model_validate({"max_session": 3})

    def test_invalid_model(self) -> None:
        with pytest.raises(ValidationError):
            SwitchboardConfig.model_validate({"default_model": "gpt-4"})

    @pytest.mark.parametrize("value", [0, -1])
    def test_max_sessions_positive(self, value: int) -> None:
        with pytest.raises(ValidationError):
            SwitchboardConfig.model_validate({"max_sessions": value})

    def test_stop_grace_positive(self) -> None:
        with pytest.raises(ValidationError):
            SwitchboardConfig.model_validate({"stop_grace": 0})


# ===================================================================
# Loader tests
# ===================================================================


class TestLoadConfig:
    def test_explicit_file(self, tmp_path: Path) -> None:
        path = _write_yaml(
            tmp_path / "custom.yaml",
            {"cli_path": "/opt/claude", "max_sessions": 2, "default_model": "opus"},
        )
        cfg = load_config(path, env={})
        assert cfg.cli_path == "/opt/claude"
        assert cfg.max_sessions == 2
        assert cfg.default_model == "opus"

    def test_missing_explicit_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml", env={})

    def test_default_file_optional(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        cfg = load_config(env={})
        assert cfg.max_sessions == 5

    def test_default_file_picked_up(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _write_yaml(tmp_path / "switchboard.yaml", {"max_sessions": 9})
        monkeypatch.chdir(tmp_path)
        cfg = load_config(env={})
        assert cfg.max_sessions == 9

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        cfg = load_config(path, env={})
        assert cfg.cli_path == "claude"

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("max_sessions: [1, 2\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path, env={})

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path / "list.yaml", ["a", "b"])
        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_config(path, env={})

    def test_validation_error_formatted(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path / "c.yaml", {"bogus": 1, "default_model": "gpt"})
        with pytest.raises(ConfigError) as exc_info:
            load_config(path, env={})
        message = str(exc_info.value)
        assert message.startswith("Config validation failed:")
        assert "bogus: Unknown setting" in message
        assert "default_model: Invalid value" in message


class TestEnvOverrides:
    def test_env_wins_over_file(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path / "c.yaml", {"max_sessions": 2, "cli_path": "a"})
        cfg = load_config(
            path,
            env={
                "MAX_SESSIONS": "8",
                "CLAUDE_CLI_PATH": "/usr/local/bin/claude",
                "STOP_GRACE": "1.5",
                "CLAUDE_DIR": str(tmp_path / "data"),
            },
        )
        assert cfg.max_sessions == 8
        assert cfg.cli_path == "/usr/local/bin/claude"
        assert cfg.stop_grace == 1.5
        assert cfg.claude_dir == tmp_path / "data"

    def test_empty_env_value_ignored(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path / "c.yaml", {"default_model": "haiku"})
        cfg = load_config(path, env={"DEFAULT_MODEL": ""})
        assert cfg.default_model == "haiku"

    def test_bad_env_value_is_config_error(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path / "c.yaml", {})
        with pytest.raises(ConfigError, match="max_sessions"):
            load_config(path, env={"MAX_SESSIONS": "lots"})

    def test_dotenv_beside_config(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("DEFAULT_MODEL", raising=False)
        path = _write_yaml(tmp_path / "c.yaml", {})
        (tmp_path / ".env").write_text("DEFAULT_MODEL=opus\n", encoding="utf-8")
        try:
            cfg = load_config(path)
        finally:
            monkeypatch.delenv("DEFAULT_MODEL", raising=False)
        assert cfg.default_model == "opus"
