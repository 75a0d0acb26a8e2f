"""Pydantic v2 model for switchboard configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from switchboard.constants import DEFAULT_STOP_GRACE, SKIP_PERMISSIONS_MODE


class SwitchboardConfig(BaseModel):
    """Top-level switchboard.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    cli_path: str = Field(
        default="claude",
        min_length=1,
        description="Agent CLI executable (name on PATH or absolute path)",
    )
    max_sessions: int = Field(
        default=5,
        ge=1,
        description="Maximum number of concurrently registered sessions",
    )
    default_model: Literal["sonnet", "opus", "haiku"] = Field(
        default="sonnet",
        description="Model used when a session does not name one",
    )
    default_permission_mode: str = Field(
        default=SKIP_PERMISSIONS_MODE,
        min_length=1,
        description="Permission mode used when a session does not name one",
    )
    stop_grace: float = Field(
        default=DEFAULT_STOP_GRACE,
        gt=0,
        description="Seconds between SIGTERM and SIGKILL when stopping a session",
    )
    claude_dir: Path = Field(
        default_factory=lambda: Path.home() / ".claude",
        description="Agent CLI data directory holding history.jsonl and projects/",
    )
