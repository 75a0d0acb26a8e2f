"""Pydantic v2 models describing agent sessions."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SessionStatus = Literal["starting", "ready", "busy", "stopped", "error"]


class SessionOptions(BaseModel):
    """How to launch one agent subprocess."""

    model_config = ConfigDict(extra="forbid")

    project_path: str = Field(description="Working directory for the subprocess")
    model: str | None = Field(
        default=None,
        description="Model shorthand passed as --model (registry default if unset)",
    )
    resume_session_id: str | None = Field(
        default=None,
        description="Prior agent session id to resume",
    )
    permission_mode: str | None = Field(
        default=None,
        description="Permission mode (registry default if unset)",
    )


class SessionInfo(BaseModel):
    """Point-in-time snapshot of a session."""

    model_config = ConfigDict(frozen=True)

    session_id: str = Field(description="Current identity (reported id once known)")
    tenant_id: int = Field(description="Tenant that created the session")
    project_path: str
    model: str
    status: SessionStatus
    created_at: datetime
    is_resumed: bool
