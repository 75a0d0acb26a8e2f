"""Pydantic v2 models for the agent CLI stream-json protocol."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_validator,
)


class _RecordBase(BaseModel):
    """Lenient base for records read from the subprocess.

    Unknown keys are dropped so newer CLI versions can add fields freely.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ------------------------------------------------------------------ #
# Content blocks
# ------------------------------------------------------------------ #


class TextBlock(_RecordBase):
    """Plain assistant text."""

    type: Literal["text"] = "text"
    text: str = ""

    @field_validator("text", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        return "" if v is None else str(v)


class ToolUseBlock(_RecordBase):
    """A tool invocation requested by the assistant."""

    type: Literal["tool_use"] = "tool_use"
    id: str = ""
    name: str = Field(
        default="",
        validation_alias=AliasChoices("name", "tool_name"),
        description="Tool name",
    )
    input: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("input", "tool_input"),
        description="Structured tool arguments",
    )

    @field_validator("id", "name", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("input", mode="before")
    @classmethod
    def _coerce_input(cls, v: Any) -> dict[str, Any]:
        return v if isinstance(v, dict) else {}


class ToolResultBlock(_RecordBase):
    """Output of a tool fed back into the conversation."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str = ""
    content: Any = None

    @field_validator("tool_use_id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return "" if v is None else str(v)


class OtherBlock(BaseModel):
    """Any block kind this codec does not model (``thinking``, ...)."""

    model_config = ConfigDict(extra="allow")

    type: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, v: Any) -> str:
        return "" if v is None else str(v)


def _block_discriminator(v: Any) -> str:
    kind = v.get("type", "") if isinstance(v, dict) else getattr(v, "type", "")
    if kind in ("text", "tool_use", "tool_result"):
        return str(kind)
    return "other"


ContentBlock = Annotated[
    Annotated[TextBlock, Tag("text")]
    | Annotated[ToolUseBlock, Tag("tool_use")]
    | Annotated[ToolResultBlock, Tag("tool_result")]
    | Annotated[OtherBlock, Tag("other")],
    Discriminator(_block_discriminator),
]
"""One block of an assistant turn."""


# ------------------------------------------------------------------ #
# Records
# ------------------------------------------------------------------ #


class SystemInit(_RecordBase):
    """First record of a run: the CLI announces its own session id."""

    type: Literal["system"] = "system"
    subtype: Literal["init"] = "init"
    session_id: str = ""
    tools: list[str] = Field(default_factory=list)
    model: str = ""
    cwd: str = ""

    @field_validator("session_id", "model", "cwd", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("tools", mode="before")
    @classmethod
    def _coerce_tools(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        return [str(t) for t in v]


class AssistantPayload(_RecordBase):
    """The API message wrapped by an ``assistant`` record."""

    id: str = ""
    role: Literal["assistant"] = "assistant"
    model: str = ""
    content: list[ContentBlock] = Field(default_factory=list)
    stop_reason: str | None = None

    @field_validator("id", "model", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("role", mode="before")
    @classmethod
    def _force_role(cls, v: Any) -> str:
        # The record type already says who spoke.
        return "assistant"

    @field_validator("stop_reason", mode="before")
    @classmethod
    def _coerce_stop_reason(cls, v: Any) -> str | None:
        return None if v is None else str(v)

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, v: Any) -> list[Any]:
        if not isinstance(v, list):
            return []
        return [block for block in v if isinstance(block, dict)]


class AssistantMessage(_RecordBase):
    """One assistant turn."""

    type: Literal["assistant"] = "assistant"
    message: AssistantPayload
    session_id: str = ""

    @field_validator("session_id", mode="before")
    @classmethod
    def _coerce_session_id(cls, v: Any) -> str:
        return "" if v is None else str(v)


class ResultMessage(_RecordBase):
    """Final record of a turn with cost and timing."""

    type: Literal["result"] = "result"
    subtype: Literal["success", "error"] = "success"
    session_id: str = ""
    cost_usd: float = Field(
        default=0.0,
        validation_alias=AliasChoices("cost_usd", "total_cost_usd"),
    )
    duration_ms: float = 0
    duration_api_ms: float = 0
    is_error: bool = False
    num_turns: int = 0
    result: str | None = None
    error: str | None = None

    @field_validator("subtype", mode="before")
    @classmethod
    def _normalize_subtype(cls, v: Any) -> str:
        # The CLI reports e.g. "error_max_turns"; only the outcome matters.
        return "error" if str(v).startswith("error") else "success"

    @field_validator(
        "cost_usd", "duration_ms", "duration_api_ms", "num_turns", mode="before"
    )
    @classmethod
    def _none_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("is_error", mode="before")
    @classmethod
    def _truthy(cls, v: Any) -> bool:
        return bool(v)

    @field_validator("session_id", mode="before")
    @classmethod
    def _coerce_session_id(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("result", "error", mode="before")
    @classmethod
    def _coerce_optional_str(cls, v: Any) -> str | None:
        return None if v is None else str(v)


Record = SystemInit | AssistantMessage | ResultMessage
"""Any record the codec decodes into a typed event."""


class UserPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: Literal["user"] = "user"
    content: str


class UserMessage(BaseModel):
    """Outbound user turn written to the subprocess stdin."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["user"] = "user"
    message: UserPayload
