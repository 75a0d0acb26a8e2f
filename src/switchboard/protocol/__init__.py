"""Agent CLI stream-json protocol — record models and line codec."""

from switchboard.protocol.codec import (
    LineBuffer,
    ProtocolError,
    decode_line,
    encode_user_message,
    extract_text,
    needs_attention,
)
from switchboard.protocol.models import (
    AssistantMessage,
    ContentBlock,
    OtherBlock,
    Record,
    ResultMessage,
    SystemInit,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
)

__all__ = [
    "AssistantMessage",
    "ContentBlock",
    "LineBuffer",
    "OtherBlock",
    "ProtocolError",
    "Record",
    "ResultMessage",
    "SystemInit",
    "TextBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "UserMessage",
    "decode_line",
    "encode_user_message",
    "extract_text",
    "needs_attention",
]
