"""Line codec for the agent CLI stream-json protocol.

Each line of subprocess stdout is one JSON record tagged by ``type``:

* ``system``    — ``subtype="init"`` announces the CLI's session id.
* ``assistant`` — one turn; content blocks live in ``message.content[]``.
* ``result``    — end of a turn with cost and timing.

Anything else (``user`` tool-result echoes, ``stream_event``, ...) decodes to
``None`` so newer CLI versions never break a running session.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from switchboard.constants import ASK_USER_TOOL
from switchboard.protocol.models import (
    AssistantMessage,
    Record,
    ResultMessage,
    SystemInit,
    TextBlock,
    ToolUseBlock,
    UserMessage,
    UserPayload,
)

#: Maximum characters buffered for a single line before it is discarded (1 MB).
MAX_LINE_CHARS = 1_048_576

#: Characters of the offending line quoted in error messages.
_PREVIEW_LEN = 100


class ProtocolError(Exception):
    """A line from the subprocess could not be decoded."""

    kind = "protocol"

    def __init__(self, message: str, raw_line: str) -> None:
        super().__init__(message)
        self.raw_line = raw_line


def decode_line(line: str) -> Record | None:
    """Decode one line of subprocess output.

    Returns ``None`` for blank lines and for record types this codec does
    not handle.

    Raises:
        ProtocolError: On invalid JSON, a missing ``type``, an unknown
            ``system`` subtype, an ``assistant`` record without ``message``,
            or fields of a known record that fail validation.
    """
    raw = line.strip()
    if not raw:
        return None

    try:
        obj = json.loads(raw)
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON: {raw[:_PREVIEW_LEN]}"
        raise ProtocolError(msg, raw) from exc

    if not isinstance(obj, dict) or "type" not in obj:
        raise ProtocolError("Missing 'type' field", raw)

    match obj["type"]:
        case "system":
            if obj.get("subtype") != "init":
                msg = f"Unknown system subtype: {obj.get('subtype')}"
                raise ProtocolError(msg, raw)
            return _validate(SystemInit, obj, raw)
        case "assistant":
            if not isinstance(obj.get("message"), dict):
                msg = "Missing 'message' field in assistant event"
                raise ProtocolError(msg, raw)
            return _validate(AssistantMessage, obj, raw)
        case "result":
            return _validate(ResultMessage, obj, raw)
        case _:
            return None


def _validate(model: type[Record], obj: dict[str, Any], raw: str) -> Record:
    try:
        return model.model_validate(obj)
    except ValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(s) for s in first["loc"])
        msg = f"Invalid {obj['type']} record at {loc or '<root>'}: {first['msg']}"
        raise ProtocolError(msg, raw) from exc


def encode_user_message(text: str) -> str:
    """Serialize an outbound user turn as one newline-terminated line."""
    record = UserMessage(message=UserPayload(content=text))
    return record.model_dump_json() + "\n"


def extract_text(message: AssistantMessage) -> str:
    """Concatenate all non-empty text blocks of a turn, in order."""
    return "".join(
        block.text
        for block in message.message.content
        if isinstance(block, TextBlock) and block.text
    )


def needs_attention(message: AssistantMessage) -> bool:
    """True when the turn asks the user a question via the ask-user tool."""
    return any(
        isinstance(block, ToolUseBlock) and block.name == ASK_USER_TOOL
        for block in message.message.content
    )


class LineBuffer:
    """Reassembles newline-delimited lines from arbitrarily chunked text.

    The trailing fragment of every chunk is held back and prefixed onto the
    next one.
    """

    def __init__(self, max_chars: int = MAX_LINE_CHARS) -> None:
        self._partial = ""
        self._max_chars = max_chars
        self._discarding = False
        self.overflow: ProtocolError | None = None

    @property
    def pending(self) -> str:
        """Text received since the last newline."""
        return self._partial

    def feed(self, chunk: str) -> list[str]:
        """Add *chunk* and return every line it completed.

        A fragment that grows past the line cap is dropped, the rest of that
        line is skipped up to its newline, and ``overflow`` holds a
        ``ProtocolError`` describing it until the next ``feed``.
        """
        self.overflow = None
        lines = (self._partial + chunk).split("\n")
        self._partial = lines.pop()
        if self._discarding and lines:
            # First "line" is the tail of the oversized one.
            lines.pop(0)
            self._discarding = False
        if self._discarding:
            self._partial = ""
        elif len(self._partial) > self._max_chars:
            preview = self._partial[:_PREVIEW_LEN]
            self._partial = ""
            self._discarding = True
            msg = f"Line exceeds {self._max_chars} characters, discarded"
            self.overflow = ProtocolError(msg, preview)
        return lines

    def flush(self) -> str:
        """Return and clear whatever fragment is left (used at EOF)."""
        rest, self._partial = self._partial, ""
        return rest
