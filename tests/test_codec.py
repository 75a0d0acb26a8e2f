"""Tests for the stream-json line codec."""

from __future__ import annotations

import json

import pytest

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
    OtherBlock,
    ResultMessage,
    SystemInit,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _assistant_line(*blocks: dict, session_id: str = "s-1") -> str:
    return json.dumps(
        {
            "type": "assistant",
            "session_id": session_id,
            "message": {"id": "msg_1", "role": "assistant", "content": list(blocks)},
        }
    )


def _assistant(*blocks: dict) -> AssistantMessage:
    record = decode_line(_assistant_line(*blocks))
    assert isinstance(record, AssistantMessage)
    return record


# ------------------------------------------------------------------ #
# decode_line
# ------------------------------------------------------------------ #


class TestDecodeSystem:
    def test_init_record(self) -> None:
        line = json.dumps(
            {
                "type": "system",
                "subtype": "init",
                "session_id": "abc-123",
                "tools": ["Bash", "Read"],
                "model": "claude-sonnet",
                "cwd": "/work",
            }
        )
        record = decode_line(line)
        assert isinstance(record, SystemInit)
        assert record.session_id == "abc-123"
        assert record.tools == ["Bash", "Read"]
        assert record.model == "claude-sonnet"
        assert record.cwd == "/work"

    def test_init_defaults_missing_fields(self) -> None:
        record = decode_line('{"type": "system", "subtype": "init"}')
        assert isinstance(record, SystemInit)
        assert record.session_id == ""
        assert record.tools == []

    def test_unknown_subtype_is_error(self) -> None:
        line = '{"type": "system", "subtype": "compact"}'
        with pytest.raises(ProtocolError, match="Unknown system subtype") as exc_info:
            decode_line(line)
        assert exc_info.value.raw_line == line

    def test_extra_fields_ignored(self) -> None:
        line = json.dumps(
            {"type": "system", "subtype": "init", "session_id": "x", "apiKeySource": "env"}
        )
        record = decode_line(line)
        assert isinstance(record, SystemInit)
        assert record.session_id == "x"


class TestDecodeAssistant:
    def test_text_and_tool_blocks(self) -> None:
        record = _assistant(
            {"type": "text", "text": "hello"},
            {"type": "tool_use", "id": "t1", "name": "Bash", "input": {"cmd": "ls"}},
            {"type": "tool_result", "tool_use_id": "t1", "content": "ok"},
        )
        blocks = record.message.content
        assert isinstance(blocks[0], TextBlock)
        assert isinstance(blocks[1], ToolUseBlock)
        assert blocks[1].name == "Bash"
        assert blocks[1].input == {"cmd": "ls"}
        assert isinstance(blocks[2], ToolResultBlock)
        assert record.session_id == "s-1"

    def test_tool_use_alternate_field_names(self) -> None:
        record = _assistant(
            {"type": "tool_use", "tool_name": "Edit", "tool_input": {"path": "a.py"}}
        )
        block = record.message.content[0]
        assert isinstance(block, ToolUseBlock)
        assert block.name == "Edit"
        assert block.input == {"path": "a.py"}

    def test_unknown_block_kind_kept(self) -> None:
        record = _assistant({"type": "thinking", "thinking": "hmm"})
        block = record.message.content[0]
        assert isinstance(block, OtherBlock)
        assert block.type == "thinking"

    def test_missing_message_is_error(self) -> None:
        line = '{"type": "assistant", "session_id": "s"}'
        with pytest.raises(ProtocolError, match="Missing 'message'") as exc_info:
            decode_line(line)
        assert exc_info.value.raw_line == line

    def test_null_session_id_becomes_empty(self) -> None:
        line = json.dumps(
            {"type": "assistant", "session_id": None, "message": {"content": []}}
        )
        record = decode_line(line)
        assert isinstance(record, AssistantMessage)
        assert record.session_id == ""


class TestLenientAssistant:
    def test_non_dict_tool_input_becomes_empty(self) -> None:
        record = _assistant({"type": "tool_use", "id": "t1", "name": "Bash", "input": "raw"})
        block = record.message.content[0]
        assert isinstance(block, ToolUseBlock)
        assert block.input == {}

    def test_null_text_next_to_real_text(self) -> None:
        record = _assistant({"type": "text", "text": None}, {"type": "text", "text": "b"})
        assert record.message.content[0].text == ""
        assert extract_text(record) == "b"

    def test_null_tool_name_becomes_empty(self) -> None:
        record = _assistant({"type": "tool_use", "id": None, "name": None, "input": {}})
        block = record.message.content[0]
        assert isinstance(block, ToolUseBlock)
        assert block.name == ""
        assert block.id == ""
        assert needs_attention(record) is False

    def test_numeric_stop_reason_stringified(self) -> None:
        line = json.dumps(
            {"type": "assistant", "message": {"stop_reason": 3, "content": []}}
        )
        record = decode_line(line)
        assert isinstance(record, AssistantMessage)
        assert record.message.stop_reason == "3"

    def test_unexpected_role_forced_to_assistant(self) -> None:
        line = json.dumps(
            {
                "type": "assistant",
                "message": {"role": "model", "content": [{"type": "text", "text": "hi"}]},
            }
        )
        record = decode_line(line)
        assert isinstance(record, AssistantMessage)
        assert record.message.role == "assistant"
        assert extract_text(record) == "hi"

    def test_block_without_type_kept_as_other(self) -> None:
        record = _assistant({"text": "no type"}, {"type": None})
        blocks = record.message.content
        assert all(isinstance(block, OtherBlock) for block in blocks)
        assert [block.type for block in blocks] == ["", ""]


class TestDecodeResult:
    def test_success(self) -> None:
        line = json.dumps(
            {
                "type": "result",
                "subtype": "success",
                "session_id": "s-1",
                "total_cost_usd": 0.0123,
                "duration_ms": 1500,
                "duration_api_ms": 1200,
                "is_error": False,
                "num_turns": 3,
                "result": "Done.",
            }
        )
        record = decode_line(line)
        assert isinstance(record, ResultMessage)
        assert record.subtype == "success"
        assert record.cost_usd == pytest.approx(0.0123)
        assert record.num_turns == 3
        assert record.result == "Done."

    def test_error_subtypes_collapse(self) -> None:
        record = decode_line('{"type": "result", "subtype": "error_max_turns"}')
        assert isinstance(record, ResultMessage)
        assert record.subtype == "error"

    def test_null_numbers_default_to_zero(self) -> None:
        record = decode_line(
            '{"type": "result", "subtype": "success", "cost_usd": null, "num_turns": null}'
        )
        assert isinstance(record, ResultMessage)
        assert record.cost_usd == 0
        assert record.num_turns == 0

    def test_wrong_field_type_is_error(self) -> None:
        line = '{"type": "result", "subtype": "success", "duration_ms": "slow"}'
        with pytest.raises(ProtocolError, match="Invalid result record") as exc_info:
            decode_line(line)
        assert exc_info.value.raw_line == line


class TestDecodeOther:
    def test_blank_line(self) -> None:
        assert decode_line("") is None
        assert decode_line("   \r") is None

    def test_unknown_type_ignored(self) -> None:
        assert decode_line('{"type": "user", "message": {}}') is None
        assert decode_line('{"type": "stream_event"}') is None

    def test_invalid_json(self) -> None:
        with pytest.raises(ProtocolError, match="Invalid JSON") as exc_info:
            decode_line("{not json")
        assert exc_info.value.raw_line == "{not json"

    def test_missing_type(self) -> None:
        with pytest.raises(ProtocolError, match="Missing 'type'"):
            decode_line('{"session_id": "x"}')

    def test_non_object(self) -> None:
        with pytest.raises(ProtocolError):
            decode_line("[1, 2, 3]")

    def test_error_kind(self) -> None:
        assert ProtocolError("x", "y").kind == "protocol"


# ------------------------------------------------------------------ #
# encode_user_message
# ------------------------------------------------------------------ #


class TestEncodeUserMessage:
    def test_shape(self) -> None:
        line = encode_user_message("fix the bug")
        assert line.endswith("\n")
        assert line.count("\n") == 1
        assert json.loads(line) == {
            "type": "user",
            "message": {"role": "user", "content": "fix the bug"},
        }

    def test_embedded_newlines_escaped(self) -> None:
        line = encode_user_message("line one\nline two")
        assert line.count("\n") == 1
        assert json.loads(line)["message"]["content"] == "line one\nline two"


# ------------------------------------------------------------------ #
# extract_text / needs_attention
# ------------------------------------------------------------------ #


class TestExtractText:
    def test_concatenates_text_blocks_in_order(self) -> None:
        record = _assistant(
            {"type": "text", "text": "a"},
            {"type": "tool_use", "name": "Bash", "input": {}},
            {"type": "text", "text": ""},
            {"type": "text", "text": "b"},
        )
        assert extract_text(record) == "ab"

    def test_no_text(self) -> None:
        record = _assistant({"type": "tool_use", "name": "Bash", "input": {}})
        assert extract_text(record) == ""


class TestNeedsAttention:
    def test_ask_user_tool(self) -> None:
        record = _assistant(
            {"type": "tool_use", "name": "AskUserQuestion", "input": {"q": "?"}}
        )
        assert needs_attention(record) is True

    def test_other_tools(self) -> None:
        record = _assistant(
            {"type": "text", "text": "AskUserQuestion"},
            {"type": "tool_use", "name": "Bash", "input": {}},
        )
        assert needs_attention(record) is False


# ------------------------------------------------------------------ #
# LineBuffer
# ------------------------------------------------------------------ #


class TestLineBuffer:
    def test_split_record_reassembled(self) -> None:
        buf = LineBuffer()
        assert buf.feed('{"type": "sys') == []
        assert buf.pending == '{"type": "sys'
        assert buf.feed('tem"}\n') == ['{"type": "system"}']
        assert buf.pending == ""

    def test_multiple_lines_in_one_chunk(self) -> None:
        buf = LineBuffer()
        assert buf.feed("a\nb\nc") == ["a", "b"]
        assert buf.pending == "c"

    def test_flush_returns_fragment(self) -> None:
        buf = LineBuffer()
        buf.feed("tail")
        assert buf.flush() == "tail"
        assert buf.pending == ""

    def test_overflow_discards_line(self) -> None:
        buf = LineBuffer(max_chars=10)
        assert buf.feed("x" * 11) == []
        assert isinstance(buf.overflow, ProtocolError)
        assert buf.pending == ""

        # Rest of the oversized line is skipped up to its newline.
        assert buf.feed("yyyy") == []
        assert buf.overflow is None
        assert buf.feed("zz\nok\n") == ["ok"]
        assert buf.pending == ""

    def test_fragment_at_cap_kept(self) -> None:
        buf = LineBuffer(max_chars=10)
        assert buf.feed("x" * 10) == []
        assert buf.overflow is None
        assert buf.feed("\n") == ["x" * 10]
