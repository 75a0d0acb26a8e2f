"""Shared text helpers for session output."""

from __future__ import annotations


def format_stderr_preview(stderr_text: str, max_lines: int = 5) -> str:
    """Extract and format the last N non-empty lines from stderr output."""
    lines = [line for line in stderr_text.split("\n") if line.strip()]
    last = lines[-max_lines:] if len(lines) > max_lines else lines
    return "\n  ".join(last)


def truncate(text: str, max_len: int) -> str:
    """Cut *text* to *max_len* characters, marking the cut with ``...``."""
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


def short_id(session_id: str) -> str:
    """First eight characters of a session id, as shown to users."""
    return session_id[:8]
