"""Read-only access to the agent CLI's on-disk session history."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

HISTORY_FILE_NAME = "history.jsonl"
PROJECTS_DIR_NAME = "projects"

#: Full session ids are UUIDs; shorter input is treated as a prefix.
_FULL_ID_MIN_LEN = 21


class HistoryEntry(BaseModel):
    """One past session as recorded by the agent CLI."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    project_path: str
    timestamp: str = Field(description="ISO 8601 timestamp, empty when unknown")
    model: str = "unknown"
    summary: str | None = None


class AmbiguousSessionError(Exception):
    """A partial id matches more than one historical session."""

    def __init__(self, partial_id: str, matches: list[HistoryEntry]) -> None:
        ids = ", ".join(m.session_id[:8] for m in matches[:5])
        super().__init__(
            f"'{partial_id}' matches {len(matches)} sessions ({ids}); "
            "use more characters"
        )
        self.partial_id = partial_id
        self.matches = matches


class HistoryStore:
    """Reads ``history.jsonl`` and per-project transcripts under *claude_dir*."""

    def __init__(self, claude_dir: Path | None = None) -> None:
        self._claude_dir = claude_dir or Path.home() / ".claude"

    @property
    def history_file(self) -> Path:
        return self._claude_dir / HISTORY_FILE_NAME

    def recent(self, limit: int = 20) -> list[HistoryEntry]:
        """Most recent sessions first, one entry per session id."""
        try:
            text = self.history_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []

        # The file has one line per prompt; the last line per session wins.
        latest: dict[str, HistoryEntry] = {}
        for line in text.splitlines():
            entry = _parse_history_line(line)
            if entry is not None and entry.session_id:
                latest[entry.session_id] = entry

        entries = sorted(latest.values(), key=_sort_key, reverse=True)
        return entries[:limit]

    def for_project(self, project_path: str) -> list[HistoryEntry]:
        """Sessions stored under the CLI's per-project transcript directory."""
        encoded = project_path.replace("/", "-").lstrip("-")
        project_dir = self._claude_dir / PROJECTS_DIR_NAME / encoded
        try:
            files = sorted(project_dir.glob("*.jsonl"))
        except OSError:
            return []

        entries: list[HistoryEntry] = []
        for file in files:
            first = _first_record(file)
            entries.append(
                HistoryEntry(
                    session_id=file.stem,
                    project_path=project_path,
                    timestamp=_normalize_timestamp(
                        first.get("timestamp", first.get("created_at"))
                    ),
                    model=str(first.get("model") or "unknown"),
                    summary=_optional_str(first.get("summary", first.get("query"))),
                )
            )
        entries.sort(key=_sort_key, reverse=True)
        return entries

    def resolve(self, partial_id: str, search_limit: int = 100) -> HistoryEntry | None:
        """Resolve a full or partial session id against recent history.

        A full id absent from history still resolves, with the current
        directory as its project.

        Raises:
            AmbiguousSessionError: The prefix matches several sessions.
        """
        partial_id = partial_id.strip()
        if not partial_id:
            return None
        sessions = self.recent(search_limit)

        if "-" in partial_id and len(partial_id) >= _FULL_ID_MIN_LEN:
            for entry in sessions:
                if entry.session_id == partial_id:
                    return entry
            return HistoryEntry(
                session_id=partial_id,
                project_path=str(Path.cwd()),
                timestamp="",
            )

        matches = [s for s in sessions if s.session_id.startswith(partial_id)]
        if len(matches) > 1:
            raise AmbiguousSessionError(partial_id, matches)
        return matches[0] if matches else None


def _parse_history_line(line: str) -> HistoryEntry | None:
    line = line.strip()
    if not line:
        return None
    try:
        parsed = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("skipping malformed history line: %s", line[:100])
        return None
    if not isinstance(parsed, dict):
        return None

    session_id = parsed.get("sessionId", parsed.get("session_id")) or ""
    project = (
        parsed.get("project")
        or parsed.get("project_path")
        or parsed.get("projectPath")
        or parsed.get("cwd")
        or ""
    )
    return HistoryEntry(
        session_id=str(session_id),
        project_path=str(project),
        timestamp=_normalize_timestamp(
            parsed.get("timestamp", parsed.get("created_at"))
        ),
        model=str(parsed.get("model") or "unknown"),
        summary=_optional_str(
            parsed.get("display") or parsed.get("summary") or parsed.get("query")
        ),
    )


def _first_record(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as fh:
            first = fh.readline()
        parsed = json.loads(first) if first.strip() else {}
    except (OSError, json.JSONDecodeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _normalize_timestamp(raw: Any) -> str:
    """Epoch milliseconds become ISO 8601; strings pass through."""
    if raw is None:
        return ""
    if isinstance(raw, bool):
        return ""
    if isinstance(raw, (int, float)):
        ts = datetime.fromtimestamp(raw / 1000, tz=UTC)
        return ts.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    return str(raw)


def _sort_key(entry: HistoryEntry) -> float:
    if not entry.timestamp:
        return 0.0
    try:
        return datetime.fromisoformat(entry.timestamp.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)
