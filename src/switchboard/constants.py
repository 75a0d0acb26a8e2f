"""Shared constants and type aliases for the switchboard runtime."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

#: Tool name the agent uses when it needs an answer from the user.
ASK_USER_TOOL = "AskUserQuestion"

#: Permission mode that maps to ``--dangerously-skip-permissions``.
SKIP_PERMISSIONS_MODE = "dangerously-skip-permissions"

#: Seconds between SIGTERM and SIGKILL when stopping a session.
DEFAULT_STOP_GRACE = 5.0

#: Models accepted by the agent CLI's ``--model`` shorthand.
VALID_MODELS = ("sonnet", "opus", "haiku")

#: Callback type for notification sinks: ``(tenant_id, text)``.
NotificationSink = Callable[[int, str], Awaitable[None]]
