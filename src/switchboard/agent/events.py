"""Per-session observer lists for agent session events."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Literal, get_args

logger = logging.getLogger(__name__)

EventKind = Literal[
    "system-init",
    "response",
    "attention-needed",
    "result",
    "error",
    "exit",
]
"""Event kinds a session emits.

Handler signatures:

* ``system-init``      — ``(record: SystemInit)``
* ``response``         — ``(text: str, record: AssistantMessage)``
* ``attention-needed`` — ``(record: AssistantMessage)``
* ``result``           — ``(record: ResultMessage)``
* ``error``            — ``(error: ProtocolError | ProcessError)``
* ``exit``             — ``(code: int | None)``
"""

EVENT_KINDS: frozenset[str] = frozenset(get_args(EventKind))

Handler = Callable[..., Any]


class EventEmitter:
    """Explicit observer list, one per event kind.

    Handlers run synchronously in registration order.  A handler that
    raises is logged and skipped; the remaining handlers still run.
    """

    def __init__(self, owner: str = "") -> None:
        self._owner = owner
        self._handlers: dict[str, list[Handler]] = {kind: [] for kind in EVENT_KINDS}

    def on(self, kind: EventKind, handler: Handler) -> Callable[[], None]:
        """Register *handler* for *kind*.  Returns an unsubscribe callable."""
        if kind not in EVENT_KINDS:
            msg = f"Unknown event kind '{kind}'"
            raise ValueError(msg)
        self._handlers[kind].append(handler)
        return lambda: self.off(kind, handler)

    def off(self, kind: EventKind, handler: Handler) -> None:
        """Remove *handler* from *kind*; unknown handlers are ignored."""
        handlers = self._handlers.get(kind, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, kind: EventKind, *payload: Any) -> None:
        """Deliver *payload* to every handler registered for *kind*."""
        # Snapshot so handlers may unsubscribe while being called.
        for handler in list(self._handlers[kind]):
            try:
                handler(*payload)
            except Exception:
                logger.exception("%s: '%s' handler failed", self._owner, kind)

    def handler_count(self, kind: EventKind) -> int:
        return len(self._handlers[kind])
