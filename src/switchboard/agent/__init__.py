"""Agent session runtime — one supervised agent CLI subprocess per session."""

from switchboard.agent.events import EVENT_KINDS, EventEmitter, EventKind
from switchboard.agent.models import SessionInfo, SessionOptions, SessionStatus
from switchboard.agent.session import AgentSession, InactiveSessionError, ProcessError

__all__ = [
    "EVENT_KINDS",
    "AgentSession",
    "EventEmitter",
    "EventKind",
    "InactiveSessionError",
    "ProcessError",
    "SessionInfo",
    "SessionOptions",
    "SessionStatus",
]
