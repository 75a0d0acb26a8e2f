"""Session registry — owns agent sessions and each tenant's active pointer."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from switchboard.agent.helpers import short_id
from switchboard.agent.models import SessionInfo, SessionOptions
from switchboard.agent.session import AgentSession
from switchboard.constants import DEFAULT_STOP_GRACE, SKIP_PERMISSIONS_MODE
from switchboard.protocol.models import SystemInit

logger = logging.getLogger(__name__)

SessionFactory = Callable[[int, SessionOptions, str, float], AgentSession]
"""``(tenant_id, options, cli_path, stop_grace) -> AgentSession``."""


class RegistryError(Exception):
    """Base class for synchronous registry failures."""


class CapacityError(RegistryError):
    """Raised when the registry already holds the maximum number of sessions."""


class NotFoundError(RegistryError):
    """Raised when a session id is not a current registry key."""


class SessionExistsError(RegistryError):
    """Raised when a new session would take a key that is already live."""


@dataclass
class _Entry:
    """One registered session and the key it is currently stored under."""

    session: AgentSession
    key: str
    remapped: bool = False


class SessionRegistry:
    """Indexes sessions by id and tracks one active session per tenant.

    Keys start as the session's local id and are re-keyed at most once, to
    the id the subprocess announces in its init record.  Every mutation of
    ``_entries`` and ``_active`` completes synchronously, so no other
    callback can observe a half-applied change.
    """

    def __init__(
        self,
        cli_path: str = "claude",
        max_sessions: int = 5,
        default_model: str = "sonnet",
        default_permission_mode: str = SKIP_PERMISSIONS_MODE,
        stop_grace: float = DEFAULT_STOP_GRACE,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._cli_path = cli_path
        self._max_sessions = max_sessions
        self._default_model = default_model
        self._default_permission_mode = default_permission_mode
        self._stop_grace = stop_grace
        self._factory: SessionFactory = session_factory or AgentSession

        self._entries: dict[str, _Entry] = {}
        self._active: dict[int, str] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def max_sessions(self) -> int:
        return self._max_sessions

    # ------------------------------------------------------------------ #
    # Creation
    # ------------------------------------------------------------------ #

    def create(self, tenant_id: int, options: SessionOptions) -> AgentSession:
        """Start a session for *tenant_id* and make it the tenant's active one.

        Raises:
            CapacityError: The registry is full.  Nothing is changed.
            SessionExistsError: The session id (a resume target) is already
                registered.  Nothing is changed.
        """
        if len(self._entries) >= self._max_sessions:
            msg = (
                f"Maximum sessions reached ({self._max_sessions}). "
                "Stop a session first."
            )
            raise CapacityError(msg)

        resolved = options.model_copy(
            update={
                "model": options.model or self._default_model,
                "permission_mode": options.permission_mode
                or self._default_permission_mode,
            }
        )
        session = self._factory(tenant_id, resolved, self._cli_path, self._stop_grace)
        if session.id in self._entries:
            msg = f"Session {session.id} is already running"
            raise SessionExistsError(msg)

        # start() only schedules the spawn; no event fires before the listeners
        # below are attached. Nothing is registered if it raises.
        session.start()

        entry = _Entry(session=session, key=session.id)
        self._entries[entry.key] = entry
        self._active[tenant_id] = entry.key

        session.on("system-init", lambda record: self._on_system_init(entry, record))
        session.on("exit", lambda _code: self._on_exit(entry))

        logger.info(
            "tenant %s: created session %s in %s (%d/%d)",
            tenant_id,
            short_id(entry.key),
            session.project_path,
            len(self._entries),
            self._max_sessions,
        )
        return session

    def resume(self, tenant_id: int, session_id: str, project_path: str) -> AgentSession:
        """Resume a prior agent session; its id is known, so no re-key follows."""
        return self.create(
            tenant_id,
            SessionOptions(project_path=project_path, resume_session_id=session_id),
        )

    # ------------------------------------------------------------------ #
    # Tenant pointers & control
    # ------------------------------------------------------------------ #

    def switch(self, tenant_id: int, session_id: str) -> AgentSession:
        """Point *tenant_id* at an existing session.  Subprocesses are untouched."""
        entry = self._require(session_id)
        self._active[tenant_id] = entry.key
        return entry.session

    def stop(self, session_id: str) -> None:
        """Stop a session.  It leaves the registry when its exit is observed."""
        self._require(session_id).session.stop()

    def get(self, session_id: str) -> AgentSession | None:
        entry = self._entries.get(session_id)
        return entry.session if entry is not None else None

    def get_active(self, tenant_id: int) -> AgentSession | None:
        key = self._active.get(tenant_id)
        if key is None:
            return None
        return self._entries[key].session

    def list_active(self) -> list[SessionInfo]:
        """Snapshot of every registered session, in insertion order."""
        return [entry.session.get_info() for entry in self._entries.values()]

    def stop_all_and_clear(self) -> list[AgentSession]:
        """Stop every session and empty both maps.  Returns the stopped sessions."""
        sessions = [entry.session for entry in self._entries.values()]
        for session in sessions:
            session.stop()
        self._entries.clear()
        self._active.clear()
        if sessions:
            logger.info("stopped %d session(s)", len(sessions))
        return sessions

    # ------------------------------------------------------------------ #
    # Internal listeners
    # ------------------------------------------------------------------ #

    def _require(self, session_id: str) -> _Entry:
        entry = self._entries.get(session_id)
        if entry is None:
            msg = f"Session not found: {session_id}"
            raise NotFoundError(msg)
        return entry

    def _on_system_init(self, entry: _Entry, record: SystemInit) -> None:
        new_key = record.session_id
        if entry.remapped or not new_key or new_key == entry.key:
            return
        if self._entries.get(entry.key) is not entry:
            # Removed by stop_all_and_clear; nothing to re-key.
            return
        if new_key in self._entries:
            logger.warning(
                "session %s reported id %s, which is already registered; keeping %s",
                short_id(entry.key),
                new_key,
                entry.key,
            )
            return
        self._rekey(entry, new_key)

    def _rekey(self, entry: _Entry, new_key: str) -> None:
        old_key = entry.key
        del self._entries[old_key]
        self._entries[new_key] = entry
        entry.key = new_key
        entry.remapped = True
        for tenant_id, key in self._active.items():
            if key == old_key:
                self._active[tenant_id] = new_key
        logger.info("re-keyed session %s -> %s", short_id(old_key), new_key)

    def _on_exit(self, entry: _Entry) -> None:
        if self._entries.get(entry.key) is not entry:
            return
        del self._entries[entry.key]
        for tenant_id in [t for t, k in self._active.items() if k == entry.key]:
            del self._active[tenant_id]
        logger.info(
            "removed session %s (%d/%d)",
            short_id(entry.key),
            len(self._entries),
            self._max_sessions,
        )
