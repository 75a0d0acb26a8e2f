"""Agent session — one long-lived agent CLI subprocess speaking stream-json."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from switchboard.agent.events import EventEmitter, EventKind, Handler
from switchboard.agent.helpers import format_stderr_preview, short_id
from switchboard.agent.models import SessionInfo, SessionOptions, SessionStatus
from switchboard.constants import DEFAULT_STOP_GRACE, SKIP_PERMISSIONS_MODE
from switchboard.protocol.codec import (
    LineBuffer,
    ProtocolError,
    decode_line,
    encode_user_message,
    extract_text,
    needs_attention,
)
from switchboard.protocol.models import AssistantMessage, ResultMessage, SystemInit

logger = logging.getLogger(__name__)

#: Bytes requested per read from the subprocess pipes.
_READ_CHUNK = 65_536

#: Seconds to keep draining pipes after the process has exited.
_PIPE_DRAIN_WAIT = 2.0

#: Model used when neither the options nor the registry name one.
_FALLBACK_MODEL = "sonnet"


class ProcessError(Exception):
    """Spawn failure, pipe fault, or stray stderr output from the subprocess."""

    kind = "process"


class InactiveSessionError(Exception):
    """Raised by ``send`` when the subprocess stdin is not writable."""


class AgentSession:
    """Owns one agent CLI subprocess and turns its stdout into events.

    Status machine::

        starting -> ready -> busy -> ready ...
        any      -> error    (advisory, the process keeps running)
        any      -> stopped  (terminal: stop() or observed exit)

    All public methods are synchronous.  The spawn and the pipe readers run
    in a background task on the running event loop.
    """

    def __init__(
        self,
        tenant_id: int,
        options: SessionOptions,
        cli_path: str = "claude",
        stop_grace: float = DEFAULT_STOP_GRACE,
    ) -> None:
        self.id = options.resume_session_id or str(uuid.uuid4())
        self.tenant_id = tenant_id
        self.project_path = options.project_path
        self.model = options.model or _FALLBACK_MODEL
        self.is_resumed = options.resume_session_id is not None
        self.created_at = datetime.now(tz=UTC)

        self._options = options
        self._cli_path = cli_path
        self._stop_grace = stop_grace
        self._events = EventEmitter(owner=short_id(self.id))

        self._status: SessionStatus = "starting"
        self._process: asyncio.subprocess.Process | None = None
        self._run_task: asyncio.Task[None] | None = None
        self._agent_session_id: str | None = None
        self._initialized = False
        self._stop_requested = False
        self._kill_timer: asyncio.TimerHandle | None = None
        self._exited = False

    # ------------------------------------------------------------------ #
    # Identity & state
    # ------------------------------------------------------------------ #

    @property
    def session_id(self) -> str:
        """Current identity: the CLI-reported id once known, else the local one."""
        return self._agent_session_id or self.id

    @property
    def agent_session_id(self) -> str | None:
        """Session id announced by the subprocess in its init record."""
        return self._agent_session_id

    @property
    def pid(self) -> int | None:
        proc = self._process
        return proc.pid if proc is not None else None

    @property
    def exited(self) -> bool:
        """True once the process exit has been observed."""
        return self._exited

    def get_status(self) -> SessionStatus:
        return self._status

    def get_info(self) -> SessionInfo:
        return SessionInfo(
            session_id=self.session_id,
            tenant_id=self.tenant_id,
            project_path=self.project_path,
            model=self.model,
            status=self._status,
            created_at=self.created_at,
            is_resumed=self.is_resumed,
        )

    # ------------------------------------------------------------------ #
    # Subscriptions
    # ------------------------------------------------------------------ #

    def on(self, kind: EventKind, handler: Handler) -> Callable[[], None]:
        """Subscribe *handler* to *kind*; returns an unsubscribe callable."""
        return self._events.on(kind, handler)

    def off(self, kind: EventKind, handler: Handler) -> None:
        self._events.off(kind, handler)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def build_args(self) -> list[str]:
        """Command-line arguments for the agent CLI (without the executable)."""
        args = [
            "-p",
            "--input-format",
            "stream-json",
            "--output-format",
            "stream-json",
            "--verbose",
        ]
        if self._options.resume_session_id:
            args.extend(["--resume", self._options.resume_session_id])
        if self.model:
            args.extend(["--model", self.model])

        permission_mode = self._options.permission_mode or SKIP_PERMISSIONS_MODE
        if permission_mode == SKIP_PERMISSIONS_MODE:
            args.append("--dangerously-skip-permissions")
        else:
            args.extend(["--permission-mode", permission_mode])
        return args

    def start(self) -> None:
        """Schedule the spawn.  Must be called from a running event loop."""
        if self._run_task is not None:
            return
        loop = asyncio.get_running_loop()
        self._run_task = loop.create_task(self._run())

    def send(self, text: str) -> None:
        """Write one user turn to the subprocess and mark the session busy.

        Raises:
            InactiveSessionError: If the process is not running, was asked
                to stop, or its stdin is closed.
        """
        proc = self._process
        if (
            self._stop_requested
            or proc is None
            or proc.stdin is None
            or proc.stdin.is_closing()
        ):
            msg = f"Session {short_id(self.session_id)} is not active"
            raise InactiveSessionError(msg)

        try:
            proc.stdin.write(encode_user_message(text).encode())
        except (BrokenPipeError, ConnectionResetError) as exc:
            msg = f"Session {short_id(self.session_id)} is not active: {exc}"
            raise InactiveSessionError(msg) from exc

        self._status = "busy"
        logger.debug("%s: sent %d chars", self._label, len(text))

    def stop(self) -> None:
        """Ask the subprocess to exit: SIGTERM now, SIGKILL after the grace period.

        Status becomes ``stopped`` immediately.  Repeated calls do nothing
        beyond the first; in particular they never re-arm the kill timer.
        """
        self._status = "stopped"
        if self._stop_requested:
            return
        self._stop_requested = True

        proc = self._process
        if proc is not None and not self._exited:
            self._terminate(proc)
        # Not spawned yet: _run terminates right after the spawn completes.

    async def wait_closed(self) -> None:
        """Wait until the background task has observed the process exit."""
        if self._run_task is not None:
            await asyncio.shield(self._run_task)

    # ------------------------------------------------------------------ #
    # Background task
    # ------------------------------------------------------------------ #

    async def _run(self) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                self._cli_path,
                *self.build_args(),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.project_path,
                start_new_session=True,
            )
        except OSError as exc:
            self._spawn_failed(exc)
            return

        self._process = proc
        if self._status == "starting":
            self._status = "ready"
        logger.info(
            "%s: spawned %s (pid %s) in %s",
            self._label,
            self._cli_path,
            proc.pid,
            self.project_path,
        )

        if self._stop_requested:
            self._terminate(proc)

        readers = [
            asyncio.create_task(self._read_stdout(proc)),
            asyncio.create_task(self._read_stderr(proc)),
        ]
        try:
            returncode = await proc.wait()
            # Exit observed: no SIGKILL from here on, even while pipes drain.
            self._exited = True
            self._cancel_kill_timer()
            # Let the readers deliver whatever is still buffered in the pipes
            # so every record is emitted before ``exit``.
            _, pending = await asyncio.wait(readers, timeout=_PIPE_DRAIN_WAIT)
            for task in pending:
                task.cancel()
            for task in pending:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        except asyncio.CancelledError:
            for task in readers:
                task.cancel()
            raise

        self._handle_exit(returncode)

    def _spawn_failed(self, exc: OSError) -> None:
        if isinstance(exc, FileNotFoundError) and not Path(self.project_path).is_dir():
            detail = f"Project directory not found: {self.project_path}"
        elif isinstance(exc, FileNotFoundError):
            detail = f"Agent CLI not found: {self._cli_path}"
        else:
            detail = f"Failed to spawn {self._cli_path}: {exc}"
        logger.error("%s: %s", self._label, detail)
        if self._status != "stopped":
            self._status = "error"
        self._events.emit("error", ProcessError(detail))
        self._handle_exit(None)

    async def _read_stdout(self, proc: asyncio.subprocess.Process) -> None:
        if proc.stdout is None:
            return

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = LineBuffer()
        try:
            while True:
                chunk = await proc.stdout.read(_READ_CHUNK)
                if not chunk:
                    break
                lines = buffer.feed(decoder.decode(chunk))
                for line in lines:
                    self._process_line(line)
                if buffer.overflow is not None:
                    self._emit_protocol_error(buffer.overflow)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._pipe_failed("stdout", exc)
            return

        # EOF: a final record may arrive without its trailing newline.
        for line in buffer.feed(decoder.decode(b"", final=True)):
            self._process_line(line)
        self._process_line(buffer.flush())

    async def _read_stderr(self, proc: asyncio.subprocess.Process) -> None:
        if proc.stderr is None:
            return

        try:
            while True:
                chunk = await proc.stderr.read(_READ_CHUNK)
                if not chunk:
                    break
                text = chunk.decode(errors="replace").strip()
                if not text:
                    continue
                logger.debug("%s: stderr: %s", self._label, text[:200])
                preview = format_stderr_preview(text)
                self._events.emit("error", ProcessError(f"stderr: {preview}"))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._pipe_failed("stderr", exc)

    def _pipe_failed(self, pipe: str, exc: Exception) -> None:
        logger.error("%s: error reading %s: %s", self._label, pipe, exc)
        if self._status != "stopped":
            self._status = "error"
        error = ProcessError(f"Error reading {pipe}: {exc}")
        error.__cause__ = exc
        self._events.emit("error", error)

    # ------------------------------------------------------------------ #
    # Record dispatch
    # ------------------------------------------------------------------ #

    def _process_line(self, line: str) -> None:
        try:
            record = decode_line(line)
        except ProtocolError as exc:
            self._emit_protocol_error(exc)
            return

        match record:
            case None:
                return
            case SystemInit():
                self._dispatch_init(record)
            case AssistantMessage():
                text = extract_text(record)
                if text:
                    self._events.emit("response", text, record)
                if needs_attention(record):
                    self._events.emit("attention-needed", record)
            case ResultMessage():
                if self._status != "stopped":
                    self._status = "ready"
                self._events.emit("result", record)

    def _dispatch_init(self, record: SystemInit) -> None:
        if self._initialized:
            logger.debug(
                "%s: ignoring repeated init record (%s)",
                self._label,
                record.session_id,
            )
            return
        self._initialized = True
        if record.session_id:
            self._agent_session_id = record.session_id
        logger.info(
            "%s: agent session %s (model %s)",
            self._label,
            record.session_id or "<none>",
            record.model,
        )
        self._events.emit("system-init", record)

    def _emit_protocol_error(self, exc: ProtocolError) -> None:
        logger.warning("%s: %s", self._label, exc)
        self._events.emit("error", exc)

    # ------------------------------------------------------------------ #
    # Termination
    # ------------------------------------------------------------------ #

    def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        loop = asyncio.get_running_loop()
        self._kill_timer = loop.call_later(self._stop_grace, self._force_kill, proc)

    def _force_kill(self, proc: asyncio.subprocess.Process) -> None:
        self._kill_timer = None
        if self._exited:
            return
        logger.warning(
            "%s: no exit %.1fs after SIGTERM, sending SIGKILL",
            self._label,
            self._stop_grace,
        )
        with contextlib.suppress(ProcessLookupError):
            proc.kill()

    def _cancel_kill_timer(self) -> None:
        if self._kill_timer is not None:
            self._kill_timer.cancel()
            self._kill_timer = None

    def _handle_exit(self, returncode: int | None) -> None:
        self._cancel_kill_timer()
        self._exited = True
        self._status = "stopped"
        self._process = None

        # Negative return codes mean "killed by signal": no exit code.
        code = returncode if returncode is not None and returncode >= 0 else None
        logger.info("%s: exited with code %s", self._label, code)
        self._events.emit("exit", code)

    @property
    def _label(self) -> str:
        return short_id(self.session_id)
