"""switchboard run — drive agent sessions from an interactive console."""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import select
import signal
import sys
import threading
import time
from pathlib import Path

import click

from switchboard.agent.helpers import short_id
from switchboard.agent.models import SessionOptions
from switchboard.agent.session import AgentSession, InactiveSessionError
from switchboard.config.models import SwitchboardConfig
from switchboard.config.parser import ConfigError, load_config
from switchboard.constants import VALID_MODELS
from switchboard.history import AmbiguousSessionError, HistoryStore
from switchboard.notifier import Notifier
from switchboard.registry.registry import NotFoundError, RegistryError, SessionRegistry
from switchboard.shutdown import ShutdownManager

logger = logging.getLogger(__name__)

#: The console is a single tenant.
CONSOLE_TENANT = 0

_HELP = """\
Commands:
  /new <project-path> [model]  start a session (models: sonnet, opus, haiku)
  /resume <session-id>         resume a past session (8-char prefix is enough)
  /switch <session-id>         make another running session active
  /stop [session-id]           stop a session (default: the active one)
  /sessions                    list running and recent sessions
  /status                      show the active session
  /quit                        stop everything and exit
Anything else is sent to the active session."""


async def _console_sink(tenant_id: int, text: str) -> None:
    click.echo(click.style(text, fg="yellow"))


class ConsoleFrontend:
    """Maps console lines onto registry operations for one tenant."""

    def __init__(
        self,
        registry: SessionRegistry,
        history: HistoryStore,
        notifier: Notifier,
        tenant_id: int = CONSOLE_TENANT,
    ) -> None:
        self._registry = registry
        self._history = history
        self._notifier = notifier
        self._tenant = tenant_id

    def handle_line(self, line: str) -> bool:
        """Process one input line.  Returns ``True`` if the console should exit."""
        line = line.strip()
        if not line:
            return False
        if not line.startswith("/"):
            self._send(line)
            return False

        command, _, rest = line.partition(" ")
        command = command.lower()
        args = rest.split()
        logger.debug("console command %s %s", command, args)
        match command:
            case "/quit" | "/exit":
                return True
            case "/help":
                click.echo(_HELP)
            case "/new":
                self._new(args)
            case "/resume":
                self._resume(args)
            case "/switch":
                self._switch(args)
            case "/stop":
                self._stop(args)
            case "/sessions":
                self._sessions()
            case "/status":
                self._status()
            case _:
                click.echo(f"Unknown command: {command}  (try /help)")
        return False

    # ------------------------------------------------------------------ #
    # Commands
    # ------------------------------------------------------------------ #

    def _send(self, text: str) -> None:
        session = self._registry.get_active(self._tenant)
        if session is None:
            click.echo("No active session. Use /new <project-path> to start one.")
            return
        try:
            session.send(text)
        except InactiveSessionError as exc:
            click.echo(f"Failed to send: {exc}")

    def _new(self, args: list[str]) -> None:
        if not args:
            click.echo("Usage: /new <project-path> [model]")
            return
        project = str(Path(args[0]).expanduser().resolve())
        model = args[1] if len(args) > 1 else None
        if model is not None and model not in VALID_MODELS:
            click.echo(f"Invalid model '{model}'. Valid models: {', '.join(VALID_MODELS)}")
            return
        try:
            session = self._registry.create(
                self._tenant, SessionOptions(project_path=project, model=model)
            )
        except RegistryError as exc:
            click.echo(f"Failed to create session: {exc}")
            return
        self._attach(session)
        click.echo(f"Session started: {short_id(session.id)} ({session.model})")
        click.echo(f"Project: {project}")

    def _resume(self, args: list[str]) -> None:
        if not args:
            click.echo("Usage: /resume <session-id>")
            return
        try:
            entry = self._history.resolve(args[0])
        except AmbiguousSessionError as exc:
            click.echo(str(exc))
            return
        if entry is None:
            click.echo(f"Session not found for ID: {args[0]}")
            return

        if self._registry.get(entry.session_id) is not None:
            self._registry.switch(self._tenant, entry.session_id)
            click.echo(f"Switched to running session: {short_id(entry.session_id)}")
            return

        try:
            session = self._registry.resume(
                self._tenant, entry.session_id, entry.project_path
            )
        except RegistryError as exc:
            click.echo(f"Failed to resume session: {exc}")
            return
        self._attach(session)
        click.echo(f"Resumed session: {short_id(entry.session_id)}")
        click.echo(f"Project: {entry.project_path}")

    def _switch(self, args: list[str]) -> None:
        if not args:
            click.echo("Usage: /switch <session-id>")
            return
        try:
            session = self._registry.switch(self._tenant, self._match_live(args[0]))
        except NotFoundError as exc:
            click.echo(f"Failed to switch: {exc}")
            return
        click.echo(f"Switched to session: {short_id(session.session_id)}")

    def _stop(self, args: list[str]) -> None:
        if args:
            session_id = self._match_live(args[0])
        else:
            active = self._registry.get_active(self._tenant)
            if active is None:
                click.echo("No active session to stop.")
                return
            session_id = active.session_id
        try:
            self._registry.stop(session_id)
        except NotFoundError as exc:
            click.echo(f"Failed to stop session: {exc}")
            return
        click.echo(f"Session stopped: {short_id(session_id)}")

    def _sessions(self) -> None:
        active = self._registry.get_active(self._tenant)
        infos = self._registry.list_active()
        if infos:
            click.echo(f"Running ({len(infos)}/{self._registry.max_sessions}):")
            for info in infos:
                marker = "*" if active and active.session_id == info.session_id else " "
                click.echo(
                    f" {marker} {short_id(info.session_id)}  {info.status:<8} "
                    f"{info.model:<7} {info.project_path}"
                )
        recent = self._history.recent(5)
        if recent:
            click.echo("Recent:")
            for entry in recent:
                summary = f"  {entry.summary[:40]}" if entry.summary else ""
                click.echo(f"   {short_id(entry.session_id)}  {entry.project_path}{summary}")
        if not infos and not recent:
            click.echo("No running or recent sessions. Use /new <project-path>.")

    def _status(self) -> None:
        session = self._registry.get_active(self._tenant)
        if session is None:
            click.echo("No active session.")
            return
        info = session.get_info()
        click.echo(f"Session: {info.session_id}")
        click.echo(f"Project: {info.project_path}")
        click.echo(f"Model:   {info.model}")
        click.echo(f"Status:  {info.status}")
        click.echo(f"Resumed: {'yes' if info.is_resumed else 'no'}")

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _match_live(self, prefix: str) -> str:
        """Expand a unique prefix of a running session id; else return as-is."""
        matches = [
            info.session_id
            for info in self._registry.list_active()
            if info.session_id.startswith(prefix)
        ]
        return matches[0] if len(matches) == 1 else prefix

    def _attach(self, session: AgentSession) -> None:
        self._notifier.subscribe(self._tenant, session)

        def on_response(text: str, _message: object) -> None:
            click.echo(f"[{short_id(session.session_id)}] {text}")

        session.on("response", on_response)


# ------------------------------------------------------------------ #
# Click command
# ------------------------------------------------------------------ #


@click.command()
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def run(config_file: str | None, verbose: bool) -> None:
    """Start the interactive console."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    asyncio.run(_run_console(config))


async def _run_console(config: SwitchboardConfig) -> None:
    """Wire up the registry and run the console until shutdown."""
    started = time.monotonic()
    registry = SessionRegistry(
        cli_path=config.cli_path,
        max_sessions=config.max_sessions,
        default_model=config.default_model,
        default_permission_mode=config.default_permission_mode,
        stop_grace=config.stop_grace,
    )
    notifier = Notifier(_console_sink)
    console = ConsoleFrontend(registry, HistoryStore(config.claude_dir), notifier)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, shutdown_event.set)

    click.echo("\n  switchboard")
    click.echo(f"  CLI: {config.cli_path} | Max sessions: {config.max_sessions}")
    click.echo(f"  Default model: {config.default_model}")
    click.echo("  Type /help for commands.\n")

    reason = "ctrl_c"
    try:
        reason = await _repl_loop(console, shutdown_event)
    finally:
        await ShutdownManager(registry, notifier, started_at=started).execute(reason)


async def _repl_loop(console: ConsoleFrontend, shutdown_event: asyncio.Event) -> str:
    """Read console input until /quit, EOF, or a shutdown signal."""
    thread_cancel = threading.Event()

    async def _bridge_shutdown() -> None:
        await shutdown_event.wait()
        thread_cancel.set()

    bridge_task = asyncio.create_task(_bridge_shutdown())
    reason = "user_shutdown"
    try:
        while not shutdown_event.is_set():
            try:
                line = await asyncio.get_running_loop().run_in_executor(
                    None,
                    functools.partial(_read_input, thread_cancel),
                )
            except EOFError:
                break
            if console.handle_line(line):
                break
    finally:
        bridge_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await bridge_task

    if shutdown_event.is_set():
        reason = "ctrl_c"
    return reason


def _read_input(cancel: threading.Event | None = None) -> str:
    """Blocking stdin reader for use with ``run_in_executor``.

    Polls stdin with a 0.5 s timeout so the thread notices *cancel*
    (bridged from the async shutdown event) and raises ``EOFError``
    instead of blocking forever.
    """
    sys.stdout.write("> ")
    sys.stdout.flush()

    while cancel is None or not cancel.is_set():
        ready, _, _ = select.select([sys.stdin], [], [], 0.5)
        if ready:
            break
        if cancel is None:
            break

    if cancel is not None and cancel.is_set():
        raise EOFError

    line = sys.stdin.readline()
    if not line:
        raise EOFError
    return line.rstrip("\n")
