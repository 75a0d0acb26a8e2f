"""ShutdownManager — stops every session and drains notifications."""

from __future__ import annotations

import asyncio
import logging
import time

import click

from switchboard.agent.session import AgentSession
from switchboard.notifier import Notifier
from switchboard.registry.registry import SessionRegistry

logger = logging.getLogger(__name__)


def _format_duration(seconds: float) -> str:
    """Format a duration as '1m 22s' or '34.2s'."""
    if seconds >= 60:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs:02d}s"
    return f"{seconds:.1f}s"


class ShutdownManager:
    """Orchestrates the 3-step process-wide shutdown.

    Steps:
        1. STOP   -- stop every session, clear the registry
        2. WAIT   -- wait for the stopped sessions to exit, with timeout
        3. DRAIN  -- flush pending notifications, print summary
    """

    EXIT_TIMEOUT = 10.0  # seconds
    DRAIN_TIMEOUT = 5.0  # seconds

    def __init__(
        self,
        registry: SessionRegistry,
        notifier: Notifier | None = None,
        started_at: float | None = None,
    ) -> None:
        self._registry = registry
        self._notifier = notifier
        self._start_time = started_at if started_at is not None else time.monotonic()

    async def execute(self, reason: str) -> bool:
        """Run the full shutdown sequence.

        Returns True when every session exited within the timeout.
        """
        sessions = self._registry.stop_all_and_clear()
        exited = await self._wait_for_exit(sessions)
        if self._notifier is not None:
            drained = await self._notifier.drain(timeout=self.DRAIN_TIMEOUT)
            if not drained:
                logger.warning("Drain timeout: notifications still pending")

        elapsed = _format_duration(time.monotonic() - self._start_time)
        click.echo(f"\nShutdown ({reason}) | {elapsed} | {len(sessions)} session(s)")
        return exited

    async def _wait_for_exit(self, sessions: list[AgentSession]) -> bool:
        if not sessions:
            return True
        try:
            await asyncio.wait_for(
                asyncio.gather(
                    *(s.wait_closed() for s in sessions), return_exceptions=True
                ),
                timeout=self.EXIT_TIMEOUT,
            )
            return True
        except TimeoutError:
            remaining = sum(1 for s in sessions if not s.exited)
            logger.warning("Exit timeout: %d session(s) still running", remaining)
            return False
