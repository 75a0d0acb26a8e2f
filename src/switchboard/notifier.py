"""Notifier — turns session events into plain-text notifications for a tenant."""

from __future__ import annotations

import asyncio
import logging

from switchboard.agent.helpers import short_id, truncate
from switchboard.agent.session import AgentSession
from switchboard.constants import NotificationSink
from switchboard.protocol.codec import ProtocolError, extract_text
from switchboard.protocol.models import AssistantMessage, ResultMessage

logger = logging.getLogger(__name__)

#: Max characters of agent text quoted in a notification.
_BODY_LEN = 500

#: Max characters of an error message quoted in a notification.
_ERROR_LEN = 300


class Notifier:
    """Subscribes to sessions and delivers notifications through *sink*.

    Event handlers are synchronous; each delivery runs as a tracked task so
    a slow or failing sink never blocks the session's event dispatch.
    """

    def __init__(self, sink: NotificationSink) -> None:
        self._sink = sink
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> set[asyncio.Task[None]]:
        """Deliveries still in flight."""
        return self._pending

    def subscribe(self, tenant_id: int, session: AgentSession) -> None:
        """Notify *tenant_id* about attention requests, results, errors, exit."""

        def on_attention(message: AssistantMessage) -> None:
            text = extract_text(message)
            question = f"\n\n{truncate(text, _BODY_LEN)}" if text else ""
            self._notify(
                tenant_id,
                f"Session needs your input\n{_label(session)}{question}",
            )

        def on_result(result: ResultMessage) -> None:
            cost = f" | Cost: ${result.cost_usd:.4f}" if result.cost_usd else ""
            if result.is_error or result.subtype == "error":
                detail = f"\n\n{truncate(result.error, _BODY_LEN)}" if result.error else ""
                self._notify(
                    tenant_id, f"Session error\n{_label(session)}{cost}{detail}"
                )
            else:
                body = f"\n\n{truncate(result.result, _BODY_LEN)}" if result.result else ""
                self._notify(
                    tenant_id, f"Task completed\n{_label(session)}{cost}{body}"
                )

        def on_error(error: Exception) -> None:
            kind = "protocol" if isinstance(error, ProtocolError) else "process"
            self._notify(
                tenant_id,
                f"Session warning ({kind})\n{_label(session)}\n\n"
                f"{truncate(str(error), _ERROR_LEN)}",
            )

        def on_exit(code: int | None) -> None:
            code_str = f" (exit code: {code})" if code is not None else ""
            self._notify(tenant_id, f"Session ended{code_str}\n{_label(session)}")

        session.on("attention-needed", on_attention)
        session.on("result", on_result)
        session.on("error", on_error)
        session.on("exit", on_exit)

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight deliveries.  Returns False if *timeout* expired."""
        pending = list(self._pending)
        if not pending:
            return True
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        return not still_pending

    def _notify(self, tenant_id: int, text: str) -> None:
        task = asyncio.get_running_loop().create_task(self._deliver(tenant_id, text))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, tenant_id: int, text: str) -> None:
        try:
            await self._sink(tenant_id, text)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Failed to deliver notification to tenant %s", tenant_id)


def _label(session: AgentSession) -> str:
    return f"Project: {session.project_path} | ID: {short_id(session.session_id)}"
