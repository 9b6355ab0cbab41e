"""Async event emitter for payslip notifications.

Handlers are isolated: if one fails the failure is logged and collected,
and the remaining handlers still receive the event. A failing handler
never fails the payslip operation that emitted the event.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from payslip_engine.events.types import PayslipEvent

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=PayslipEvent)

AsyncEventHandler = Callable[[Any], Awaitable[None]]


@dataclass
class HandlerRegistration:
    """Registration of an event handler."""

    handler: AsyncEventHandler
    event_types: set[str] | None  # None = all events


class EventEmitter:
    """Publishes payslip events to registered async handlers.

    Usage:
        emitter = EventEmitter()

        async def notify_locked(event: PayslipStatusChanged) -> None:
            if event.to_status == "locked":
                await notifications.send(event.user_id, "Your payslip is locked")

        emitter.on(PayslipStatusChanged, notify_locked)
        await emitter.emit(event)
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []

    def on(
        self,
        event_type: type[T] | list[type[T]],
        handler: AsyncEventHandler,
    ) -> None:
        """Register handler for specific event type(s)."""
        if isinstance(event_type, list):
            types = {t.__name__ for t in event_type}
        else:
            types = {event_type.__name__}
        self._handlers.append(HandlerRegistration(handler=handler, event_types=types))

    def on_all(self, handler: AsyncEventHandler) -> None:
        """Register handler for all events."""
        self._handlers.append(HandlerRegistration(handler=handler, event_types=None))

    def off(self, handler: AsyncEventHandler) -> None:
        """Unregister a handler."""
        self._handlers = [reg for reg in self._handlers if reg.handler is not handler]

    async def emit(self, event: PayslipEvent) -> list[Exception]:
        """Emit an event to all matching handlers.

        Returns list of any exceptions raised by handlers.
        """
        tasks = [
            asyncio.create_task(self._call_handler(reg.handler, event))
            for reg in self._handlers
            if reg.event_types is None or event.event_type in reg.event_types
        ]
        if not tasks:
            return []

        results = await asyncio.gather(*tasks, return_exceptions=True)
        return [r for r in results if isinstance(r, Exception)]

    async def _call_handler(self, handler: AsyncEventHandler, event: PayslipEvent) -> None:
        """Call handler with error logging."""
        try:
            await handler(event)
        except Exception:
            logger.exception(
                "Handler %s failed for event %s",
                handler,
                event.event_type,
            )
            raise
