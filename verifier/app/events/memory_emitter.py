from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from verifier.app.events.models import (
    TERMINAL_EVENT_TYPES,
    VerificationEvent,
)
from verifier.app.events.emitter import VerificationEventEmitter

logger = logging.getLogger("verifier.events")


class MemoryQueueEventEmitter(VerificationEventEmitter):
    """
    In-memory async event emitter suitable for SSE streaming.

    Properties:
    - single-consumer
    - non-blocking for the verification path
    - deterministic ordering
    - terminates cleanly on verification completion or failure
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[VerificationEvent | None] = asyncio.Queue()
        self._closed = False

    async def emit(self, event: VerificationEvent) -> None:
        if self._closed:
            return

        try:
            self._queue.put_nowait(event)
        except Exception:
            # Observability must never break verification
            logger.warning(
                "event_emission_failed",
                extra={"event_type": event.event_type.value},
            )
            return

        if event.event_type in TERMINAL_EVENT_TYPES:
            await self.close()

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def stream(self) -> AsyncIterator[VerificationEvent]:
        """
        Async generator yielding emitted events in order.
        """
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield event
