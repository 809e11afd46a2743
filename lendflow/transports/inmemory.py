"""In-memory transport for tests and embedding."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, List, Optional

from ..events import TERMINAL_EVENTS, FlowEvent
from .base import BaseTransport


class InMemoryTransport(BaseTransport):
    """Keeps every published event and replays them to subscribers."""

    def __init__(self) -> None:
        self.events: List[FlowEvent] = []
        self._queue: asyncio.Queue[FlowEvent] = asyncio.Queue()

    async def publish(self, event: FlowEvent) -> None:
        self.events.append(event)
        await self._queue.put(event)

    async def subscribe(
        self, lifespan: Optional[float] = None
    ) -> AsyncIterator[FlowEvent]:
        """Yield events as they arrive, stopping after the terminal event.

        Args:
            lifespan: Maximum time in seconds to wait for the next event. If
                None, waits indefinitely.
        """
        while True:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=lifespan)
            except asyncio.TimeoutError:
                break
            yield event
            if event.type in TERMINAL_EVENTS:
                break

    def of_type(self, event_type: str) -> List[FlowEvent]:
        return [event for event in self.events if event.type == event_type]
