"""Server-sent-events transport writing to a text stream."""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

from ..events import FlowEvent, redact_seeds
from .base import BaseTransport

logger = logging.getLogger(__name__)


class StreamTransport(BaseTransport):
    """Writes each event as a ``data: <json>`` frame."""

    def __init__(self, stream: Optional[TextIO] = None, redact: bool = False) -> None:
        self.stream = stream or sys.stdout
        self.redact = redact
        self.closed = False

    @staticmethod
    def format_frame(event: FlowEvent) -> str:
        return f"data: {event.model_dump_json()}\n\n"

    async def publish(self, event: FlowEvent) -> None:
        if self.closed:
            return
        if self.redact:
            event = redact_seeds(event)
        try:
            self.stream.write(self.format_frame(event))
            self.stream.flush()
        except (OSError, ValueError) as e:
            # consumer went away; the run keeps going without it
            logger.warning(f"Event stream closed: {e}")
            self.closed = True

    async def disconnect(self) -> None:
        self.closed = True
