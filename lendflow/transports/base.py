"""Base transport interface for lendflow progress events."""

from __future__ import annotations

import abc
from typing import AsyncIterator

from ..events import FlowEvent


class BaseTransport(metaclass=abc.ABCMeta):
    """Abstract sink for the progress events of a run."""

    async def connect(self) -> None:
        """Open the underlying channel (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close the underlying channel (no-op by default)."""
        pass

    @abc.abstractmethod
    async def publish(self, event: FlowEvent) -> None:
        """Deliver one event to the consumer."""
        raise NotImplementedError

    def subscribe(self) -> AsyncIterator[FlowEvent]:
        """Yield published events until the run ends.

        Transports that only write outward do not support subscription.
        """
        raise NotImplementedError(f"{type(self).__name__} is publish-only")
