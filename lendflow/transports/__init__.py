"""Transport factory and initialization."""

from __future__ import annotations

import os
from typing import Optional, TextIO

from ..config import LendflowConfig, load_config
from .base import BaseTransport
from .inmemory import InMemoryTransport
from .stream import StreamTransport


def get_transport(
    backend: Optional[str] = None,
    config: Optional[LendflowConfig] = None,
    stream: Optional[TextIO] = None,
) -> BaseTransport:
    """Factory function to get the configured transport."""

    config = config or load_config()
    backend = (
        backend or os.getenv("LENDFLOW_TRANSPORT") or config.transport.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryTransport()
    elif backend == "stream":
        return StreamTransport(stream=stream, redact=config.transport.redact_seeds)
    else:
        raise ValueError(f"Unsupported transport backend: {backend}")


__all__ = ["BaseTransport", "InMemoryTransport", "StreamTransport", "get_transport"]
