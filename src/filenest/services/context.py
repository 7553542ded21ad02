"""Cooperative cancellation for reconciliation passes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import asyncio


@dataclass(frozen=True, slots=True)
class PassContext:
    """Per-pass handle on the worker's shutdown event.

    Passes check ``should_stop`` between rows. Every row write is committed
    on its own, so stopping early leaves no partially written row.
    """

    shutdown_event: asyncio.Event | None = None

    @property
    def should_stop(self) -> bool:
        return self.shutdown_event is not None and self.shutdown_event.is_set()


NO_STOP = PassContext()
