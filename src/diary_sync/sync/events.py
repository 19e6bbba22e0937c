"""Typed events published by the sync orchestrator.

Observers (a UI, the CLI, tests) subscribe by event class:

    bus = EventBus()
    bus.on(SyncStatusChanged, lambda e: print(e.status.describe()))
    bus.on(ConflictDetected, handle_conflict)

Handlers may be plain functions or coroutine functions. Coroutines are
scheduled on the running loop; handler failures are logged, never raised
into the publisher.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from diary_sync.storage.sqlite_conflicts import ConflictRecord, ConflictResolution
from diary_sync.storage.sqlite_sync_queue import QueueItem
from diary_sync.sync.protocol import SyncStatusState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncEvent:
    """Base class for all sync events."""


@dataclass(frozen=True)
class SyncStatusChanged(SyncEvent):
    status: SyncStatusState
    pending_changes: int = 0
    conflicts: int = 0


@dataclass(frozen=True)
class ConflictDetected(SyncEvent):
    conflict: ConflictRecord


@dataclass(frozen=True)
class ConflictResolved(SyncEvent):
    conflict_id: str
    resolution: ConflictResolution


@dataclass(frozen=True)
class QueueItemAbandoned(SyncEvent):
    """A queued change exhausted its retries and left the live queue."""

    item: QueueItem


E = TypeVar("E", bound=SyncEvent)
EventHandler = Callable[[Any], Any]


class EventBus:
    """In-process publish/subscribe keyed by event class."""

    def __init__(self) -> None:
        self._handlers: dict[type[SyncEvent], list[EventHandler]] = {}
        self._pending: set[asyncio.Task[Any]] = set()

    def on(self, event_type: type[E], handler: Callable[[E], Any]) -> None:
        """
        Register a handler.

        Args:
            event_type: Event class to listen for (``SyncEvent`` for all)
            handler: Function or coroutine function receiving the event
        """
        self._handlers.setdefault(event_type, []).append(handler)

    def off(self, event_type: type[SyncEvent], handler: EventHandler | None = None) -> None:
        """Unregister one handler, or all handlers of a type when None."""
        if event_type not in self._handlers:
            return
        if handler is None:
            del self._handlers[event_type]
        else:
            self._handlers[event_type] = [h for h in self._handlers[event_type] if h != handler]

    def publish(self, event: SyncEvent) -> None:
        """Deliver an event to every matching handler."""
        # Copy to avoid mutation during dispatch
        handlers = [*self._handlers.get(type(event), [])]
        if type(event) is not SyncEvent:
            handlers += self._handlers.get(SyncEvent, [])

        for handler in handlers:
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    task = asyncio.get_running_loop().create_task(result)
                    self._pending.add(task)
                    task.add_done_callback(self._on_task_done)
            except Exception as e:
                logger.warning("Sync event handler error for %s: %s", type(event).__name__, e)

    async def drain(self) -> None:
        """Wait for coroutine handlers scheduled so far."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Async sync event handler failed: %s", task.exception())
