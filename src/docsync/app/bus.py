"""
Event Bus

Client-level notifications (connection ``open``, ``close`` and ``error``).
This is a side channel only: every failure is also delivered through the
Deferred of the request it belongs to.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)

EventHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class EventBus(ABC):
    """Abstract base class for event buses."""

    @abstractmethod
    async def publish(self, event: Dict[str, Any]) -> None:
        """Publish an event to all subscribers."""
        pass

    @abstractmethod
    def subscribe(self, handler: EventHandler) -> None:
        """Subscribe a handler to receive events."""
        pass


class InProcessBus(EventBus):
    """
    In-process event bus.

    Handlers run concurrently; a failing handler is logged and does not
    affect the others.
    """

    def __init__(self):
        self._subscribers: List[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> None:
        """
        Subscribe a handler to receive all events.

        Args:
            handler: Async function that accepts event data
        """
        self._subscribers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)

    async def publish(self, event: Dict[str, Any]) -> None:
        """
        Publish an event to all subscribers.

        Args:
            event: Event data dictionary with at least an ``event`` key
        """
        subscribers = list(self._subscribers)
        if not subscribers:
            return

        results = await asyncio.gather(
            *(handler(event) for handler in subscribers),
            return_exceptions=True,
        )
        for handler, result in zip(subscribers, results):
            if isinstance(result, Exception):
                logger.error(f"Event handler {handler!r} raised for {event.get('event')}: {result!r}")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


__all__ = ["EventBus", "InProcessBus", "EventHandler"]
