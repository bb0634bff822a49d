"""
In-process event delivery.

Handlers are plain callables or coroutine functions subscribed per event
type. Delivery is continue-on-failure: a handler that raises is logged and
skipped, and its siblings still run.
"""

import inspect
import logging
from typing import Any, Callable, Dict, List, Sequence

from .base import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Any]


class InMemoryEventDispatcher:
    """Dispatch domain events to handlers registered in this process."""

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def dispatch(self, event: DomainEvent) -> None:
        """Deliver one event to every handler subscribed to its type."""
        for handler in list(self._handlers.get(event.event_type, [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Event handler %r failed for %s", handler, event.event_type
                )

    async def dispatch_all(self, events: Sequence[DomainEvent]) -> None:
        for event in events:
            await self.dispatch(event)

    def is_subscribed(self, event_type: str) -> bool:
        return bool(self._handlers.get(event_type))

    def handler_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, []))

    def clear_handlers(self) -> None:
        self._handlers.clear()
