"""Typed publish/subscribe channel for change notifications.

The pipeline and the revert service publish events here after they finish
writing; UI-layer collaborators subscribe by event type.
"""

import inspect
from collections import defaultdict
from typing import Any, Awaitable, Callable, Union

from notesorter.models.events import ChangedPaths, DocumentReverted, DocumentsChanged
from notesorter.utils.logging import get_logger


logger = get_logger(__name__)

EventType = Union[type[ChangedPaths], type[DocumentsChanged], type[DocumentReverted]]
Handler = Callable[[Any], Union[None, Awaitable[None]]]


class EventBus:
    """
    In-process event channel keyed by event class.

    Handlers may be plain functions or coroutine functions. A handler that
    raises is logged and skipped; it never affects other handlers or the
    publisher.

    Example:
        >>> bus = EventBus()
        >>> unsubscribe = bus.subscribe(ChangedPaths, lambda e: print(e.changed_paths))
        >>> await bus.publish(ChangedPaths(changed_paths=["/Errands"]))
        ['/Errands']
        >>> unsubscribe()
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: EventType, handler: Handler) -> Callable[[], None]:
        """Register a handler and return a function that removes it."""
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def publish(self, event: Any) -> int:
        """
        Deliver an event to every handler registered for its type.

        Returns:
            Number of handlers that completed without raising
        """
        delivered = 0
        for handler in list(self._handlers.get(type(event), [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.error(
                    "event_handler_failed",
                    event_type=type(event).__name__,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                    error_type=type(e).__name__,
                )

        logger.debug("event_published", event_type=type(event).__name__, delivered=delivered)
        return delivered
