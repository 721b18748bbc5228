"""
Publish/subscribe event source.

Handlers are zero-argument callbacks invoked synchronously, in registration
order, every time their category fires.
"""

from typing import Callable, Dict, Hashable, List

Handler = Callable[[], None]


class EventEmitter:
    """
    Registry of per-category handlers.

    Usage:
        emitter = EventEmitter()
        emitter.subscribe("A", on_a)
        emitter.emit("A")
    """

    def __init__(self) -> None:
        self._handlers: Dict[Hashable, List[Handler]] = {}

    def subscribe(self, category: Hashable, handler: Handler) -> None:
        """
        Register handler for category.

        Args:
            category: Category identifier
            handler: Zero-argument callback
        """
        self._handlers[category] = [*self._handlers.get(category, []), handler]

    def unsubscribe(self, category: Hashable, handler: Handler) -> None:
        """Remove every registration of handler for category (no-op when absent)."""
        handlers = self._handlers.get(category)
        if not handlers:
            return
        self._handlers[category] = [h for h in handlers if h is not handler]

    def emit(self, category: Hashable) -> None:
        # Copy so handlers may (un)subscribe while being called
        for handler in list(self._handlers.get(category, [])):
            handler()

    def subscribers(self, category: Hashable) -> int:
        return len(self._handlers.get(category, []))
