import threading
from typing import Type, Callable, List, Dict, Any, Optional
from mbc.domain.events import Event

class EventBus:
    """A simple synchronous event bus for decoupled communication.

    Publishing happens from worker threads as well as the caller's thread, so
    the subscriber table is guarded; callbacks run outside the lock.
    """

    def __init__(self):
        self._subscribers: Dict[Type[Event], List[Callable[[Any], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[Event], callback: Optional[Callable[[Any], None]] = None):
        """Subscribes a callback to a specific event type. Can be used as a decorator."""
        if callback is None:
            def decorator(func: Callable[[Any], None]):
                self.subscribe(event_type, func)
                return func
            return decorator

        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)
        return callback

    def unsubscribe(self, event_type: Type[Event], callback: Callable[[Any], None]) -> bool:
        with self._lock:
            callbacks = self._subscribers.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)
                return True
        return False

    def publish(self, event: Event):
        """Publishes an event to subscribers of its type and of its base event types."""
        with self._lock:
            callbacks = [
                cb
                for event_type in type(event).__mro__
                for cb in self._subscribers.get(event_type, [])
            ]
        for callback in callbacks:
            callback(event)
