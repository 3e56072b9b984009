"""
Synchronous event dispatch between staking components.

Components never mutate each other's accumulators. A lock change in the
escrow is published as ``LockChanged`` and each subscriber settles its own
state. Dispatch is in subscription order; events published while handlers
are running are queued and handled after the current event, so no
subscriber ever sees them out of order.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockChanged:
    """An escrow lock was created, increased, extended or withdrawn."""

    account: str
    old_balance: int
    new_balance: int
    timestamp: int


class EventBus:
    """In-process publish/subscribe with FIFO delivery."""

    def __init__(self):
        self._handlers: Dict[Type, List[Callable]] = {}
        self._queue: Deque = deque()
        self._dispatching = False

    def subscribe(self, event_type: Type, handler: Callable):
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event_type: Type, handler: Callable):
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers(self, event_type: Type) -> List[Callable]:
        return list(self._handlers.get(event_type, []))

    def publish(self, event):
        """
        Deliver an event to every subscriber.

        A handler exception stops delivery and propagates to the publisher,
        whose transaction then reverts the change that caused the event.
        """
        self._queue.append(event)
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._queue:
                current = self._queue.popleft()
                for handler in self.handlers(type(current)):
                    handler(current)
        except Exception:
            self._queue.clear()
            raise
        finally:
            self._dispatching = False
