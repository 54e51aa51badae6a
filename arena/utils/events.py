"""
Async event hub used to couple the arena components.

Subscribers register for an event name, optionally narrowed to a key (for
example a battle id). Keyed one-shot subscriptions are dropped after their
first delivery. A failing handler is logged and never stops delivery to the
remaining handlers.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Union

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Union[None, Awaitable[None]]]

# Event names
BATTLE_STARTED = "battle_started"
BATTLE_COMPLETED = "battle_completed"
TURN_PROCESSED = "turn_processed"
MATCH_REQUESTED = "match_requested"
MATCH_CREATED = "match_created"
MATCH_EXPIRED = "match_expired"


@dataclass
class _Subscription:
    handler: Handler
    key: Optional[Hashable]
    once: bool


class EventHub:
    """Minimal typed event bus with per-key subscriptions."""

    def __init__(self):
        self._subscriptions: Dict[str, List[_Subscription]] = defaultdict(list)

    def subscribe(self, event: str, handler: Handler, key: Hashable = None, once: bool = False) -> Callable[[], None]:
        """
        Register a handler.

        Args:
            event: Event name
            handler: Sync or async callable receiving the payload
            key: Only deliver emissions made with this key; None receives every emission
            once: Drop the subscription after the first delivery

        Returns:
            Callable that removes the subscription
        """
        subscription = _Subscription(handler=handler, key=key, once=once)
        self._subscriptions[event].append(subscription)

        def unsubscribe():
            try:
                self._subscriptions[event].remove(subscription)
            except ValueError:
                pass

        return unsubscribe

    def once(self, event: str, handler: Handler, key: Hashable = None) -> Callable[[], None]:
        """Register a handler that fires a single time."""
        return self.subscribe(event, handler, key=key, once=True)

    def discard(self, event: str, key: Hashable) -> int:
        """Remove every subscription registered for ``key``; returns how many were dropped"""
        kept = [s for s in self._subscriptions.get(event, []) if s.key is None or s.key != key]
        dropped = len(self._subscriptions.get(event, [])) - len(kept)
        self._subscriptions[event] = kept
        return dropped

    def subscriber_count(self, event: str, key: Hashable = None) -> int:
        return sum(1 for s in self._subscriptions.get(event, []) if key is None or s.key == key)

    async def emit(self, event: str, payload: Any, key: Hashable = None) -> int:
        """
        Deliver a payload to matching subscribers in registration order.

        Returns:
            Number of handlers invoked
        """
        matching = [
            s for s in list(self._subscriptions.get(event, []))
            if s.key is None or s.key == key
        ]
        for subscription in matching:
            if subscription.once:
                try:
                    self._subscriptions[event].remove(subscription)
                except ValueError:
                    continue

        delivered = 0
        for subscription in matching:
            try:
                result = subscription.handler(payload)
                if asyncio.iscoroutine(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.error(f"Handler for '{event}' (key={key}) failed: {e}", exc_info=True)
        return delivered
