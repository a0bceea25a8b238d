"""
EventBus: small typed publish/subscribe channel.

The session component owns one bus for auth state changes. Subscribers get a
``Subscription`` token back and must release it on teardown.
"""

from dataclasses import dataclass, field
from enum import Enum
from itertools import count
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from config.loggers import GenericLogger

E = TypeVar("E")


class AuthEvent(Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


@dataclass
class AuthStateChange:
    """Payload published on the auth bus."""
    event: AuthEvent
    session: Optional[Any] = None  # models.AuthSession


@dataclass
class Subscription:
    """Token returned by ``EventBus.subscribe``."""
    id: int
    bus: "EventBus" = field(repr=False)

    def unsubscribe(self) -> bool:
        return self.bus.unsubscribe(self)


class EventBus(Generic[E]):
    """Synchronous, ordered pub/sub. Handlers run in subscription order."""

    def __init__(self, name: str = "events"):
        self.name = name
        self._handlers: Dict[int, Callable[[E], None]] = {}
        self._ids = count(1)
        self.logger = GenericLogger("core", f"event_bus.{name}")

    def subscribe(self, handler: Callable[[E], None]) -> Subscription:
        subscription = Subscription(id=next(self._ids), bus=self)
        self._handlers[subscription.id] = handler
        self.logger.debug(f"📌 [BUS] subscriber {subscription.id} added ({len(self._handlers)} total)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        removed = self._handlers.pop(subscription.id, None) is not None
        if removed:
            self.logger.debug(f"📌 [BUS] subscriber {subscription.id} removed")
        return removed

    def publish(self, event: E) -> int:
        """
        Deliver ``event`` to every current subscriber.

        A failing handler is logged and does not prevent delivery to the others.

        Returns:
            Number of handlers that completed without raising
        """
        delivered = 0
        # Copy so handlers may unsubscribe while being notified
        for subscription_id, handler in list(self._handlers.items()):
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                self.logger.error(f"❌ [BUS] subscriber {subscription_id} failed on {event}: {e}")
        return delivered

    def subscriber_count(self) -> int:
        return len(self._handlers)

    def clear(self) -> None:
        self._handlers.clear()
