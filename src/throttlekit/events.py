"""
Lifecycle notifications

Listeners are called synchronously in registration order. A listener that
raises is logged and skipped; it never disturbs the scheduler.
"""

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

SENT = "sent"
RECEIVED = "received"
ERROR = "error"
DRAINED = "drained"

EVENTS = (SENT, RECEIVED, ERROR, DRAINED)

Listener = Callable[..., Any]


class Subscription:
    """Handle returned by `EventEmitter.on`; `cancel()` is idempotent"""

    def __init__(self, emitter: "EventEmitter", event: str, listener: Listener):
        self.event = event
        self.listener = listener
        self._emitter = emitter
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._emitter._remove(self.event, self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()


class EventEmitter:
    """Minimal named-event dispatcher"""

    def __init__(self):
        self._subscriptions: dict[str, list[Subscription]] = {}

    def on(self, event: str, listener: Listener) -> Subscription:
        subscription = Subscription(self, event, listener)
        self._subscriptions.setdefault(event, []).append(subscription)
        return subscription

    def once(self, event: str, listener: Listener) -> Subscription:
        subscription: Subscription

        def fire_once(*args, **kwargs):
            subscription.cancel()
            return listener(*args, **kwargs)

        subscription = self.on(event, fire_once)
        return subscription

    def off(self, event: str, listener: Listener) -> bool:
        """Remove the first subscription of `listener`; True if one was found"""
        for subscription in self._subscriptions.get(event, []):
            if subscription.listener is listener:
                subscription.cancel()
                return True
        return False

    def listener_count(self, event: str) -> int:
        return len(self._subscriptions.get(event, []))

    def emit(self, event: str, *args: Any) -> bool:
        """
        Call every listener of `event`

        Returns:
            True if the event had listeners
        """
        subscriptions = list(self._subscriptions.get(event, []))
        for subscription in subscriptions:
            if not subscription.active:
                continue
            try:
                subscription.listener(*args)
            except Exception:
                logger.exception(f"Listener for '{event}' raised")
        return bool(subscriptions)

    def _remove(self, event: str, subscription: Subscription) -> None:
        subscriptions = self._subscriptions.get(event, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)
