"""Minimal observer signals.

A ``Signal`` keeps an ordered list of callbacks. ``connect`` returns a
``Subscription`` handle whose ``disconnect`` revokes that one callback, so
every owner can detach exactly what it attached.
"""

from __future__ import annotations

from typing import Any, Callable

from common.logging_utils import get_logger

logger = get_logger('signals')


class Subscription:
    """Handle returned by ``Signal.connect``."""

    def __init__(self, signal: Signal, callback: Callable[..., Any]) -> None:
        self._signal = signal
        self.callback = callback

    @property
    def connected(self) -> bool:
        return self in self._signal._subscriptions

    def disconnect(self) -> None:
        """Detach the callback. Disconnecting twice is a no-op."""
        self._signal._discard(self)


class Signal:
    """Named signal emitting ``(sender, *args)`` to its callbacks."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscriptions: list[Subscription] = []

    def connect(self, callback: Callable[..., Any]) -> Subscription:
        subscription = Subscription(self, callback)
        self._subscriptions.append(subscription)
        return subscription

    def emit(self, sender: Any, *args: Any) -> None:
        """Call every connected callback in registration order.

        The list is copied first: a callback may disconnect itself (or
        another callback) while the signal is being emitted.
        """
        for subscription in list(self._subscriptions):
            if subscription.connected:
                subscription.callback(sender, *args)

    def disconnect_all(self) -> None:
        if self._subscriptions:
            logger.debug(f'Disconnecting {len(self._subscriptions)} callback(s) from {self.name}')
        self._subscriptions.clear()

    def _discard(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def __len__(self) -> int:
        return len(self._subscriptions)
