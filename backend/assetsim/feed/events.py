"""Minimal publish/subscribe primitive used for price and state notifications."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class Subject(Generic[T]):
    """Fan a value out to every subscribed callback.

    Callbacks run synchronously in subscription order. A failing callback is
    logged and skipped; it never stops delivery to the others. Subscribers own
    their subscription and must call the returned function to leave.
    """

    def __init__(self, name: str = "subject") -> None:
        self._name = name
        self._callbacks: dict[int, Callable[[T], object]] = {}
        self._next_id = 0

    def subscribe(self, callback: Callable[[T], object]) -> Unsubscribe:
        token = self._next_id
        self._next_id += 1
        self._callbacks[token] = callback

        def unsubscribe() -> None:
            self._callbacks.pop(token, None)

        return unsubscribe

    def publish(self, value: T) -> None:
        # Copy so callbacks may unsubscribe while being notified
        for callback in list(self._callbacks.values()):
            try:
                callback(value)
            except Exception:
                logger.exception("%s subscriber failed", self._name)

    def clear(self) -> None:
        self._callbacks.clear()

    def __len__(self) -> int:
        return len(self._callbacks)
