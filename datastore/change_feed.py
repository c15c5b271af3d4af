from __future__ import annotations

import logging
from threading import Lock
from typing import Callable, Dict, Optional

from models.records import TemperatureReading

logger = logging.getLogger(__name__)

ReadingCallback = Callable[[TemperatureReading], None]
ReadingPredicate = Callable[[TemperatureReading], bool]


class Subscription:
    """Handle returned by :meth:`ChangeFeed.subscribe`; closing it stops delivery."""

    def __init__(self, feed: "ChangeFeed", token: int) -> None:
        self._feed = feed
        self._token = token
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self._feed._unsubscribe(self._token)
        self.closed = True


class ChangeFeed:
    """In-process fan-out of newly inserted readings to interested subscribers."""

    def __init__(self) -> None:
        self._subscribers: Dict[int, tuple[ReadingCallback, Optional[ReadingPredicate]]] = {}
        self._next_token = 0
        self._lock = Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(
        self,
        callback: ReadingCallback,
        predicate: Optional[ReadingPredicate] = None,
    ) -> Subscription:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = (callback, predicate)
        return Subscription(self, token)

    def publish(self, reading: TemperatureReading) -> None:
        with self._lock:
            subscribers = list(self._subscribers.values())

        for callback, predicate in subscribers:
            if predicate is not None and not predicate(reading):
                continue
            try:
                callback(reading)
            except Exception:  # noqa: BLE001 - one subscriber must not break the rest
                logger.exception(
                    "Change subscriber failed",
                    extra={"device_id": reading.device_id},
                )

    def _unsubscribe(self, token: int) -> None:
        with self._lock:
            self._subscribers.pop(token, None)
