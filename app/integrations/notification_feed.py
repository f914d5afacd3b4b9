"""
Notification feed — unread-count updates delivered to a subscriber.

``NotificationFeed`` is the interface consumers depend on. A push-based
implementation can sit behind it later; ``PollingNotificationFeed`` is the
fallback that asks the server for the unread count on a fixed interval
(30 s by default) using a ``threading.Timer`` that is re-armed after each
poll and cancelled on ``close()``.

Usage:
    feed = PollingNotificationFeed(client)
    feed.subscribe(lambda count: print("unread:", count))
    ...
    feed.close()
"""

from __future__ import annotations

import abc
import logging
import threading
from typing import Callable

from app.core.exceptions import AuthorizationError
from app.integrations.workflow_client import TransportError

logger = logging.getLogger(__name__)

DEFAULT_POLL_SECONDS = 30


class NotificationFeed(abc.ABC):
    """Source of unread-count updates."""

    @abc.abstractmethod
    def subscribe(self, callback: Callable[[int], None]) -> None:
        """Register ``callback(unread_count)``; starts delivery if needed."""

    @abc.abstractmethod
    def close(self) -> None:
        """Stop delivery and drop subscribers. Safe to call twice."""


class PollingNotificationFeed(NotificationFeed):
    """Polls ``client.unread_count()`` every ``interval`` seconds.

    The first poll happens immediately on the first ``subscribe``. A failed
    poll is logged and the next one is still scheduled; the subscriber only
    hears about successful polls. ``timer_factory`` defaults to
    ``threading.Timer`` and is injectable for tests.
    """

    def __init__(self, client, interval: float = DEFAULT_POLL_SECONDS,
                 timer_factory: Callable[..., threading.Timer] = threading.Timer) -> None:
        self.client = client
        self.interval = interval
        self._timer_factory = timer_factory
        self._subscribers: list[Callable[[int], None]] = []
        self._timer = None
        self._closed = False
        self._lock = threading.Lock()
        self.last_count: int | None = None

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._closed

    def subscribe(self, callback: Callable[[int], None]) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("Notification feed is closed")
            self._subscribers.append(callback)
            first = self._timer is None
        if first:
            self.poll()

    def poll(self) -> int | None:
        """Fetch the unread count once, notify subscribers, schedule the next poll."""
        count = None
        try:
            count = self.client.unread_count()
        except (TransportError, AuthorizationError) as exc:
            logger.warning("Unread-count poll failed: %s", exc)

        with self._lock:
            if self._closed:
                return count
            subscribers = list(self._subscribers)
            self._schedule()

        if count is not None:
            self.last_count = count
            for callback in subscribers:
                callback(count)
        return count

    def _schedule(self) -> None:
        timer = self._timer_factory(self.interval, self.poll)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._subscribers.clear()
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
