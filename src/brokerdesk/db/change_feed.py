"""Announcement change feed derived from SQLAlchemy session events.

Announcements inserted during a flush are remembered on the session and only
published once the surrounding transaction commits, so subscribers never hear
about rows that were rolled back. Each consumer holds a `Subscription` handle
backed by its own bounded asyncio queue; the handle must be closed when the
consumer goes away.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from types import TracebackType

from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction, UOWTransaction

from brokerdesk.core.settings import settings
from brokerdesk.models.announcement import Announcement

# Configure logger for this module
logger = logging.getLogger(__name__)

_PENDING_KEY = "brokerdesk.announcements_created"


@dataclass(frozen=True)
class AnnouncementCreatedEvent:
    """A committed announcement insert."""

    announcement_id: int
    status: str
    created_at: datetime | None = None


class Subscription:
    """Cancellable handle for one consumer of announcement-created events.

    Iterate it (``async for event in subscription``) or call `get`. Iteration
    ends once `close` has been called. Usable as an async context manager that
    closes on exit.
    """

    def __init__(
        self,
        feed: AnnouncementChangeFeed,
        loop: asyncio.AbstractEventLoop,
        maxsize: int,
    ) -> None:
        self._feed = feed
        self._loop = loop
        self._queue: asyncio.Queue[AnnouncementCreatedEvent | None] = asyncio.Queue(
            maxsize=max(1, maxsize) + 1
        )
        self._maxsize = max(1, maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        """Return True once the subscription has been closed."""
        return self._closed

    def _deliver(self, created: AnnouncementCreatedEvent) -> None:
        # Called from whichever thread committed the session.
        if self._closed:
            return
        try:
            self._loop.call_soon_threadsafe(self._enqueue, created)
        except RuntimeError:
            logger.debug("Subscriber loop is closed; dropping subscription")
            self._closed = True
            self._feed._discard(self)

    def _enqueue(self, created: AnnouncementCreatedEvent) -> None:
        if self._closed:
            return
        if self._queue.qsize() >= self._maxsize:
            # An undelivered event is already queued; it triggers the same refresh.
            logger.debug(
                "Subscriber queue full; dropping event for announcement %s",
                created.announcement_id,
            )
            return
        self._queue.put_nowait(created)

    async def get(self) -> AnnouncementCreatedEvent:
        """Wait for the next event.

        Raises:
            StopAsyncIteration: If the subscription is closed.
        """
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        """Unsubscribe and wake any pending `get`. Call from the owning loop."""
        if self._closed:
            return
        self._closed = True
        self._feed._discard(self)
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> AnnouncementCreatedEvent:
        return await self.get()

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class AnnouncementChangeFeed:
    """Fan committed announcement inserts out to every open subscription."""

    def __init__(self, queue_size: int = 32) -> None:
        self._queue_size = queue_size
        self._subscribers: set[Subscription] = set()
        self._lock = Lock()

    @property
    def subscriber_count(self) -> int:
        """Return the number of open subscriptions."""
        with self._lock:
            return len(self._subscribers)

    def subscribe_to_announcement_created(self) -> Subscription:
        """Open a subscription bound to the running event loop."""
        loop = asyncio.get_running_loop()
        subscription = Subscription(self, loop, self._queue_size)
        with self._lock:
            self._subscribers.add(subscription)
        return subscription

    def publish(self, created: AnnouncementCreatedEvent) -> None:
        """Deliver an event to all current subscribers. Thread-safe."""
        with self._lock:
            subscribers = list(self._subscribers)
        logger.debug(
            "Publishing announcement %s to %d subscriber(s)",
            created.announcement_id,
            len(subscribers),
        )
        for subscription in subscribers:
            subscription._deliver(created)

    def close_all(self) -> None:
        """Close every open subscription, e.g. on application shutdown."""
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            subscription.close()

    def _discard(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(subscription)


class _ChangeFeedSingleton:
    """Singleton wrapper for AnnouncementChangeFeed."""

    _instance: AnnouncementChangeFeed | None = None

    @classmethod
    def get_instance(cls) -> AnnouncementChangeFeed:
        """Get or create the process-wide change feed."""
        if cls._instance is None:
            cls._instance = AnnouncementChangeFeed(settings.realtime_queue_size)
        return cls._instance


def get_change_feed() -> AnnouncementChangeFeed:
    """Return the process-wide announcement change feed."""
    return _ChangeFeedSingleton.get_instance()


@event.listens_for(Session, "after_flush")
def _remember_created(session: Session, flush_context: UOWTransaction) -> None:
    created = [obj for obj in session.new if isinstance(obj, Announcement)]
    if not created:
        return
    pending = session.info.setdefault(_PENDING_KEY, [])
    pending.extend(
        AnnouncementCreatedEvent(
            announcement_id=obj.id,
            status=str(obj.status),
            created_at=obj.created_at,
        )
        for obj in created
    )


@event.listens_for(Session, "after_commit")
def _publish_created(session: Session) -> None:
    # Releasing a savepoint also fires after_commit; wait for the outer commit.
    if session.in_nested_transaction():
        return
    pending: list[AnnouncementCreatedEvent] | None = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    feed = get_change_feed()
    for created in pending:
        feed.publish(created)


@event.listens_for(Session, "after_soft_rollback")
def _discard_created(session: Session, previous_transaction: SessionTransaction) -> None:
    # Savepoints only ever wrap receipt inserts.
    if previous_transaction.nested:
        return
    session.info.pop(_PENDING_KEY, None)
