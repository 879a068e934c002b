"""Push unread-badge refreshes to a connected client when announcements are created.

One `RealtimeEventBridge` exists per connected client. It holds a change-feed
subscription for the lifetime of the connection and, for every
announcement-created event, recomputes the client's badge count and pushes it.
Refreshes run as independent tasks so a slow or failing one never holds up the
next event; failures are logged and dropped.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable

from brokerdesk.db.change_feed import (
    AnnouncementChangeFeed,
    AnnouncementCreatedEvent,
    Subscription,
    get_change_feed,
)
from brokerdesk.services.errors import TransientCollaboratorError

# Configure logger for this module
logger = logging.getLogger(__name__)

BadgeCounter = Callable[[str], int]
BadgePush = Callable[[int], Awaitable[None]]


class RealtimeEventBridge:
    """Turn announcement-created events into badge pushes for one user."""

    def __init__(
        self,
        user_id: str,
        *,
        count_unread: BadgeCounter,
        push: BadgePush,
        feed: AnnouncementChangeFeed | None = None,
        retry_delay: float = 1.0,
    ) -> None:
        """Initialize the bridge.

        Args:
            user_id: Connected user whose badge is refreshed.
            count_unread: Blocking badge query; run in a worker thread.
            push: Coroutine delivering the new count to the client.
            feed: Change feed to subscribe to. Defaults to the process-wide feed.
            retry_delay: Pause after a feed failure before waiting again.
        """
        self.user_id = user_id
        self._count_unread = count_unread
        self._push = push
        self._feed = feed or get_change_feed()
        self._retry_delay = retry_delay
        self._subscription: Subscription | None = None
        self._task: asyncio.Task[None] | None = None
        self._refreshes: set[asyncio.Task[int | None]] = set()
        self._tickets = itertools.count(1)
        self._last_pushed = 0

    @property
    def running(self) -> bool:
        """Return True while the subscription loop is active."""
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Subscribe to the change feed and start listening."""
        if self.running:
            return
        self._subscription = self._feed.subscribe_to_announcement_created()
        self._task = asyncio.create_task(self._run(self._subscription))

    async def stop(self) -> None:
        """Unsubscribe and wait for the listener and in-flight refreshes to finish."""
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

        if self._task is not None:
            await self._task
            self._task = None

        pending = list(self._refreshes)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._refreshes.clear()

    async def refresh(self) -> int | None:
        """Recompute and push the badge count.

        Returns:
            The pushed count, or None if the refresh failed or a newer refresh
            had already been delivered.
        """
        ticket = next(self._tickets)
        try:
            unread = await asyncio.to_thread(self._count_unread, self.user_id)
        except Exception as exc:
            logger.warning("Badge refresh for user %s failed: %s", self.user_id, exc)
            return None

        if ticket < self._last_pushed:
            return None
        self._last_pushed = ticket

        try:
            await self._push(unread)
        except Exception as exc:
            logger.warning("Badge push to user %s failed: %s", self.user_id, exc)
            return None
        return unread

    async def _run(self, subscription: Subscription) -> None:
        while True:
            try:
                created = await subscription.get()
            except StopAsyncIteration:
                return
            except TransientCollaboratorError as exc:
                logger.warning("Announcement feed unavailable: %s", exc)
                await asyncio.sleep(self._retry_delay)
                continue
            self._schedule_refresh(created)

    def _schedule_refresh(self, created: AnnouncementCreatedEvent) -> None:
        logger.debug(
            "Announcement %s created; refreshing badge for user %s",
            created.announcement_id,
            self.user_id,
        )
        task = asyncio.create_task(self.refresh())
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)
