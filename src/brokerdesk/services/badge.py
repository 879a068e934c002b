"""Unread badge count, always derived from the receipts on demand."""
from __future__ import annotations

from sqlalchemy.orm import Session

from brokerdesk.db.session import SessionFactory
from brokerdesk.models.roles import AnnouncementPriority
from brokerdesk.repositories.announcement_repo import AnnouncementRepository


class UnreadBadgeService:
    """Count unread receipts whose announcement is currently published.

    No counter is stored; archiving an announcement drops it from the badge
    without touching its receipts.
    """

    def __init__(self, db: Session, repo: AnnouncementRepository | None = None) -> None:
        self.repo = repo or AnnouncementRepository(db)

    def count(self, user_id: str) -> int:
        """Return the number of unread, published announcements for ``user_id``."""
        return self.repo.count_unread_for_user(user_id)

    def count_urgent(self, user_id: str) -> int:
        """Return the unread count restricted to high-priority announcements."""
        return self.repo.count_unread_for_user(user_id, priority=AnnouncementPriority.HIGH)


def count_unread_with(session_factory: SessionFactory, user_id: str) -> int:
    """Open a short-lived session and return ``user_id``'s badge count."""
    with session_factory() as db:
        return UnreadBadgeService(db).count(user_id)
