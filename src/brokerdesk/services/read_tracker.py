"""Record that a user opened an announcement."""
from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from brokerdesk.db.time import utcnow
from brokerdesk.repositories.announcement_repo import AnnouncementRepository
from brokerdesk.services.errors import NotFoundError, TransientCollaboratorError

logger = logging.getLogger(__name__)


class ReadTracker:
    """Idempotent false -> true transition of a receipt's read flag."""

    def __init__(self, db: Session, repo: AnnouncementRepository | None = None) -> None:
        self.db = db
        self.repo = repo or AnnouncementRepository(db)

    def mark_read(self, user_id: str, announcement_id: int) -> bool:
        """Mark ``user_id``'s receipt for ``announcement_id`` as read.

        The update only matches unread rows, so concurrent or repeated calls
        leave the first ``read_at`` untouched.

        Returns:
            True if this call recorded the read, False if it was already read.

        Raises:
            NotFoundError: If the user never received the announcement. Callers
                should treat the view as successful but untracked.
            TransientCollaboratorError: If receipt storage is unavailable.
        """
        try:
            updated = self.repo.mark_receipt_read(user_id, announcement_id, read_at=utcnow())
            if updated:
                self.db.commit()
                logger.debug("User %s read announcement %s", user_id, announcement_id)
                return True
        except (TransientCollaboratorError, SQLAlchemyError):
            self.db.rollback()
            raise

        if self.repo.get_receipt(user_id, announcement_id) is None:
            raise NotFoundError(
                f"User {user_id} is not a recipient of announcement {announcement_id}"
            )
        return False
