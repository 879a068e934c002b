"""Materialise one read receipt per targeted user."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from brokerdesk.repositories.announcement_repo import AnnouncementRepository
from brokerdesk.repositories.errors import collaborator_call
from brokerdesk.services.errors import ConflictError, NotFoundError

# Configure logger for this module
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FanoutResult:
    """Outcome of one fan-out invocation."""

    announcement_id: int
    created: int
    skipped: int


class RecipientFanoutEngine:
    """Insert-if-absent receipts keyed on (announcement, user).

    Running it again for the same announcement, with the same or a larger
    audience, only adds the missing receipts. Existing receipts keep their
    read state, and users no longer targeted keep theirs.
    """

    def __init__(self, repo: AnnouncementRepository) -> None:
        self.repo = repo

    def fanout(self, announcement_id: int, target_user_ids: Iterable[str]) -> FanoutResult:
        """Create the missing unread receipts for ``target_user_ids``.

        The caller owns the transaction.

        Raises:
            NotFoundError: If the announcement does not exist.
            TransientCollaboratorError: If receipt storage drops mid fan-out.
        """
        if self.repo.get_by_id(announcement_id) is None:
            raise NotFoundError(f"Announcement {announcement_id} not found")

        created = 0
        skipped = 0
        for user_id in sorted(set(target_user_ids)):
            try:
                with collaborator_call("Receipt storage"):
                    inserted = self.repo.insert_receipt_if_absent(announcement_id, user_id)
            except ConflictError:
                # Another fan-out won the race for this pair.
                inserted = False
            if inserted:
                created += 1
            else:
                skipped += 1

        logger.info(
            "Fan-out for announcement %s: %d receipt(s) created, %d already present",
            announcement_id,
            created,
            skipped,
        )
        return FanoutResult(announcement_id=announcement_id, created=created, skipped=skipped)
