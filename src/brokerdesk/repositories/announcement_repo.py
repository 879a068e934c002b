"""Data access helpers for announcements, target roles and read receipts."""
from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from brokerdesk.db.time import utcnow
from brokerdesk.models.announcement import (
    Announcement,
    AnnouncementRecipient,
    AnnouncementTargetRole,
)
from brokerdesk.models.roles import AnnouncementStatus
from brokerdesk.repositories.errors import collaborator_call
from brokerdesk.services.errors import ConflictError

__all__ = ["AnnouncementRepository", "ListRow"]

# Dialects with a native "insert, ignore the unique-key conflict" statement.
_CONFLICT_FREE_INSERTS: dict[str, Callable[..., Any]] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

ListRow = tuple[Announcement, bool | None, datetime | None]


class AnnouncementRepository:
    """Thin wrapper around database access for announcement entities."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    # --- announcements --------------------------------------------------------------
    def get_by_id(self, announcement_id: int) -> Announcement | None:
        """Return an announcement by identifier."""
        return self.session.get(Announcement, announcement_id)

    def add(self, announcement: Announcement) -> Announcement:
        """Insert a new announcement (and its target roles) and flush it."""
        self.session.add(announcement)
        self.session.flush()
        return announcement

    def replace_target_roles(self, announcement: Announcement, roles: Iterable[str]) -> None:
        """Swap the target-role set for ``roles``.

        Old rows are deleted and flushed before the new rows are inserted so a
        role kept across the edit does not trip the unique constraint. Both
        steps share the caller's transaction.
        """
        announcement.target_roles.clear()
        self.session.flush()
        announcement.target_roles.extend(
            AnnouncementTargetRole(role=str(role)) for role in sorted(set(roles))
        )
        self.session.flush()

    def delete(self, announcement: Announcement) -> None:
        """Delete an announcement together with its target roles and receipts."""
        # Receipts may have been inserted behind the ORM's back; reload both collections.
        self.session.expire(announcement, ["recipients", "target_roles"])
        self.session.delete(announcement)
        self.session.flush()

    def list_page(
        self,
        *,
        user_id: str,
        priority: str | None = None,
        status: str | None = None,
        search: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[ListRow], int]:
        """Return one page of announcements with ``user_id``'s read state, plus the total.

        Ordered newest first; ties on ``created_at`` are broken by id.
        """
        conditions = []
        if priority is not None:
            conditions.append(Announcement.priority == str(priority))
        if status is not None:
            conditions.append(Announcement.status == str(status))
        if search:
            conditions.append(
                Announcement.title.icontains(search, autoescape=True)
                | Announcement.body.icontains(search, autoescape=True)
            )
        if date_from is not None:
            conditions.append(Announcement.created_at >= date_from)
        if date_to is not None:
            conditions.append(Announcement.created_at <= date_to)

        total = self.session.execute(
            select(func.count()).select_from(Announcement).where(*conditions)
        ).scalar_one()

        stmt = (
            select(Announcement, AnnouncementRecipient.is_read, AnnouncementRecipient.read_at)
            .outerjoin(
                AnnouncementRecipient,
                and_(
                    AnnouncementRecipient.announcement_id == Announcement.id,
                    AnnouncementRecipient.user_id == user_id,
                ),
            )
            .where(*conditions)
            .options(selectinload(Announcement.target_roles))
            .order_by(Announcement.created_at.desc(), Announcement.id.desc())
            .offset(offset)
            .limit(limit)
        )
        rows = [(row[0], row[1], row[2]) for row in self.session.execute(stmt).all()]
        return rows, int(total)

    def recent_published(self, limit: int) -> list[Announcement]:
        """Return the most recently created published announcements."""
        stmt = (
            select(Announcement)
            .where(Announcement.status == AnnouncementStatus.PUBLISHED)
            .options(selectinload(Announcement.target_roles))
            .order_by(Announcement.created_at.desc(), Announcement.id.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    def count_by_status(self) -> dict[str, int]:
        """Return announcement counts keyed by status."""
        stmt = select(Announcement.status, func.count()).group_by(Announcement.status)
        return {str(status): int(count) for status, count in self.session.execute(stmt)}

    def count_by_priority(self) -> dict[str, int]:
        """Return announcement counts keyed by priority."""
        stmt = select(Announcement.priority, func.count()).group_by(Announcement.priority)
        return {str(priority): int(count) for priority, count in self.session.execute(stmt)}

    def list_target_roles(self, announcement_id: int) -> list[AnnouncementTargetRole]:
        """Return the target-role rows of an announcement."""
        stmt = (
            select(AnnouncementTargetRole)
            .where(AnnouncementTargetRole.announcement_id == announcement_id)
            .order_by(AnnouncementTargetRole.role)
        )
        return list(self.session.execute(stmt).scalars())

    # --- receipts -------------------------------------------------------------------
    def list_recipients(self, announcement_id: int) -> list[AnnouncementRecipient]:
        """Return every receipt of an announcement."""
        stmt = (
            select(AnnouncementRecipient)
            .where(AnnouncementRecipient.announcement_id == announcement_id)
            .order_by(AnnouncementRecipient.user_id)
        )
        return list(self.session.execute(stmt).scalars())

    def get_receipt(self, user_id: str, announcement_id: int) -> AnnouncementRecipient | None:
        """Return the receipt for a (user, announcement) pair, if any."""
        stmt = select(AnnouncementRecipient).where(
            AnnouncementRecipient.announcement_id == announcement_id,
            AnnouncementRecipient.user_id == user_id,
        )
        return self.session.execute(stmt).scalars().first()

    def insert_receipt_if_absent(self, announcement_id: int, user_id: str) -> bool:
        """Insert an unread receipt unless one already exists.

        Returns:
            True if a row was created, False if the pair was already present.

        Raises:
            ConflictError: On dialects without a conflict-free insert, when the
                unique key rejected the row.
        """
        values = {
            "announcement_id": announcement_id,
            "user_id": user_id,
            "is_read": False,
            "created_at": utcnow(),
        }
        table = AnnouncementRecipient.__table__
        dialect = self.session.get_bind().dialect.name
        insert_factory = _CONFLICT_FREE_INSERTS.get(dialect)
        if insert_factory is not None:
            stmt = (
                insert_factory(table)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["announcement_id", "user_id"])
            )
            with collaborator_call("Receipt storage"):
                result = self.session.execute(stmt)
            return result.rowcount == 1

        try:
            with collaborator_call("Receipt storage"), self.session.begin_nested():
                self.session.execute(insert(table).values(**values))
        except IntegrityError as exc:
            raise ConflictError(
                f"Receipt for announcement {announcement_id} and user {user_id} already exists"
            ) from exc
        return True

    def mark_receipt_read(self, user_id: str, announcement_id: int, read_at: datetime) -> bool:
        """Flip an unread receipt to read.

        Returns:
            False if no row matched, either because the receipt is already read
            or because none exists.
        """
        stmt = (
            update(AnnouncementRecipient)
            .where(
                AnnouncementRecipient.announcement_id == announcement_id,
                AnnouncementRecipient.user_id == user_id,
                AnnouncementRecipient.is_read.is_(False),
            )
            .values(is_read=True, read_at=read_at)
            .execution_options(synchronize_session="fetch")
        )
        with collaborator_call("Receipt storage"):
            result = self.session.execute(stmt)
        return result.rowcount == 1

    def count_unread_for_user(self, user_id: str, *, priority: str | None = None) -> int:
        """Count ``user_id``'s unread receipts on announcements that are still published."""
        stmt = (
            select(func.count())
            .select_from(AnnouncementRecipient)
            .join(Announcement, Announcement.id == AnnouncementRecipient.announcement_id)
            .where(
                AnnouncementRecipient.user_id == user_id,
                AnnouncementRecipient.is_read.is_(False),
                Announcement.status == AnnouncementStatus.PUBLISHED,
            )
        )
        if priority is not None:
            stmt = stmt.where(Announcement.priority == str(priority))
        with collaborator_call("Receipt storage"):
            return int(self.session.execute(stmt).scalar_one())
