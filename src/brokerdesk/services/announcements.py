"""Announcement lifecycle: create, edit, publish, archive, delete and list.

Publishing resolves the target roles to users and fans receipts out inside
the same transaction as the status change, so an announcement is never
committed as published without its receipts.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from brokerdesk.core.settings import settings
from brokerdesk.db.time import utcnow
from brokerdesk.models.announcement import (
    Announcement,
    AnnouncementRecipient,
    AnnouncementTargetRole,
)
from brokerdesk.models.roles import AnnouncementPriority, AnnouncementStatus
from brokerdesk.repositories.announcement_repo import AnnouncementRepository
from brokerdesk.schemas.announcement import (
    AnnouncementCreate,
    AnnouncementFilters,
    AnnouncementListItem,
    AnnouncementListResponse,
    AnnouncementResponse,
    AnnouncementStats,
    AnnouncementUpdate,
    DashboardSummary,
    PriorityCounts,
)
from brokerdesk.services.badge import UnreadBadgeService
from brokerdesk.services.errors import BrokerDeskError, NotFoundError, ValidationError
from brokerdesk.services.fanout import FanoutResult, RecipientFanoutEngine
from brokerdesk.services.role_resolver import RoleTargetResolver

# Configure logger for this module
logger = logging.getLogger(__name__)


@dataclass
class AnnouncementDetail:
    """An announcement with its receipts and target-role rows."""

    announcement: Announcement
    recipients: list[AnnouncementRecipient]
    roles: list[AnnouncementTargetRole]


def _require_text(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} must not be empty")
    return value.strip()


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class AnnouncementStore:
    """Persist announcements and drive fan-out on publish.

    Every method takes the acting user explicitly; nothing reads ambient
    session state.
    """

    def __init__(
        self,
        db: Session,
        *,
        resolver: RoleTargetResolver | None = None,
        fanout: RecipientFanoutEngine | None = None,
    ) -> None:
        self.db = db
        self.repo = AnnouncementRepository(db)
        self.resolver = resolver or RoleTargetResolver.for_session(db)
        self.fanout_engine = fanout or RecipientFanoutEngine(self.repo)

    # --- lifecycle ------------------------------------------------------------------
    def create(self, data: AnnouncementCreate, *, created_by: str) -> Announcement:
        """Persist a new announcement in the requested status.

        Raises:
            ValidationError: If the title or body is blank or no role is selected.
            TransientCollaboratorError: If the role directory is unreachable
                while publishing; nothing is persisted in that case.
        """
        title = _require_text(data.title, "title")
        body = _require_text(data.body, "body")
        if not data.target_roles:
            raise ValidationError("At least one target role is required")

        announcement = Announcement(
            title=title,
            body=body,
            priority=data.priority,
            status=data.status,
            scheduled_at=_as_utc(data.scheduled_at),
            published_at=_as_utc(data.published_at),
            created_by=created_by,
        )
        announcement.target_roles = [
            AnnouncementTargetRole(role=str(role)) for role in data.target_roles
        ]
        if announcement.status == AnnouncementStatus.PUBLISHED and announcement.published_at is None:
            announcement.published_at = utcnow()

        try:
            self.repo.add(announcement)
            if announcement.status == AnnouncementStatus.PUBLISHED:
                self._fanout(announcement)
            self.db.commit()
        except (BrokerDeskError, SQLAlchemyError):
            self.db.rollback()
            raise

        self.db.refresh(announcement)
        logger.info(
            "Announcement %s created by %s with status %s",
            announcement.id,
            created_by,
            announcement.status,
        )
        return announcement

    def update(self, announcement_id: int, data: AnnouncementUpdate) -> Announcement:
        """Apply the supplied fields only.

        A supplied ``target_roles`` replaces the whole role set. Fan-out runs
        when the status moves into published, or when the roles of an
        already published announcement change; it only ever adds receipts.

        Raises:
            NotFoundError: If the announcement does not exist.
            ValidationError: If a supplied field is blank or the role set is empty.
        """
        announcement = self._get_or_raise(announcement_id)
        changes = data.model_dump(exclude_unset=True)
        roles = changes.pop("target_roles", None)

        for field in ("title", "body"):
            if field in changes:
                changes[field] = _require_text(changes[field], field)
        for field in ("priority", "status"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} must not be null")
        if roles is not None and not roles:
            raise ValidationError("At least one target role is required")
        for field in ("scheduled_at", "published_at"):
            if field in changes:
                changes[field] = _as_utc(changes[field])

        was_published = announcement.status == AnnouncementStatus.PUBLISHED
        try:
            for key, value in changes.items():
                setattr(announcement, key, value)
            if roles is not None:
                self.repo.replace_target_roles(announcement, roles)

            is_published = announcement.status == AnnouncementStatus.PUBLISHED
            if is_published and announcement.published_at is None:
                announcement.published_at = utcnow()
            self.db.flush()
            if is_published and (not was_published or roles is not None):
                self._fanout(announcement)
            self.db.commit()
        except (BrokerDeskError, SQLAlchemyError):
            self.db.rollback()
            raise

        self.db.refresh(announcement)
        return announcement

    def publish(self, announcement_id: int) -> Announcement:
        """Move an announcement to published and fan it out."""
        return self.update(
            announcement_id, AnnouncementUpdate(status=AnnouncementStatus.PUBLISHED)
        )

    def archive(self, announcement_id: int) -> Announcement:
        """Move an announcement to archived; its receipts are kept."""
        return self.update(
            announcement_id, AnnouncementUpdate(status=AnnouncementStatus.ARCHIVED)
        )

    def delete(self, announcement_id: int) -> None:
        """Delete an announcement, cascading to target roles and receipts."""
        announcement = self._get_or_raise(announcement_id)
        try:
            self.repo.delete(announcement)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        logger.info("Announcement %s deleted", announcement_id)

    # --- reads ----------------------------------------------------------------------
    def get_announcement(self, announcement_id: int) -> Announcement:
        """Return the announcement or raise `NotFoundError`."""
        return self._get_or_raise(announcement_id)

    def get(self, announcement_id: int) -> AnnouncementDetail:
        """Return an announcement together with its receipts and target roles."""
        announcement = self._get_or_raise(announcement_id)
        return AnnouncementDetail(
            announcement=announcement,
            recipients=self.repo.list_recipients(announcement_id),
            roles=self.repo.list_target_roles(announcement_id),
        )

    def list(self, filters: AnnouncementFilters, *, user_id: str) -> AnnouncementListResponse:
        """Return one page of announcements annotated with ``user_id``'s read state."""
        limit = min(filters.limit, settings.announcements_max_page_size)
        offset = (filters.page - 1) * limit
        rows, total = self.repo.list_page(
            user_id=user_id,
            priority=filters.priority,
            status=filters.status,
            search=filters.search.strip() if filters.search else None,
            date_from=_as_utc(filters.date_from),
            date_to=_as_utc(filters.date_to),
            offset=offset,
            limit=limit,
        )
        items = [
            AnnouncementListItem(
                **AnnouncementResponse.model_validate(announcement).model_dump(),
                is_read=bool(is_read),
                read_at=read_at,
            )
            for announcement, is_read, read_at in rows
        ]
        return AnnouncementListResponse(
            announcements=items,
            total=total,
            page=filters.page,
            limit=limit,
            has_more=offset + limit < total,
        )

    def stats(self, *, user_id: str) -> AnnouncementStats:
        """Return lifecycle and priority counts plus ``user_id``'s unread badge."""
        by_status = self.repo.count_by_status()
        by_priority = self.repo.count_by_priority()
        return AnnouncementStats(
            total=sum(by_status.values()),
            published=by_status.get(AnnouncementStatus.PUBLISHED.value, 0),
            draft=by_status.get(AnnouncementStatus.DRAFT.value, 0),
            archived=by_status.get(AnnouncementStatus.ARCHIVED.value, 0),
            unread=UnreadBadgeService(self.db, self.repo).count(user_id),
            by_priority=PriorityCounts(
                **{priority.value: by_priority.get(priority.value, 0) for priority in AnnouncementPriority}
            ),
        )

    def dashboard_summary(self, *, user_id: str) -> DashboardSummary:
        """Return the dashboard widget data for ``user_id``."""
        badge = UnreadBadgeService(self.db, self.repo)
        recent = self.repo.recent_published(settings.dashboard_recent_limit)
        return DashboardSummary(
            recent=[AnnouncementResponse.model_validate(item) for item in recent],
            unread_count=badge.count(user_id),
            urgent_count=badge.count_urgent(user_id),
            total_published=self.repo.count_by_status().get(AnnouncementStatus.PUBLISHED.value, 0),
        )

    # --- helpers --------------------------------------------------------------------
    def _get_or_raise(self, announcement_id: int) -> Announcement:
        announcement = self.repo.get_by_id(announcement_id)
        if announcement is None:
            raise NotFoundError(f"Announcement {announcement_id} not found")
        return announcement

    def _fanout(self, announcement: Announcement) -> FanoutResult:
        user_ids = self.resolver.resolve(announcement.role_names)
        return self.fanout_engine.fanout(announcement.id, user_ids)
