"""SQLAlchemy models for announcements, their target roles and read receipts."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brokerdesk.db.session import Base
from brokerdesk.db.time import utcnow
from brokerdesk.models.roles import (
    PRIORITY_CHECK_SQL,
    ROLE_CHECK_SQL,
    STATUS_CHECK_SQL,
    AnnouncementPriority,
    AnnouncementStatus,
)


class Announcement(Base):
    """Message published to every user holding one of its target roles."""

    __tablename__ = "announcements"
    __table_args__ = (
        CheckConstraint(
            PRIORITY_CHECK_SQL.format(column="priority"), name="ck_announcements_priority"
        ),
        CheckConstraint(STATUS_CHECK_SQL.format(column="status"), name="ck_announcements_status"),
        Index("ix_announcements_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(
        String(16), nullable=False, default=AnnouncementPriority.MEDIUM
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=AnnouncementStatus.DRAFT
    )
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_account.id"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    # Target roles are replaced wholesale on edit; receipts are only ever added.
    target_roles: Mapped[list[AnnouncementTargetRole]] = relationship(
        back_populates="announcement",
        cascade="all, delete-orphan",
    )
    recipients: Mapped[list[AnnouncementRecipient]] = relationship(
        back_populates="announcement",
        cascade="all, delete-orphan",
    )

    @property
    def role_names(self) -> list[str]:
        """Return the target role names in a stable order."""
        return sorted(target.role for target in self.target_roles)


class AnnouncementTargetRole(Base):
    """Role selected as an audience for an announcement."""

    __tablename__ = "announcement_target_roles"
    __table_args__ = (
        UniqueConstraint("announcement_id", "role", name="uq_announcement_target_role"),
        CheckConstraint(ROLE_CHECK_SQL.format(column="role"), name="ck_announcement_target_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    announcement_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("announcements.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    announcement: Mapped[Announcement] = relationship(back_populates="target_roles")


class AnnouncementRecipient(Base):
    """Per-user read receipt created when an announcement is fanned out.

    The (announcement_id, user_id) pair is the receipt's identity; the unique
    constraint is what keeps concurrent fan-outs from duplicating rows.
    """

    __tablename__ = "announcement_recipients"
    __table_args__ = (
        UniqueConstraint("announcement_id", "user_id", name="uq_announcement_recipient"),
        Index("ix_announcement_recipients_user_unread", "user_id", "is_read"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    announcement_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("announcements.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_account.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Only ever flips False -> True.
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    announcement: Mapped[Announcement] = relationship(back_populates="recipients")
