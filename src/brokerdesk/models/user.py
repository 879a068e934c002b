"""SQLAlchemy model for back-office user accounts."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from brokerdesk.db.session import Base
from brokerdesk.db.time import utcnow
from brokerdesk.models.roles import ROLE_CHECK_SQL


class UserAccount(Base):
    """Console user as provisioned by the identity provider.

    The identifier is the provider's subject (a UUID string); authentication
    itself happens elsewhere.
    """

    __tablename__ = "user_account"
    __table_args__ = (
        CheckConstraint(ROLE_CHECK_SQL.format(column="role"), name="ck_user_account_role"),
        Index("ix_user_account_role", "role"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
