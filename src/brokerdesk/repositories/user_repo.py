"""Identity/role directory backed by the user_account table."""
from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from brokerdesk.models.user import UserAccount
from brokerdesk.repositories.errors import collaborator_call

__all__ = ["UserDirectory"]


class UserDirectory:
    """Thin wrapper around database access for user accounts."""

    def __init__(self, session: Session) -> None:
        """Initialize the directory with a SQLAlchemy session."""
        self.session = session

    def get(self, user_id: str) -> UserAccount | None:
        """Return a user account by identifier."""
        return self.session.get(UserAccount, user_id)

    def resolve_users_by_roles(self, roles: Iterable[str]) -> list[str]:
        """Return the ids of active users currently holding any of ``roles``."""
        role_values = sorted({str(role) for role in roles})
        if not role_values:
            return []
        stmt = (
            select(UserAccount.id)
            .where(
                UserAccount.role.in_(role_values),
                UserAccount.is_active.is_(True),
            )
            .order_by(UserAccount.id)
        )
        with collaborator_call("Role directory"):
            return list(self.session.execute(stmt).scalars())
