"""Resolve an announcement's target roles to the users currently holding them."""
from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy.orm import Session

from brokerdesk.models.roles import Role
from brokerdesk.repositories.user_repo import UserDirectory
from brokerdesk.services.errors import ValidationError


class RoleTargetResolver:
    """Map role names to user ids using current role assignments.

    Nothing is cached: publish must see the assignments in force at that moment.
    """

    def __init__(self, directory: UserDirectory) -> None:
        self.directory = directory

    @classmethod
    def for_session(cls, db: Session) -> RoleTargetResolver:
        """Build a resolver backed by the user_account table."""
        return cls(UserDirectory(db))

    def resolve(self, roles: Iterable[str]) -> set[str]:
        """Return the ids of users holding at least one of ``roles``.

        Raises:
            ValidationError: If a role name is unknown.
            TransientCollaboratorError: If the directory cannot be reached.
        """
        try:
            role_set = {Role(role) for role in roles}
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if not role_set:
            return set()
        return set(self.directory.resolve_users_by_roles(role_set))
