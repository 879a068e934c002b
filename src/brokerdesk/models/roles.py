"""Enumerations shared by the announcement and user models."""

from enum import StrEnum


class Role(StrEnum):
    """Roles an announcement can target."""

    ADMIN = "admin"
    ADMIN_COMERCIAL = "admin_comercial"
    ADMIN_OPERACIONES = "admin_operaciones"
    BROKER = "broker"
    BROKER_EXTERNO = "broker_externo"


class AnnouncementPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AnnouncementStatus(StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


def _check_sql(values: type[StrEnum]) -> str:
    quoted = ", ".join(f"'{member.value}'" for member in values)
    return "{column} IN (" + quoted + ")"


ROLE_CHECK_SQL = _check_sql(Role)
PRIORITY_CHECK_SQL = _check_sql(AnnouncementPriority)
STATUS_CHECK_SQL = _check_sql(AnnouncementStatus)
