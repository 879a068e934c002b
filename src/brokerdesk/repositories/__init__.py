"""Data access helpers for the announcement core."""

from .announcement_repo import AnnouncementRepository
from .user_repo import UserDirectory

__all__ = ["AnnouncementRepository", "UserDirectory"]
