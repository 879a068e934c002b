# src/brokerdesk/models/__init__.py
"""SQLAlchemy models for the Brokerdesk application."""

from .announcement import Announcement, AnnouncementRecipient, AnnouncementTargetRole
from .roles import AnnouncementPriority, AnnouncementStatus, Role
from .user import UserAccount

# Register the session hooks that feed announcement-created events.
from brokerdesk.db import change_feed as _change_feed  # noqa: E402,F401

__all__ = [
    "Announcement", "AnnouncementRecipient", "AnnouncementTargetRole",
    "AnnouncementPriority", "AnnouncementStatus", "Role",
    "UserAccount",
]
