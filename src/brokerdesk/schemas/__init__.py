"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .announcement import (
    AnnouncementCreate,
    AnnouncementDetailResponse,
    AnnouncementFilters,
    AnnouncementListItem,
    AnnouncementListResponse,
    AnnouncementResponse,
    AnnouncementStats,
    AnnouncementUpdate,
    DashboardSummary,
    ReadReceiptResponse,
    UnreadCountResponse,
)

__all__ = [
    "AnnouncementCreate", "AnnouncementUpdate", "AnnouncementFilters",
    "AnnouncementResponse", "AnnouncementListItem", "AnnouncementListResponse",
    "AnnouncementDetailResponse", "AnnouncementStats", "DashboardSummary",
    "ReadReceiptResponse", "UnreadCountResponse",
]
