"""Announcement-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from brokerdesk.models.roles import AnnouncementPriority, AnnouncementStatus, Role


def _dedupe_roles(roles: list[Role] | None) -> list[Role] | None:
    if roles is None:
        return None
    return sorted(set(roles))


class AnnouncementCreate(BaseModel):
    """Schema for creating a new announcement.

    Emptiness of title, body and target roles is checked by the store so the
    same rule applies to every caller.
    """

    title: str = Field(..., max_length=200, description="Announcement headline")
    body: str = Field(..., description="Announcement body (sanitised rich text)")
    priority: AnnouncementPriority = Field(AnnouncementPriority.MEDIUM)
    status: AnnouncementStatus = Field(AnnouncementStatus.DRAFT)
    scheduled_at: datetime | None = Field(None, description="Requested publication time")
    published_at: datetime | None = Field(None, description="Actual publication time")
    target_roles: list[Role] = Field(default_factory=list, description="Audience roles")

    @field_validator("target_roles")
    @classmethod
    def normalize_roles(cls, v: list[Role] | None) -> list[Role] | None:
        """Collapse duplicate roles; the target set has set semantics."""
        return _dedupe_roles(v)


class AnnouncementUpdate(BaseModel):
    """Partial update; only fields present in the payload are applied."""

    title: str | None = Field(None, max_length=200)
    body: str | None = None
    priority: AnnouncementPriority | None = None
    status: AnnouncementStatus | None = None
    scheduled_at: datetime | None = None
    published_at: datetime | None = None
    target_roles: list[Role] | None = None

    @field_validator("target_roles")
    @classmethod
    def normalize_roles(cls, v: list[Role] | None) -> list[Role] | None:
        """Collapse duplicate roles; the target set has set semantics."""
        return _dedupe_roles(v)


class AnnouncementFilters(BaseModel):
    """Filters and pagination for the announcement list."""

    priority: AnnouncementPriority | None = None
    status: AnnouncementStatus | None = None
    search: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1)


class AnnouncementResponse(BaseModel):
    """Announcement as returned by the API."""

    id: int
    title: str
    body: str
    priority: AnnouncementPriority
    status: AnnouncementStatus
    scheduled_at: datetime | None
    published_at: datetime | None
    created_by: str
    created_at: datetime
    updated_at: datetime
    target_roles: list[Role] = Field(default_factory=list, validation_alias="role_names")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class AnnouncementListItem(AnnouncementResponse):
    """Announcement plus the caller's read state."""

    is_read: bool = False
    read_at: datetime | None = None


class AnnouncementListResponse(BaseModel):
    """One page of announcements."""

    announcements: list[AnnouncementListItem]
    total: int
    page: int
    limit: int
    has_more: bool


class RecipientResponse(BaseModel):
    """Read receipt for one targeted user."""

    announcement_id: int
    user_id: str
    is_read: bool
    read_at: datetime | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TargetRoleResponse(BaseModel):
    """Target role row."""

    announcement_id: int
    role: Role
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AnnouncementDetailResponse(BaseModel):
    """Announcement together with its recipients and target roles."""

    announcement: AnnouncementResponse
    recipients: list[RecipientResponse]
    roles: list[TargetRoleResponse]
    is_read: bool = False


class PriorityCounts(BaseModel):
    low: int = 0
    medium: int = 0
    high: int = 0


class AnnouncementStats(BaseModel):
    """Counts by lifecycle state and priority plus the caller's unread badge."""

    total: int
    published: int
    draft: int
    archived: int
    unread: int
    by_priority: PriorityCounts


class DashboardSummary(BaseModel):
    """Data for the dashboard announcement widget."""

    recent: list[AnnouncementResponse]
    unread_count: int
    urgent_count: int
    total_published: int


class UnreadCountResponse(BaseModel):
    unread: int


class ReadReceiptResponse(BaseModel):
    """Outcome of marking an announcement as read."""

    tracked: bool = Field(..., description="False when the caller was never a recipient")
    unread: int
