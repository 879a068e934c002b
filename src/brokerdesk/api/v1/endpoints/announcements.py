# src/brokerdesk/api/v1/endpoints/announcements.py
"""Announcement endpoints: lifecycle, listing, read tracking and badge delivery."""

from __future__ import annotations

import logging
from datetime import datetime
from functools import partial

from fastapi import APIRouter, HTTPException, Query, Response, WebSocket, WebSocketDisconnect, status

from brokerdesk.api.v1.dependencies import (
    BadgeDep,
    CurrentUserDep,
    ReadTrackerDep,
    SessionFactoryDep,
    StoreDep,
    load_active_user,
)
from brokerdesk.core.security import InvalidTokenError, decode_subject
from brokerdesk.core.settings import settings
from brokerdesk.models.roles import AnnouncementPriority, AnnouncementStatus
from brokerdesk.schemas.announcement import (
    AnnouncementCreate,
    AnnouncementDetailResponse,
    AnnouncementFilters,
    AnnouncementListResponse,
    AnnouncementResponse,
    AnnouncementStats,
    AnnouncementUpdate,
    DashboardSummary,
    ReadReceiptResponse,
    RecipientResponse,
    TargetRoleResponse,
    UnreadCountResponse,
)
from brokerdesk.services.badge import count_unread_with
from brokerdesk.services.errors import (
    BrokerDeskError,
    NotFoundError,
    TransientCollaboratorError,
    ValidationError,
)
from brokerdesk.services.realtime import RealtimeEventBridge

router = APIRouter(prefix="/announcements", tags=["announcements"])

# Configure logger for this module
logger = logging.getLogger(__name__)


def _http_error(exc: BrokerDeskError) -> HTTPException:
    """Translate a core error into the matching HTTP error."""
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, TransientCollaboratorError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily unavailable, please try again",
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("/", response_model=AnnouncementListResponse)
async def list_announcements(
    current_user: CurrentUserDep,
    store: StoreDep,
    priority: AnnouncementPriority | None = Query(None, description="Filter by priority"),
    status_filter: AnnouncementStatus | None = Query(
        None, alias="status", description="Filter by lifecycle status"
    ),
    search: str | None = Query(None, description="Free text searched in title and body"),
    date_from: datetime | None = Query(None, description="Created at or after"),
    date_to: datetime | None = Query(None, description="Created at or before"),
    page: int = Query(1, ge=1),
    limit: int = Query(
        settings.announcements_default_page_size,
        ge=1,
        le=settings.announcements_max_page_size,
    ),
) -> AnnouncementListResponse:
    """List announcements newest first with the caller's read state.

    Raises:
        HTTPException: If the storage backend is unavailable
    """
    filters = AnnouncementFilters(
        priority=priority,
        status=status_filter,
        search=search,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    try:
        return store.list(filters, user_id=current_user.id)
    except TransientCollaboratorError as exc:
        raise _http_error(exc) from exc


@router.post("/", response_model=AnnouncementResponse, status_code=status.HTTP_201_CREATED)
async def create_announcement(
    payload: AnnouncementCreate,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> AnnouncementResponse:
    """Create an announcement; creating it as published fans it out immediately."""
    try:
        announcement = store.create(payload, created_by=current_user.id)
    except (ValidationError, NotFoundError, TransientCollaboratorError) as exc:
        raise _http_error(exc) from exc
    return AnnouncementResponse.model_validate(announcement)


@router.get("/stats", response_model=AnnouncementStats)
async def announcement_stats(current_user: CurrentUserDep, store: StoreDep) -> AnnouncementStats:
    """Return counts by status and priority plus the caller's unread count."""
    try:
        return store.stats(user_id=current_user.id)
    except TransientCollaboratorError as exc:
        raise _http_error(exc) from exc


@router.get("/dashboard", response_model=DashboardSummary)
async def announcement_dashboard(current_user: CurrentUserDep, store: StoreDep) -> DashboardSummary:
    """Return the dashboard widget data for the caller."""
    try:
        return store.dashboard_summary(user_id=current_user.id)
    except TransientCollaboratorError as exc:
        raise _http_error(exc) from exc


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(current_user: CurrentUserDep, badge: BadgeDep) -> UnreadCountResponse:
    """Return the caller's unread badge count."""
    try:
        return UnreadCountResponse(unread=badge.count(current_user.id))
    except TransientCollaboratorError as exc:
        raise _http_error(exc) from exc


@router.websocket("/ws")
async def announcement_events(
    websocket: WebSocket,
    session_factory: SessionFactoryDep,
    token: str | None = None,
) -> None:
    """Stream badge counts to a connected client.

    A count is sent on connect, after every new announcement, and whenever
    the client sends the text frame ``refresh``.
    """
    try:
        user_id = decode_subject(token or "")
    except InvalidTokenError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    with session_factory() as db:
        user = load_active_user(db, user_id)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    async def push(unread: int) -> None:
        await websocket.send_json({"type": "badge", "unread": unread})

    bridge = RealtimeEventBridge(
        user_id,
        count_unread=partial(count_unread_with, session_factory),
        push=push,
    )
    await bridge.start()
    try:
        await bridge.refresh()
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "refresh":
                await bridge.refresh()
    except WebSocketDisconnect:
        logger.debug("Badge client for user %s disconnected", user_id)
    finally:
        await bridge.stop()


@router.get("/{announcement_id}", response_model=AnnouncementDetailResponse)
async def get_announcement(
    announcement_id: int,
    current_user: CurrentUserDep,
    store: StoreDep,
    tracker: ReadTrackerDep,
) -> AnnouncementDetailResponse:
    """Return an announcement with its recipients and roles, recording the view.

    Viewing an announcement outside one's audience is allowed; it is simply
    not tracked.
    """
    try:
        store.get_announcement(announcement_id)
    except NotFoundError as exc:
        raise _http_error(exc) from exc

    is_read = True
    try:
        tracker.mark_read(current_user.id, announcement_id)
    except NotFoundError:
        is_read = False
    except TransientCollaboratorError:
        logger.warning(
            "Could not record view of announcement %s by user %s", announcement_id, current_user.id
        )
        is_read = False

    detail = store.get(announcement_id)
    return AnnouncementDetailResponse(
        announcement=AnnouncementResponse.model_validate(detail.announcement),
        recipients=[RecipientResponse.model_validate(row) for row in detail.recipients],
        roles=[TargetRoleResponse.model_validate(row) for row in detail.roles],
        is_read=is_read,
    )


@router.patch("/{announcement_id}", response_model=AnnouncementResponse)
async def update_announcement(
    announcement_id: int,
    payload: AnnouncementUpdate,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> AnnouncementResponse:
    """Apply a partial update to an announcement."""
    try:
        announcement = store.update(announcement_id, payload)
    except (ValidationError, NotFoundError, TransientCollaboratorError) as exc:
        raise _http_error(exc) from exc
    return AnnouncementResponse.model_validate(announcement)


@router.post("/{announcement_id}/publish", response_model=AnnouncementResponse)
async def publish_announcement(
    announcement_id: int,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> AnnouncementResponse:
    """Publish an announcement and fan it out to its audience."""
    try:
        announcement = store.publish(announcement_id)
    except (ValidationError, NotFoundError, TransientCollaboratorError) as exc:
        raise _http_error(exc) from exc
    return AnnouncementResponse.model_validate(announcement)


@router.post("/{announcement_id}/archive", response_model=AnnouncementResponse)
async def archive_announcement(
    announcement_id: int,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> AnnouncementResponse:
    """Archive an announcement; it stops counting towards unread badges."""
    try:
        announcement = store.archive(announcement_id)
    except (NotFoundError, TransientCollaboratorError) as exc:
        raise _http_error(exc) from exc
    return AnnouncementResponse.model_validate(announcement)


@router.post("/{announcement_id}/read", response_model=ReadReceiptResponse)
async def mark_announcement_read(
    announcement_id: int,
    current_user: CurrentUserDep,
    store: StoreDep,
    tracker: ReadTrackerDep,
    badge: BadgeDep,
) -> ReadReceiptResponse:
    """Mark an announcement as read and return the refreshed badge count."""
    try:
        store.get_announcement(announcement_id)
    except NotFoundError as exc:
        raise _http_error(exc) from exc

    tracked = True
    try:
        tracker.mark_read(current_user.id, announcement_id)
    except NotFoundError:
        tracked = False
    except TransientCollaboratorError as exc:
        raise _http_error(exc) from exc

    try:
        unread = badge.count(current_user.id)
    except TransientCollaboratorError as exc:
        raise _http_error(exc) from exc
    return ReadReceiptResponse(tracked=tracked, unread=unread)


@router.delete("/{announcement_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_announcement(
    announcement_id: int,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> Response:
    """Delete an announcement together with its roles and receipts."""
    try:
        store.delete(announcement_id)
    except NotFoundError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
