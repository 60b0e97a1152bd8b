"""Notification endpoints: live stream, history, read state and settings."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from beefunded.api.v1.dependencies import (
    CurrentUserDep,
    NotificationRegistryDep,
    NotificationServiceDep,
)
from beefunded.core.settings import settings
from beefunded.models import NotificationSettings
from beefunded.schemas.notification import (
    NotificationPageResponse,
    NotificationSettingsDocument,
    NotificationSettingsResponse,
    UnreadCountResponse,
)
from beefunded.services.notifications import (
    STREAM_CLOSED,
    NotificationEvent,
    NotificationStreamRegistry,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notification", tags=["notifications"])


def format_sse(event: NotificationEvent) -> str:
    """Serialize ``event`` in the text/event-stream wire format."""
    data = json.dumps(event.data, default=str)
    return f"event: {event.event}\ndata: {data}\n\n"


async def _event_stream(
    request: Request,
    registry: NotificationStreamRegistry,
    profile_id: str,
) -> AsyncIterator[str]:
    queue = await registry.register(profile_id)
    logger.info("Notification stream opened for profile %s", profile_id)
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                item = await asyncio.wait_for(queue.get(), timeout=settings.sse_keepalive_seconds)
            except TimeoutError:
                yield ": keep-alive\n\n"
                continue
            if item is STREAM_CLOSED:
                break
            yield format_sse(item)
    finally:
        await registry.unregister(profile_id, queue)
        logger.info("Notification stream closed for profile %s", profile_id)


def _settings_response(row: NotificationSettings) -> NotificationSettingsResponse:
    return NotificationSettingsResponse(
        profile_id=row.profile_id,
        settings=NotificationSettingsDocument.model_validate(row.settings),
    )


@router.get("/sse", summary="Server-sent stream of new notifications")
async def notification_stream(
    request: Request,
    current_user: CurrentUserDep,
    registry: NotificationRegistryDep,
) -> StreamingResponse:
    return StreamingResponse(
        _event_stream(request, registry, current_user.profile.id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("", summary="List notifications", response_model=NotificationPageResponse)
def list_notifications(
    current_user: CurrentUserDep,
    service: NotificationServiceDep,
    offset: int = Query(0, ge=0),
    limit: int = Query(10, ge=1),
) -> NotificationPageResponse:
    """Newest first; ``limit`` is capped by NOTIFICATION_PAGE_MAX_LIMIT."""
    page = service.get_notifications(current_user.profile.id, offset=offset, limit=limit)
    return NotificationPageResponse.model_validate(
        {"data": page.data, "offset": page.offset, "limit": page.limit, "count": page.count}
    )


@router.get(
    "/count-unread",
    summary="Count unread notifications",
    response_model=UnreadCountResponse,
)
def count_unread(
    current_user: CurrentUserDep,
    service: NotificationServiceDep,
) -> UnreadCountResponse:
    return UnreadCountResponse(count=service.get_total_unread(current_user.profile.id))


@router.get(
    "/settings",
    summary="Get notification settings",
    response_model=NotificationSettingsResponse,
)
def get_settings(
    current_user: CurrentUserDep,
    service: NotificationServiceDep,
) -> NotificationSettingsResponse:
    return _settings_response(service.get_settings(current_user.profile.id))


@router.put(
    "/settings",
    summary="Replace notification settings",
    response_model=NotificationSettingsResponse,
)
def update_settings(
    payload: NotificationSettingsDocument,
    current_user: CurrentUserDep,
    service: NotificationServiceDep,
) -> NotificationSettingsResponse:
    row = service.update_settings(current_user.profile.id, payload.model_dump())
    return _settings_response(row)


@router.patch(
    "/{notification_id}",
    summary="Mark a notification as read",
    status_code=status.HTTP_204_NO_CONTENT,
)
def mark_as_read(
    notification_id: str,
    current_user: CurrentUserDep,
    service: NotificationServiceDep,
) -> None:
    if not service.mark_as_read(notification_id, current_user.profile.id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
