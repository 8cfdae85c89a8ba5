"""In-app notification feed and demo inbox route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_backend.database.db import get_db_session
from hockey_backend.models.schemas import (
    DemoNotificationsResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from hockey_backend.services import notification_service, settings_service
from hockey_backend.services.demo_notification_store import get_demo_notification_store

logger = logging.getLogger(__name__)
router = APIRouter()


def _feed_error(action: str, error: Exception) -> HTTPException:
    logger.error(f"Notification feed: {action} failed: {error}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Could not {action}: {error}")


@router.get("/api/users/{user_id}/notifications", response_model=NotificationListResponse)
async def list_notifications(
    user_id: int,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    unread_only: bool = False,
    session: AsyncSession = Depends(get_db_session),
):
    """Newest first, paginated."""
    try:
        return await notification_service.get_user_notifications(
            session, user_id, limit=limit, offset=offset, unread_only=unread_only
        )
    except Exception as e:
        raise _feed_error("load notifications", e)


@router.get("/api/users/{user_id}/notifications/unread-count", response_model=UnreadCountResponse)
async def unread_count(user_id: int, session: AsyncSession = Depends(get_db_session)):
    try:
        return {"count": await notification_service.get_unread_count(session, user_id)}
    except Exception as e:
        raise _feed_error("count unread notifications", e)


# Declared before the {notification_id} route so "mark-all-read" is never parsed as an id
@router.put("/api/users/{user_id}/notifications/mark-all-read")
async def mark_all_read(user_id: int, session: AsyncSession = Depends(get_db_session)):
    try:
        updated = await notification_service.mark_all_as_read(session, user_id)
    except Exception as e:
        raise _feed_error("mark notifications as read", e)
    return {"success": True, "count": updated}


@router.put(
    "/api/users/{user_id}/notifications/{notification_id}/read",
    response_model=NotificationResponse,
)
async def mark_read(
    user_id: int,
    notification_id: int,
    session: AsyncSession = Depends(get_db_session),
):
    """Mark one notification read; another user's notification answers 404."""
    try:
        return await notification_service.mark_as_read(session, notification_id, user_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise _feed_error("mark notification as read", e)


async def _demo_store_or_404(session: AsyncSession):
    if not await settings_service.is_demo_mode(session):
        raise HTTPException(status_code=404, detail="Demo mode is not enabled")
    return get_demo_notification_store()


@router.get("/api/demo/notifications", response_model=DemoNotificationsResponse)
async def drain_demo_notifications(session: AsyncSession = Depends(get_db_session)):
    """
    Emails and SMS captured since the previous drain. Each captured message
    is returned exactly once.
    """
    store = await _demo_store_or_404(session)
    return store.get_and_clear()


@router.delete("/api/demo/notifications", status_code=204)
async def clear_demo_notifications(session: AsyncSession = Depends(get_db_session)):
    store = await _demo_store_or_404(session)
    store.clear()
    return Response(status_code=204)
