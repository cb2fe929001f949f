from fastapi import APIRouter, Depends, HTTPException, status, Query, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from routers.auth.auth import get_current_user
from routers.auth.helpers import auth_helpers
from dependencies.rbac import require_notification_read, require_notification_write, require_admin_write
from utils.errors import MarketplaceError
from utils.response_helpers import document_to_model, documents_to_models, page_to_offset, strip_internal_fields
from config import NOTIFICATION_PAGE_LIMIT
from .helpers import NotificationManager, get_notification_manager
from .schemas import (
    NotificationCreate, NotificationFilters, NotificationResponse,
    NotificationListResponse, NotificationType, MarkAllReadResponse
)
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


async def _get_own_notification(manager: NotificationManager, notification_id: str, user_id: str):
    notification = await manager.get_notification(notification_id)
    if notification is None or notification["user_id"] != user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found"
        )
    return notification


@router.get("/", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(NOTIFICATION_PAGE_LIMIT, ge=1, le=100),
    notification_type: Optional[NotificationType] = Query(None, alias="type"),
    read: Optional[bool] = Query(None),
    current_user = Depends(get_current_user),
    manager: NotificationManager = Depends(get_notification_manager),
    _: bool = Depends(require_notification_read)
):
    try:
        filters = NotificationFilters(
            type=notification_type,
            read=read,
            limit=limit,
            offset=page_to_offset(page, limit),
        )
        result = await manager.list_for_user(current_user["user_id"], filters)

        return NotificationListResponse(
            notifications=documents_to_models(NotificationResponse, result.notifications),
            page=page,
            limit=limit,
            total=result.total,
            has_more=result.has_more,
            unread_count=result.unread_count
        )

    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error listing notifications: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve notifications"
        )


@router.post("/", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
async def create_notification(
    notification: NotificationCreate,
    current_user = Depends(get_current_user),
    manager: NotificationManager = Depends(get_notification_manager),
    _: bool = Depends(require_admin_write)
):
    """Admin: send a notification to one user"""
    try:
        notification_id = await manager.create(notification)
        return document_to_model(NotificationResponse, await manager.get_notification(notification_id))
    except MarketplaceError as e:
        raise e.to_http_exception()


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_notifications_read(
    current_user = Depends(get_current_user),
    manager: NotificationManager = Depends(get_notification_manager),
    _: bool = Depends(require_notification_write)
):
    try:
        updated = await manager.mark_all_read(current_user["user_id"])
        return MarkAllReadResponse(message="All notifications marked as read", updated=updated)
    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error marking notifications read: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to mark notifications as read"
        )


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: str,
    current_user = Depends(get_current_user),
    manager: NotificationManager = Depends(get_notification_manager),
    _: bool = Depends(require_notification_write)
):
    try:
        await _get_own_notification(manager, notification_id, current_user["user_id"])
        await manager.mark_read(notification_id)
        return document_to_model(NotificationResponse, await manager.get_notification(notification_id))
    except HTTPException:
        raise
    except MarketplaceError as e:
        raise e.to_http_exception()


@router.post("/{notification_id}/archive", response_model=NotificationResponse)
async def archive_notification(
    notification_id: str,
    current_user = Depends(get_current_user),
    manager: NotificationManager = Depends(get_notification_manager),
    _: bool = Depends(require_notification_write)
):
    try:
        await _get_own_notification(manager, notification_id, current_user["user_id"])
        await manager.archive(notification_id)
        return document_to_model(NotificationResponse, await manager.get_notification(notification_id))
    except HTTPException:
        raise
    except MarketplaceError as e:
        raise e.to_http_exception()


@router.websocket("/ws")
async def notifications_feed(
    websocket: WebSocket,
    token: str = Query(...),
    manager: NotificationManager = Depends(get_notification_manager)
):
    """
    Live unread feed. Sends {"unread": [...]} on connect and on every change
    until the client disconnects.
    """
    try:
        user = auth_helpers.verify_token(token)
    except HTTPException as e:
        await websocket.close(code=1008, reason=e.detail)
        return

    await websocket.accept()
    logger.info(f"Notification feed connected for {user.id}")

    async def push(notifications):
        payload = [strip_internal_fields(notification) for notification in notifications]
        await websocket.send_json(jsonable_encoder({"unread": payload}))

    subscription = manager.subscribe(user.id, push)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Notification feed disconnected for {user.id}")
    finally:
        subscription.unsubscribe()
