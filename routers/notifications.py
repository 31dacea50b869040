"""
Notification inbox and the real-time push socket.
"""
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import List

from database.models import User
from auth.dependencies import get_db_session, get_current_user, get_notifier, resolve_user_from_token
from core.logger import logger
from services.notification_service import NotificationDispatcher
import config


router = APIRouter(tags=["notifications"])


class NotificationResponse(BaseModel):
    id: int
    message: str
    status: str
    createdAt: str


class NotificationListResponse(BaseModel):
    data: List[NotificationResponse]
    unreadCount: int


class MarkReadResponse(BaseModel):
    success: bool
    updated: int


@router.get("/api/notifications", response_model=NotificationListResponse)
async def list_notifications(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
    notifier: NotificationDispatcher = Depends(get_notifier)
):
    """Latest unread notifications of the caller."""
    notifications = notifier.list_unread(db, current_user.id)
    return NotificationListResponse(
        data=[
            NotificationResponse(
                id=n.id,
                message=n.message,
                status=n.status.value,
                createdAt=n.created_at.isoformat()
            )
            for n in notifications
        ],
        unreadCount=len(notifications)
    )


@router.post("/api/notifications/mark-read", response_model=MarkReadResponse)
async def mark_notifications_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
    notifier: NotificationDispatcher = Depends(get_notifier)
):
    """Mark every unread notification of the caller as read."""
    updated = notifier.mark_all_read(db, current_user.id)
    return MarkReadResponse(success=True, updated=updated)


@router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket, token: str = Query(None)):
    """
    Push channel. Authenticates with ?token=<access token>; the server sends
    {"event": "new-notification", "message": ...}. A client "ping" is answered
    with {"event": "pong"}; other client messages are ignored.
    """
    if not token or config.db is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    with config.db.get_session() as db:
        user = resolve_user_from_token(token, db)
        user_id = user.id if user else None

    if user_id is None:
        logger.warning("Rejected notification socket with invalid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    push_channel = websocket.app.state.push_channel
    await push_channel.connect(user_id, websocket)
    try:
        while True:
            if await websocket.receive_text() == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        push_channel.disconnect(user_id, websocket)
