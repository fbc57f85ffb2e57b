from fastapi import APIRouter, Depends

from ..repositories import db_models
from ..schemas import AcknowledgeResponse, UnreadNotifications
from ..services.notifications import NotificationManager
from .deps import get_current_user, get_notifications

router = APIRouter(prefix="/notifications", tags=["notifications"], dependencies=[Depends(get_current_user)])


@router.get("", response_model=UnreadNotifications)
def list_unread(notifications: NotificationManager = Depends(get_notifications)):
    return notifications.list_unread()


@router.patch("/{notification_id}/read", response_model=AcknowledgeResponse)
def mark_as_read(
    notification_id: str,
    user: db_models.User = Depends(get_current_user),
    notifications: NotificationManager = Depends(get_notifications),
):
    return notifications.acknowledge(notification_id, user)
