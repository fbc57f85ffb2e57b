from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class NotificationType(str, Enum):
    positive_tb_result = "POSITIVE_TB_RESULT"


class NotificationEventContext(BaseModel):
    """The slice of the cough event shown next to a notification."""
    id: str
    timestamp: datetime
    status: str
    device_name: Optional[str] = None


class NotificationRead(BaseModel):
    id: str
    type: NotificationType
    message: str
    cough_event_id: str
    cough_event: Optional[NotificationEventContext] = None
    read_by: Optional[str] = None
    read_at: Optional[datetime] = None
    created_at: datetime


class UnreadNotifications(BaseModel):
    notifications: List[NotificationRead]
    unread_count: int


class AcknowledgeResponse(BaseModel):
    message: str
