from .cough import (
    CoughEventCreate,
    CoughEventPage,
    CoughEventRead,
    CoughNote,
    CoughStatus,
    DetectionResult,
    DeviceSummary,
    ExternalDetectionCallback,
    NoteCreate,
    UserSummary,
)
from .notification import (
    AcknowledgeResponse,
    NotificationEventContext,
    NotificationRead,
    NotificationType,
    UnreadNotifications,
)
from .device import DeviceCreate, DeviceRead, DeviceStatus, DeviceUpdate, HeartbeatRequest
from .user import UserCreate, UserProfile, UserRole
from .dashboard import DashboardStats

__all__ = [
    "CoughEventCreate",
    "CoughEventPage",
    "CoughEventRead",
    "CoughNote",
    "CoughStatus",
    "DetectionResult",
    "DeviceSummary",
    "ExternalDetectionCallback",
    "NoteCreate",
    "UserSummary",
    "AcknowledgeResponse",
    "NotificationEventContext",
    "NotificationRead",
    "NotificationType",
    "UnreadNotifications",
    "DeviceCreate",
    "DeviceRead",
    "DeviceStatus",
    "DeviceUpdate",
    "HeartbeatRequest",
    "UserCreate",
    "UserProfile",
    "UserRole",
    "DashboardStats",
]
