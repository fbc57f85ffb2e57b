"""
SQLModel table definitions for persistence.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    id: str = Field(primary_key=True)
    username: str = Field(index=True, unique=True)
    name: str
    email: Optional[str] = None
    role: str = Field(default="user")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Device(SQLModel, table=True):
    device_id: str = Field(primary_key=True)
    name: str
    location: Optional[str] = None
    status: str = Field(default="OFFLINE", index=True)
    last_heartbeat: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CoughEvent(SQLModel, table=True):
    id: str = Field(primary_key=True)
    user_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    device_id: Optional[str] = Field(default=None, foreign_key="device.device_id", index=True)
    timestamp: datetime = Field(index=True)
    direction_of_arrival: Optional[float] = None
    audio_path: str
    status: str = Field(default="ANALYZING", index=True)
    # {"is_tb_cough": bool, "confidence_score": float}
    detection_result: Optional[Any] = Field(default=None, sa_column=Column(JSON))
    # most recent first: [{"id", "author_id", "content", "created_at"}]
    notes: Optional[Any] = Field(default=None, sa_column=Column(JSON))
    acknowledged_by: Optional[str] = Field(default=None, foreign_key="user.id")
    acknowledged_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class CoughNotification(SQLModel, table=True):
    id: str = Field(primary_key=True)
    type: str = Field(default="POSITIVE_TB_RESULT")
    message: str
    cough_event_id: str = Field(index=True)
    read_by: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    read_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)
