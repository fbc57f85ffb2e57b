from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DeviceStatus(str, Enum):
    online = "ONLINE"
    offline = "OFFLINE"


class DeviceCreate(BaseModel):
    device_id: str = Field(..., min_length=1, description="Identifier burned into the edge device")
    name: str = Field(..., min_length=1, description="Display name")
    location: Optional[str] = Field(None, description="Where the device is installed")


class DeviceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    location: Optional[str] = None


class HeartbeatRequest(BaseModel):
    device_id: Optional[str] = None


class DeviceRead(BaseModel):
    device_id: str
    name: str
    location: Optional[str] = None
    status: DeviceStatus
    last_heartbeat: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)
