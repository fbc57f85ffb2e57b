from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class CoughStatus(str, Enum):
    analyzing = "ANALYZING"
    positive_tb = "POSITIVE_TB"
    negative_tb = "NEGATIVE_TB"


class DetectionResult(BaseModel):
    """Classifier verdict; devices send it camel-cased, we store and return snake case."""
    is_tb_cough: bool = Field(..., validation_alias=AliasChoices("is_tb_cough", "isTBCough"))
    confidence_score: float = Field(
        ..., ge=0, le=1, validation_alias=AliasChoices("confidence_score", "confidenceScore")
    )


class CoughEventCreate(BaseModel):
    device_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    direction_of_arrival: Optional[float] = None


class ExternalDetectionCallback(BaseModel):
    """Body posted back by the external classifier. Values are checked by the lifecycle manager."""
    record_id: Optional[str] = None
    status: Optional[Any] = None
    confidence_score: Optional[Any] = None


class NoteCreate(BaseModel):
    content: Optional[str] = None


class UserSummary(BaseModel):
    id: str
    name: str


class DeviceSummary(BaseModel):
    device_id: str
    name: str
    location: Optional[str] = None


class CoughNote(BaseModel):
    id: str
    content: str
    created_at: datetime
    author: Optional[UserSummary] = None


class CoughEventRead(BaseModel):
    id: str
    user: Optional[UserSummary] = None
    device: Optional[DeviceSummary] = None
    timestamp: datetime
    direction_of_arrival: Optional[float] = None
    audio_path: str
    status: CoughStatus
    detection_result: Optional[DetectionResult] = None
    notes: List[CoughNote] = Field(default_factory=list)
    acknowledged_by: Optional[UserSummary] = None
    acknowledged_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class CoughEventPage(BaseModel):
    events: List[CoughEventRead]
    total: int
    page: int
    pages: int
