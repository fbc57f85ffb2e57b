from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict


class UserRole(str, Enum):
    user = "user"
    admin = "admin"


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=30, pattern=r"^[a-zA-Z0-9_]+$")
    name: str = Field(..., min_length=2, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    role: UserRole = Field(default=UserRole.user)


class UserProfile(BaseModel):
    id: str
    username: str
    name: str
    email: Optional[str] = None
    role: UserRole
    model_config = ConfigDict(from_attributes=True)
