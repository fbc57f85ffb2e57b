from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from ..core import errors
from ..core.config import settings
from ..repositories import db_models, repository
from ..services.coughs import CoughLifecycleManager
from ..services.notifications import NotificationManager


def _state(request: Request, name: str):
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return component


def get_coughs(request: Request) -> CoughLifecycleManager:
    return _state(request, "coughs")


def get_notifications(request: Request) -> NotificationManager:
    return _state(request, "notifications")


def get_current_user(x_user_id: Optional[str] = Header(default=None)) -> db_models.User:
    """Resolves the identity forwarded by the authenticating gateway."""
    if not x_user_id:
        raise errors.UnauthorizedError("You are not logged in. Please log in to get access.")
    user = repository.get_user(x_user_id)
    if user is None:
        raise errors.UnauthorizedError("The user belonging to this session no longer exists.")
    return user


def require_admin(user: db_models.User = Depends(get_current_user)) -> db_models.User:
    if user.role != "admin":
        raise errors.ForbiddenError("Forbidden: This action requires admin privileges.")
    return user


def require_device_key(x_api_key: Optional[str] = Header(default=None)) -> None:
    if not x_api_key:
        raise errors.UnauthorizedError("Unauthorized: API Key is missing.")
    if not settings.device_api_key or x_api_key != settings.device_api_key:
        raise errors.ForbiddenError("Forbidden: Invalid API Key.")
