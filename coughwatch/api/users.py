import logging

from fastapi import APIRouter, status

from ..core import errors
from ..repositories import repository
from ..schemas import UserCreate, UserProfile

router = APIRouter(tags=["users"])
log = logging.getLogger(__name__)


@router.post("/users", response_model=UserProfile, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate):
    if repository.get_user_by_username(payload.username):
        raise errors.ConflictError("Username is already taken.")
    user = repository.create_user(
        username=payload.username,
        name=payload.name,
        email=payload.email,
        role=payload.role.value,
    )
    log.info("User %s created with role %s", user.username, user.role)
    return user


@router.get("/users/{user_id}", response_model=UserProfile)
def get_user(user_id: str):
    user = repository.get_user(user_id)
    if not user:
        raise errors.NotFoundError("User not found")
    return user
