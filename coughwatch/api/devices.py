import logging
from typing import List

from fastapi import APIRouter, Depends, status

from ..core import errors
from ..repositories import repository
from ..schemas import DeviceCreate, DeviceRead, DeviceUpdate, HeartbeatRequest
from .deps import get_current_user, require_admin, require_device_key

router = APIRouter(prefix="/devices", tags=["devices"])
log = logging.getLogger(__name__)


@router.post("/heartbeat", response_model=DeviceRead, dependencies=[Depends(require_device_key)])
def heartbeat(payload: HeartbeatRequest):
    """Edge devices ping this every minute or so; missing pings flip them OFFLINE."""
    if not payload.device_id:
        raise errors.ValidationError("Bad Request: device_id is required in the body.")
    device = repository.record_heartbeat(payload.device_id)
    if not device:
        raise errors.NotFoundError(f"Device with ID '{payload.device_id}' not found.")
    return device


@router.post(
    "",
    response_model=DeviceRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_device(payload: DeviceCreate):
    device = repository.create_device(payload.device_id, payload.name, payload.location)
    if not device:
        raise errors.ConflictError(f"Device with ID '{payload.device_id}' already exists.")
    return device


@router.get("", response_model=List[DeviceRead], dependencies=[Depends(get_current_user)])
def list_devices():
    return repository.list_devices()


@router.get("/{device_id}", response_model=DeviceRead, dependencies=[Depends(get_current_user)])
def get_device(device_id: str):
    device = repository.get_device(device_id)
    if not device:
        raise errors.NotFoundError("Device not found.")
    return device


@router.put("/{device_id}", response_model=DeviceRead, dependencies=[Depends(require_admin)])
def update_device(device_id: str, payload: DeviceUpdate):
    device = repository.update_device(device_id, name=payload.name, location=payload.location)
    if not device:
        raise errors.NotFoundError("Device not found.")
    return device


@router.delete("/{device_id}", response_model=DeviceRead, dependencies=[Depends(require_admin)])
def delete_device(device_id: str):
    device = repository.delete_device(device_id)
    if not device:
        raise errors.NotFoundError("Device not found.")
    log.info("Device %s deleted", device_id)
    return device
