import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from ..core import errors
from ..core.config import settings
from ..repositories import db_models
from ..schemas import (
    CoughEventCreate,
    CoughEventPage,
    CoughEventRead,
    CoughStatus,
    DetectionResult,
    ExternalDetectionCallback,
    NoteCreate,
)
from ..services.coughs import CoughLifecycleManager
from ..services.storage import AudioUpload
from .deps import get_coughs, get_current_user, require_admin, require_device_key

router = APIRouter(prefix="/coughs", tags=["coughs"])
log = logging.getLogger(__name__)

ALLOWED_AUDIO_TYPES = {"audio/mpeg", "audio/wav", "audio/wave", "audio/x-wav"}


def _read_upload(audio: Optional[UploadFile]) -> Optional[AudioUpload]:
    if audio is None:
        return None
    if audio.content_type not in ALLOWED_AUDIO_TYPES:
        raise errors.ValidationError("Invalid file type. Only WAV or MP3 audio is allowed.")
    data = audio.file.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise errors.ValidationError(f"Audio file exceeds {settings.max_upload_bytes} bytes.")
    return AudioUpload(filename=audio.filename or "audio.wav", content_type=audio.content_type, data=data)


def _submit(
    coughs: CoughLifecycleManager,
    audio: Optional[UploadFile],
    metadata: CoughEventCreate,
    user: Optional[db_models.User],
) -> CoughEventRead:
    upload = _read_upload(audio)
    try:
        return coughs.submit(upload, metadata, user=user)
    except errors.AppError:
        raise
    except Exception as exc:
        log.exception("Error recording cough event")
        raise errors.InternalError("Could not record the cough event.") from exc


@router.post(
    "/upload",
    response_model=CoughEventRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_device_key)],
)
def upload_from_device(
    audio: Optional[UploadFile] = File(default=None),
    device_id: Optional[str] = Form(default=None),
    timestamp: Optional[datetime] = Form(default=None),
    direction_of_arrival: Optional[float] = Form(default=None),
    coughs: CoughLifecycleManager = Depends(get_coughs),
):
    """Edge devices post a detected cough here, authenticated with X-API-Key."""
    metadata = CoughEventCreate(device_id=device_id, timestamp=timestamp, direction_of_arrival=direction_of_arrival)
    return _submit(coughs, audio, metadata, user=None)


@router.post("", response_model=CoughEventRead, status_code=status.HTTP_201_CREATED)
def upload_from_user(
    audio: Optional[UploadFile] = File(default=None),
    device_id: Optional[str] = Form(default=None),
    timestamp: Optional[datetime] = Form(default=None),
    direction_of_arrival: Optional[float] = Form(default=None),
    user: db_models.User = Depends(get_current_user),
    coughs: CoughLifecycleManager = Depends(get_coughs),
):
    metadata = CoughEventCreate(device_id=device_id, timestamp=timestamp, direction_of_arrival=direction_of_arrival)
    return _submit(coughs, audio, metadata, user=user)


@router.patch("/detection", response_model=CoughEventRead)
def receive_detection(payload: ExternalDetectionCallback, coughs: CoughLifecycleManager = Depends(get_coughs)):
    """Callback from the external classifier: status 0/1 and a confidence in [0, 1]."""
    return coughs.record_external_detection(payload.record_id, payload.status, payload.confidence_score)


@router.patch("/{cough_id}/result", response_model=CoughEventRead, dependencies=[Depends(require_device_key)])
def update_result(cough_id: str, payload: DetectionResult, coughs: CoughLifecycleManager = Depends(get_coughs)):
    return coughs.record_result(cough_id, payload)


@router.get("", response_model=CoughEventPage, dependencies=[Depends(get_current_user)])
def list_coughs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    status: Optional[CoughStatus] = Query(default=None),
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    device_id: Optional[str] = Query(default=None, alias="deviceId"),
    user_id: Optional[str] = Query(default=None, alias="userId"),
    coughs: CoughLifecycleManager = Depends(get_coughs),
):
    return coughs.list_events(
        page=page,
        limit=limit,
        status=status,
        start_date=start_date,
        end_date=end_date,
        device_id=device_id,
        user_id=user_id,
    )


@router.get("/{cough_id}", response_model=CoughEventRead, dependencies=[Depends(get_current_user)])
def get_cough(cough_id: str, coughs: CoughLifecycleManager = Depends(get_coughs)):
    return coughs.get_event(cough_id)


@router.post("/{cough_id}/notes", response_model=CoughEventRead)
def add_note(
    cough_id: str,
    payload: NoteCreate,
    user: db_models.User = Depends(get_current_user),
    coughs: CoughLifecycleManager = Depends(get_coughs),
):
    return coughs.add_note(cough_id, payload.content, user)


@router.patch("/{cough_id}/acknowledge", response_model=CoughEventRead)
def acknowledge_cough(
    cough_id: str,
    user: db_models.User = Depends(get_current_user),
    coughs: CoughLifecycleManager = Depends(get_coughs),
):
    return coughs.acknowledge_event(cough_id, user)


@router.delete("/{cough_id}", dependencies=[Depends(require_admin)])
def delete_cough(cough_id: str, coughs: CoughLifecycleManager = Depends(get_coughs)):
    coughs.delete_event(cough_id)
    return {"status": "deleted"}
