"""
Cough event lifecycle: intake, classification results, review and removal.

Status moves from ANALYZING to POSITIVE_TB or NEGATIVE_TB once a verdict
arrives; detection_result is set together with the status. A positive
verdict always produces a staff notification.
"""

import logging
import math
from datetime import date, datetime, time, timezone
from typing import Any, Iterable, List, Optional, Union

from ..core import errors
from ..repositories import db_models, repository
from ..schemas import (
    CoughEventCreate,
    CoughEventPage,
    CoughEventRead,
    CoughNote,
    CoughStatus,
    DetectionResult,
    DeviceSummary,
    UserSummary,
)
from . import events
from .dispatcher import ClassificationJob, ClassifierDispatcher
from .events import EventBus
from .notifications import NotificationManager
from .storage import AudioStorage, AudioUpload

logger = logging.getLogger(__name__)

DayLike = Union[date, datetime, str]


def _as_utc(value: datetime) -> datetime:
    # naive device clocks are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _as_day(value: Optional[DayLike], field: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()
    except ValueError:
        raise errors.ValidationError(f"Invalid {field}: expected an ISO 8601 date.")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_external_detection(record_id: Any, status: Any, confidence_score: Any) -> None:
    """Rejects a classifier callback before anything is looked up or written."""
    if not record_id or status is None or confidence_score is None:
        raise errors.ValidationError("Missing required fields: record_id, status, confidence_score")
    if not _is_number(status) or status not in (0, 1):
        raise errors.ValidationError("Invalid status value. Must be 0 (negative) or 1 (positive)")
    if not _is_number(confidence_score) or not 0 <= confidence_score <= 1:
        raise errors.ValidationError("Invalid confidence_score. Must be between 0 and 1")


class CoughLifecycleManager:
    def __init__(
        self,
        bus: EventBus,
        notifications: NotificationManager,
        storage: AudioStorage,
        dispatcher: ClassifierDispatcher,
    ) -> None:
        self.bus = bus
        self.notifications = notifications
        self.storage = storage
        self.dispatcher = dispatcher

    # Intake ---------------------------------------------------------------
    def submit(
        self,
        audio: Optional[AudioUpload],
        metadata: CoughEventCreate,
        user: Optional[db_models.User] = None,
    ) -> CoughEventRead:
        """Stores the recording, creates an ANALYZING record and queues classification.

        ``user`` is the logged-in submitter; device uploads pass None and must
        name their device in ``metadata``.
        """
        if audio is None or not audio.data:
            raise errors.ValidationError("An audio file is required.")

        device: Optional[db_models.Device] = None
        if metadata.device_id:
            device = repository.get_device(metadata.device_id)
            if device is None:
                raise errors.NotFoundError(f"Device with ID '{metadata.device_id}' not found.")
        elif user is None:
            raise errors.ValidationError("device_id is required for device uploads.")

        audio_key = self.storage.save(audio)
        try:
            record = repository.create_cough_event(
                audio_path=audio_key,
                timestamp=_as_utc(metadata.timestamp) if metadata.timestamp else datetime.now(timezone.utc),
                user_id=user.id if user else None,
                device_id=device.device_id if device else None,
                direction_of_arrival=metadata.direction_of_arrival,
            )
        except Exception:
            logger.exception("Could not persist cough event, removing audio %s", audio_key)
            try:
                self.storage.delete(audio_key)
            except errors.AppError:
                logger.error("Audio %s left behind after failed insert", audio_key)
            raise

        view = self._to_read([record])[0]
        logger.info("Cough event %s created (device=%s, user=%s)", record.id, record.device_id, record.user_id)
        self.bus.publish(events.COUGH_EVENT_NEW, view.model_dump(mode="json"))

        submitter_name = user.name if user else device.name
        self.dispatcher.submit(
            ClassificationJob(
                record_id=record.id,
                audio_path=str(self.storage.path_for(audio_key)),
                submitter_name=submitter_name,
            )
        )
        return view

    # Classification results ----------------------------------------------
    def record_result(self, cough_id: str, result: DetectionResult) -> CoughEventRead:
        """Device-side verdict. Overwrites any earlier result."""
        view = self._apply_detection(cough_id, result)
        if result.is_tb_cough:
            self._notify_positive(view)
        return view

    def record_external_detection(self, record_id: str, status: int, confidence_score: float) -> CoughEventRead:
        validate_external_detection(record_id, status, confidence_score)
        result = DetectionResult(is_tb_cough=status == 1, confidence_score=float(confidence_score))
        view = self._apply_detection(record_id, result)

        self.bus.publish(
            events.COUGH_EVENT_DETECTION_COMPLETE,
            {
                "record_id": view.id,
                "status": view.status.value,
                "confidence_score": result.confidence_score,
                "submitter_name": _submitter_name(view),
            },
        )
        if status == 1:
            self._notify_positive(view)
        return view

    def _apply_detection(self, cough_id: str, result: DetectionResult) -> CoughEventRead:
        status = CoughStatus.positive_tb if result.is_tb_cough else CoughStatus.negative_tb
        record = repository.set_cough_detection(cough_id, result.model_dump(), status.value)
        if record is None:
            raise errors.NotFoundError(f"Cough event with ID '{cough_id}' not found.")
        logger.info("Cough event %s classified %s (%.2f)", cough_id, status.value, result.confidence_score)
        return self._to_read([record])[0]

    def _notify_positive(self, view: CoughEventRead) -> None:
        if view.device:
            message = f"Possible TB cough detected on device {view.device.name}."
        else:
            message = f"Possible TB cough detected in a recording from {_submitter_name(view)}."
        self.notifications.create(message=message, cough_event_id=view.id)

    # Review ---------------------------------------------------------------
    def list_events(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        status: Optional[CoughStatus] = None,
        start_date: Optional[DayLike] = None,
        end_date: Optional[DayLike] = None,
        device_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> CoughEventPage:
        page = max(1, page)
        limit = max(1, limit)
        if device_id and repository.get_device(device_id) is None:
            return CoughEventPage(events=[], total=0, page=page, pages=0)

        start_day = _as_day(start_date, "startDate")
        end_day = _as_day(end_date, "endDate")
        records, total = repository.list_cough_events(
            status=CoughStatus(status).value if status else None,
            start=datetime.combine(start_day, time.min, tzinfo=timezone.utc) if start_day else None,
            end=datetime.combine(end_day, time.max, tzinfo=timezone.utc) if end_day else None,
            device_id=device_id,
            user_id=user_id,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return CoughEventPage(events=self._to_read(records), total=total, page=page, pages=math.ceil(total / limit))

    def get_event(self, cough_id: str) -> CoughEventRead:
        return self._to_read([self._require(cough_id)])[0]

    def add_note(self, cough_id: str, content: Optional[str], author: db_models.User) -> CoughEventRead:
        if not content or not content.strip():
            raise errors.ValidationError("Note content cannot be empty.")
        record = repository.prepend_cough_note(cough_id, author.id, content.strip())
        if record is None:
            raise errors.NotFoundError(f"Cough event with ID '{cough_id}' not found.")
        return self._to_read([record])[0]

    def acknowledge_event(self, cough_id: str, actor: db_models.User) -> CoughEventRead:
        if not repository.acknowledge_cough_event(cough_id, actor.id):
            self._require(cough_id)
            raise errors.ConflictError("This cough event has already been acknowledged.")
        logger.info("Cough event %s acknowledged by %s", cough_id, actor.id)
        return self.get_event(cough_id)

    def delete_event(self, cough_id: str) -> None:
        record = self._require(cough_id)
        # a failed blob delete aborts before the row goes
        self.storage.delete(record.audio_path)
        repository.delete_cough_event(cough_id)
        logger.info("Cough event %s deleted", cough_id)

    # Helpers --------------------------------------------------------------
    def _require(self, cough_id: str) -> db_models.CoughEvent:
        record = repository.get_cough_event(cough_id)
        if record is None:
            raise errors.NotFoundError(f"Cough event with ID '{cough_id}' not found.")
        return record

    def _to_read(self, records: Iterable[db_models.CoughEvent]) -> List[CoughEventRead]:
        records = list(records)
        user_ids = set()
        for record in records:
            user_ids.update({record.user_id, record.acknowledged_by})
            user_ids.update(note.get("author_id") for note in record.notes or [])
        users = repository.get_users_by_ids(user_ids)
        devices = repository.get_devices_by_ids(r.device_id for r in records)

        def summary(user_id: Optional[str]) -> Optional[UserSummary]:
            user = users.get(user_id) if user_id else None
            return UserSummary(id=user.id, name=user.name) if user else None

        views = []
        for record in records:
            device = devices.get(record.device_id) if record.device_id else None
            views.append(
                CoughEventRead(
                    id=record.id,
                    user=summary(record.user_id),
                    device=DeviceSummary(device_id=device.device_id, name=device.name, location=device.location)
                    if device
                    else None,
                    timestamp=record.timestamp,
                    direction_of_arrival=record.direction_of_arrival,
                    audio_path=record.audio_path,
                    status=record.status,
                    detection_result=DetectionResult(**record.detection_result) if record.detection_result else None,
                    notes=[
                        CoughNote(
                            id=note["id"],
                            content=note["content"],
                            created_at=note["created_at"],
                            author=summary(note.get("author_id")),
                        )
                        for note in record.notes or []
                    ],
                    acknowledged_by=summary(record.acknowledged_by),
                    acknowledged_at=record.acknowledged_at,
                    created_at=record.created_at,
                    updated_at=record.updated_at,
                )
            )
        return views


def _submitter_name(view: CoughEventRead) -> Optional[str]:
    if view.user:
        return view.user.name
    if view.device:
        return view.device.name
    return None
