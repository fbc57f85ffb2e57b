import logging
from typing import Dict, Iterable, List, Optional

from ..core import errors
from ..repositories import db_models, repository
from ..schemas import NotificationEventContext, NotificationRead, NotificationType, UnreadNotifications
from . import events
from .events import EventBus

logger = logging.getLogger(__name__)


class NotificationManager:
    """Creates positive-result notifications and enforces first-acknowledgment-wins."""

    def __init__(self, bus: EventBus) -> None:
        self.bus = bus

    def create(
        self,
        *,
        message: str,
        cough_event_id: str,
        type: NotificationType = NotificationType.positive_tb_result,
    ) -> NotificationRead:
        record = repository.create_notification(
            type=NotificationType(type).value, message=message, cough_event_id=cough_event_id
        )
        view = self._to_read([record])[0]
        logger.info("Notification %s created for cough event %s", record.id, cough_event_id)
        self.bus.publish(events.COUGH_NOTIFICATION_NEW, view.model_dump(mode="json"))
        return view

    def list_unread(self) -> UnreadNotifications:
        records = repository.list_unread_notifications()
        return UnreadNotifications(notifications=self._to_read(records), unread_count=len(records))

    def acknowledge(self, notification_id: str, actor: db_models.User) -> Dict[str, str]:
        if not repository.mark_notification_read(notification_id, actor.id):
            if repository.get_notification(notification_id) is None:
                raise errors.NotFoundError("Notification not found.")
            logger.info("User %s lost the race to acknowledge %s", actor.id, notification_id)
            raise errors.ConflictError("This notification has already been acknowledged by another user.")

        logger.info("Notification %s acknowledged by %s", notification_id, actor.id)
        self.bus.publish(
            events.COUGH_NOTIFICATION_ACKNOWLEDGED,
            {"notification_id": notification_id, "user": {"id": actor.id, "name": actor.name}},
        )
        return {"message": "Notification acknowledged successfully."}

    def _to_read(self, records: Iterable[db_models.CoughNotification]) -> List[NotificationRead]:
        records = list(records)
        cough_events = repository.get_cough_events_by_ids(r.cough_event_id for r in records)
        devices = repository.get_devices_by_ids(e.device_id for e in cough_events.values())
        views = []
        for record in records:
            context: Optional[NotificationEventContext] = None
            cough_event = cough_events.get(record.cough_event_id)
            if cough_event is not None:
                device = devices.get(cough_event.device_id) if cough_event.device_id else None
                context = NotificationEventContext(
                    id=cough_event.id,
                    timestamp=cough_event.timestamp,
                    status=cough_event.status,
                    device_name=device.name if device else None,
                )
            views.append(
                NotificationRead(
                    id=record.id,
                    type=record.type,
                    message=record.message,
                    cough_event_id=record.cough_event_id,
                    cough_event=context,
                    read_by=record.read_by,
                    read_at=record.read_at,
                    created_at=record.created_at,
                )
            )
        return views
