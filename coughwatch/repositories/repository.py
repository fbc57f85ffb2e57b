"""
Repository helpers to persist users, devices, cough events and notifications.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import func, update
from sqlmodel import Session, col, select

from . import db, db_models

logger = logging.getLogger(__name__)


COUGH_STATUSES = {"ANALYZING", "POSITIVE_TB", "NEGATIVE_TB"}
DEVICE_STATUSES = {"ONLINE", "OFFLINE"}


def init_db() -> None:
    db.init_db()


def _now() -> datetime:
    return db_models.utcnow()


def _session() -> Session:
    return Session(db.get_engine(), expire_on_commit=False)


# Users --------------------------------------------------------------------
def create_user(*, username: str, name: str, email: Optional[str] = None, role: str = "user") -> db_models.User:
    user = db_models.User(
        id=str(uuid4()),
        username=username,
        name=name,
        email=email,
        role=role,
        created_at=_now(),
        updated_at=_now(),
    )
    with _session() as session:
        session.add(user)
        session.commit()
    return user


def get_user(user_id: str) -> Optional[db_models.User]:
    with _session() as session:
        return session.get(db_models.User, user_id)


def get_user_by_username(username: str) -> Optional[db_models.User]:
    with _session() as session:
        stmt = select(db_models.User).where(db_models.User.username == username)
        return session.exec(stmt).first()


def get_users_by_ids(user_ids: Iterable[str]) -> Dict[str, db_models.User]:
    ids = {uid for uid in user_ids if uid}
    if not ids:
        return {}
    with _session() as session:
        stmt = select(db_models.User).where(col(db_models.User.id).in_(ids))
        return {user.id: user for user in session.exec(stmt)}


# Devices ------------------------------------------------------------------
def create_device(device_id: str, name: str, location: Optional[str] = None) -> Optional[db_models.Device]:
    """Registers a device; returns None when the device_id is already taken."""
    with _session() as session:
        if session.get(db_models.Device, device_id):
            return None
        device = db_models.Device(
            device_id=device_id,
            name=name,
            location=location,
            status="OFFLINE",
            created_at=_now(),
            updated_at=_now(),
        )
        session.add(device)
        session.commit()
        logger.info("Device registered: %s (%s)", device_id, name)
        return device


def get_device(device_id: str) -> Optional[db_models.Device]:
    with _session() as session:
        return session.get(db_models.Device, device_id)


def get_devices_by_ids(device_ids: Iterable[str]) -> Dict[str, db_models.Device]:
    ids = {did for did in device_ids if did}
    if not ids:
        return {}
    with _session() as session:
        stmt = select(db_models.Device).where(col(db_models.Device.device_id).in_(ids))
        return {device.device_id: device for device in session.exec(stmt)}


def list_devices() -> List[db_models.Device]:
    with _session() as session:
        stmt = select(db_models.Device).order_by(db_models.Device.created_at.desc())
        return list(session.exec(stmt))


def update_device(device_id: str, name: Optional[str] = None, location: Optional[str] = None) -> Optional[db_models.Device]:
    with _session() as session:
        device = session.get(db_models.Device, device_id)
        if not device:
            return None
        if name is not None:
            device.name = name
        if location is not None:
            device.location = location
        device.updated_at = _now()
        session.add(device)
        session.commit()
        return device


def delete_device(device_id: str) -> Optional[db_models.Device]:
    with _session() as session:
        device = session.get(db_models.Device, device_id)
        if not device:
            return None
        # events outlive their device
        session.connection().execute(
            update(db_models.CoughEvent)
            .where(col(db_models.CoughEvent.device_id) == device_id)
            .values(device_id=None)
        )
        session.delete(device)
        session.commit()
        return device


def record_heartbeat(device_id: str) -> Optional[db_models.Device]:
    with _session() as session:
        device = session.get(db_models.Device, device_id)
        if not device:
            return None
        device.status = "ONLINE"
        device.last_heartbeat = _now()
        device.updated_at = _now()
        session.add(device)
        session.commit()
        return device


def mark_stale_devices_offline(threshold: datetime) -> List[str]:
    """Flips ONLINE devices whose last heartbeat predates threshold to OFFLINE."""
    with _session() as session:
        stmt = (
            select(db_models.Device)
            .where(db_models.Device.status == "ONLINE")
            .where(col(db_models.Device.last_heartbeat) < threshold)
        )
        candidates = list(session.exec(stmt))
        for device in candidates:
            device.status = "OFFLINE"
            device.updated_at = _now()
            session.add(device)
            session.commit()
        return [device.device_id for device in candidates]


def count_devices(status: Optional[str] = None) -> int:
    with _session() as session:
        stmt = select(func.count()).select_from(db_models.Device)
        if status:
            stmt = stmt.where(db_models.Device.status == status)
        return session.exec(stmt).one()


# Cough events -------------------------------------------------------------
def create_cough_event(
    *,
    audio_path: str,
    timestamp: datetime,
    user_id: Optional[str] = None,
    device_id: Optional[str] = None,
    direction_of_arrival: Optional[float] = None,
) -> db_models.CoughEvent:
    event = db_models.CoughEvent(
        id=str(uuid4()),
        user_id=user_id,
        device_id=device_id,
        timestamp=timestamp,
        direction_of_arrival=direction_of_arrival,
        audio_path=audio_path,
        status="ANALYZING",
        notes=[],
        created_at=_now(),
        updated_at=_now(),
    )
    with _session() as session:
        session.add(event)
        session.commit()
    return event


def get_cough_event(event_id: str) -> Optional[db_models.CoughEvent]:
    with _session() as session:
        return session.get(db_models.CoughEvent, event_id)


def get_cough_events_by_ids(event_ids: Iterable[str]) -> Dict[str, db_models.CoughEvent]:
    ids = {eid for eid in event_ids if eid}
    if not ids:
        return {}
    with _session() as session:
        stmt = select(db_models.CoughEvent).where(col(db_models.CoughEvent.id).in_(ids))
        return {event.id: event for event in session.exec(stmt)}


def set_cough_detection(event_id: str, detection_result: Dict[str, Any], status: str) -> Optional[db_models.CoughEvent]:
    if status not in COUGH_STATUSES:
        raise ValueError(f"Invalid cough status: {status}")
    with _session() as session:
        event = session.get(db_models.CoughEvent, event_id)
        if not event:
            return None
        event.detection_result = dict(detection_result)
        event.status = status
        event.updated_at = _now()
        session.add(event)
        session.commit()
        return event


def prepend_cough_note(event_id: str, author_id: str, content: str) -> Optional[db_models.CoughEvent]:
    with _session() as session:
        event = session.get(db_models.CoughEvent, event_id)
        if not event:
            return None
        note = {
            "id": str(uuid4()),
            "author_id": author_id,
            "content": content,
            "created_at": _now().isoformat(),
        }
        # reassign so the JSON column is flagged dirty
        event.notes = [note] + list(event.notes or [])
        event.updated_at = _now()
        session.add(event)
        session.commit()
        return event


def acknowledge_cough_event(event_id: str, user_id: str) -> bool:
    """Sets the acknowledger only if none is set yet; False when nothing changed."""
    stmt = (
        update(db_models.CoughEvent)
        .where(col(db_models.CoughEvent.id) == event_id)
        .where(col(db_models.CoughEvent.acknowledged_by).is_(None))
        .values(acknowledged_by=user_id, acknowledged_at=_now(), updated_at=_now())
    )
    with _session() as session:
        result = session.connection().execute(stmt)
        session.commit()
        return result.rowcount == 1


def delete_cough_event(event_id: str) -> bool:
    with _session() as session:
        event = session.get(db_models.CoughEvent, event_id)
        if not event:
            return False
        session.delete(event)
        session.commit()
        return True


def list_cough_events(
    *,
    status: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    device_id: Optional[str] = None,
    user_id: Optional[str] = None,
    offset: int = 0,
    limit: int = 10,
) -> Tuple[List[db_models.CoughEvent], int]:
    conditions = []
    if status:
        conditions.append(db_models.CoughEvent.status == status)
    if start:
        conditions.append(col(db_models.CoughEvent.timestamp) >= start)
    if end:
        conditions.append(col(db_models.CoughEvent.timestamp) <= end)
    if device_id:
        conditions.append(db_models.CoughEvent.device_id == device_id)
    if user_id:
        conditions.append(db_models.CoughEvent.user_id == user_id)

    with _session() as session:
        stmt = select(db_models.CoughEvent)
        count_stmt = select(func.count()).select_from(db_models.CoughEvent)
        for condition in conditions:
            stmt = stmt.where(condition)
            count_stmt = count_stmt.where(condition)
        stmt = stmt.order_by(db_models.CoughEvent.timestamp.desc()).offset(offset).limit(limit)
        return list(session.exec(stmt)), session.exec(count_stmt).one()


def count_cough_events_since(since: datetime, status: Optional[str] = None) -> int:
    with _session() as session:
        stmt = select(func.count()).select_from(db_models.CoughEvent)
        stmt = stmt.where(col(db_models.CoughEvent.created_at) >= since)
        if status:
            stmt = stmt.where(db_models.CoughEvent.status == status)
        return session.exec(stmt).one()


# Notifications ------------------------------------------------------------
def create_notification(*, type: str, message: str, cough_event_id: str) -> db_models.CoughNotification:
    notification = db_models.CoughNotification(
        id=str(uuid4()),
        type=type,
        message=message,
        cough_event_id=cough_event_id,
        created_at=_now(),
    )
    with _session() as session:
        session.add(notification)
        session.commit()
    return notification


def get_notification(notification_id: str) -> Optional[db_models.CoughNotification]:
    with _session() as session:
        return session.get(db_models.CoughNotification, notification_id)


def list_unread_notifications() -> List[db_models.CoughNotification]:
    with _session() as session:
        stmt = select(db_models.CoughNotification).where(col(db_models.CoughNotification.read_by).is_(None))
        stmt = stmt.order_by(db_models.CoughNotification.created_at.desc())
        return list(session.exec(stmt))


def mark_notification_read(notification_id: str, user_id: str) -> bool:
    """Conditional write: only the first reader is recorded. False when no row changed."""
    stmt = (
        update(db_models.CoughNotification)
        .where(col(db_models.CoughNotification.id) == notification_id)
        .where(col(db_models.CoughNotification.read_by).is_(None))
        .values(read_by=user_id, read_at=_now())
    )
    with _session() as session:
        result = session.connection().execute(stmt)
        session.commit()
        return result.rowcount == 1
