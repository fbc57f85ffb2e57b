from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from coughwatch.core import errors
from coughwatch.repositories import repository
from coughwatch.schemas import CoughEventCreate, CoughStatus, DetectionResult

from conftest import audio_upload, seed_events


def _submit(coughs, device, **metadata):
    return coughs.submit(audio_upload(), CoughEventCreate(device_id=device.device_id, **metadata))


# Intake -------------------------------------------------------------------
def test_submit_creates_analyzing_event_and_queues_classification(coughs, device, dispatcher, published, storage):
    event = _submit(coughs, device, direction_of_arrival=42.5)

    assert event.status == CoughStatus.analyzing
    assert event.detection_result is None
    assert event.device.device_id == "D1"
    assert event.direction_of_arrival == 42.5
    assert storage.path_for(event.audio_path).read_bytes().startswith(b"RIFF")

    assert [name for name, _ in published] == ["cough_event:new"]
    assert published[0][1]["id"] == event.id

    assert len(dispatcher.jobs) == 1
    job = dispatcher.jobs[0]
    assert job.record_id == event.id
    assert job.submitter_name == "Ward A microphone"
    assert Path(job.audio_path).exists()


def test_submit_as_user_owns_event_and_sends_user_name(coughs, staff, dispatcher):
    event = coughs.submit(audio_upload(), CoughEventCreate(), user=staff)

    assert event.user.id == staff.id
    assert event.device is None
    assert dispatcher.jobs[0].submitter_name == "Nurse A"


def test_submit_requires_audio(coughs, device):
    with pytest.raises(errors.ValidationError):
        coughs.submit(None, CoughEventCreate(device_id=device.device_id))


def test_submit_unknown_device_stores_nothing(coughs, storage, dispatcher):
    with pytest.raises(errors.NotFoundError):
        coughs.submit(audio_upload(), CoughEventCreate(device_id="ghost"))

    assert not storage.root.exists() or not any(storage.root.iterdir())
    assert dispatcher.jobs == []


def test_device_upload_without_device_id_rejected(coughs):
    with pytest.raises(errors.ValidationError):
        coughs.submit(audio_upload(), CoughEventCreate())


def test_failed_insert_removes_stored_audio(coughs, device, storage, dispatcher, published, monkeypatch):
    def broken_insert(**kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(repository, "create_cough_event", broken_insert)

    with pytest.raises(RuntimeError):
        _submit(coughs, device)

    assert len(storage.deleted) == 1
    assert not any(storage.root.iterdir())
    assert published == []
    assert dispatcher.jobs == []


def test_timestamps_round_trip_as_utc(coughs, device):
    captured = datetime(2024, 5, 1, 14, 30, tzinfo=timezone(timedelta(hours=2)))
    event = _submit(coughs, device, timestamp=captured)

    stored = coughs.get_event(event.id)

    assert stored.timestamp == captured
    assert stored.timestamp.utcoffset() == timedelta(0)
    assert stored.created_at.utcoffset() == timedelta(0)
    assert stored.created_at == event.created_at

    naive = _submit(coughs, device, timestamp=datetime(2024, 5, 1, 12, 30))
    assert coughs.get_event(naive.id).timestamp == datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


def test_dispatch_failure_does_not_affect_submit(coughs, device, dispatcher):
    def refuse(job):
        return False

    dispatcher.submit = refuse
    event = _submit(coughs, device)

    assert coughs.get_event(event.id).status == CoughStatus.analyzing


# Classification -------------------------------------------------------------
def test_external_detection_positive_creates_one_notification(coughs, device, notifications, published):
    event = _submit(coughs, device)
    published.clear()

    updated = coughs.record_external_detection(event.id, 1, 0.92)

    assert updated.status == CoughStatus.positive_tb
    assert updated.detection_result == DetectionResult(is_tb_cough=True, confidence_score=0.92)
    unread = notifications.list_unread()
    assert unread.unread_count == 1
    assert unread.notifications[0].cough_event_id == event.id
    assert unread.notifications[0].cough_event.device_name == "Ward A microphone"

    names = [name for name, _ in published]
    assert names == ["cough_event:detection_complete", "cough_notification:new"]
    assert published[0][1] == {
        "record_id": event.id,
        "status": "POSITIVE_TB",
        "confidence_score": 0.92,
        "submitter_name": "Ward A microphone",
    }


def test_external_detection_negative_creates_no_notification(coughs, device, notifications):
    event = _submit(coughs, device)

    updated = coughs.record_external_detection(event.id, 0, 0.1)

    assert updated.status == CoughStatus.negative_tb
    assert updated.detection_result.is_tb_cough is False
    assert notifications.list_unread().unread_count == 0


@pytest.mark.parametrize(
    "status,confidence",
    [(2, 0.5), (-1, 0.5), ("1", 0.5), (True, 0.5), (1, 1.5), (0, -0.1), (1, "0.9"), (None, 0.5), (1, None)],
)
def test_external_detection_rejects_bad_input_without_mutation(coughs, device, notifications, status, confidence):
    event = _submit(coughs, device)

    with pytest.raises(errors.ValidationError):
        coughs.record_external_detection(event.id, status, confidence)

    stored = coughs.get_event(event.id)
    assert stored.status == CoughStatus.analyzing
    assert stored.detection_result is None
    assert notifications.list_unread().unread_count == 0


def test_external_detection_missing_record_id(coughs):
    with pytest.raises(errors.ValidationError):
        coughs.record_external_detection("", 1, 0.5)


def test_external_detection_unknown_record(coughs):
    with pytest.raises(errors.NotFoundError):
        coughs.record_external_detection("missing", 1, 0.5)


def test_record_result_positive_and_negative(coughs, device, notifications):
    positive = _submit(coughs, device)
    negative = _submit(coughs, device)

    coughs.record_result(positive.id, DetectionResult(is_tb_cough=True, confidence_score=0.8))
    coughs.record_result(negative.id, DetectionResult(is_tb_cough=False, confidence_score=0.3))

    assert coughs.get_event(positive.id).status == CoughStatus.positive_tb
    assert coughs.get_event(negative.id).status == CoughStatus.negative_tb
    unread = notifications.list_unread()
    assert [n.cough_event_id for n in unread.notifications] == [positive.id]


def test_record_result_overwrites_previous_verdict(coughs, device, notifications):
    event = _submit(coughs, device)

    coughs.record_result(event.id, DetectionResult(is_tb_cough=True, confidence_score=0.8))
    coughs.record_result(event.id, DetectionResult(is_tb_cough=True, confidence_score=0.9))
    coughs.record_result(event.id, DetectionResult(is_tb_cough=False, confidence_score=0.4))

    stored = coughs.get_event(event.id)
    assert stored.status == CoughStatus.negative_tb
    assert stored.detection_result.confidence_score == 0.4
    assert notifications.list_unread().unread_count == 2


def test_record_result_unknown_event(coughs):
    with pytest.raises(errors.NotFoundError):
        coughs.record_result("missing", DetectionResult(is_tb_cough=True, confidence_score=0.5))


# Listing ------------------------------------------------------------------
def test_list_unknown_device_returns_empty_page(coughs, device):
    seed_events(3, datetime(2024, 1, 1, tzinfo=timezone.utc), device_id=device.device_id)

    page = coughs.list_events(device_id="ghost", status=CoughStatus.analyzing, start_date="2024-01-01")

    assert page.events == []
    assert page.total == 0
    assert page.pages == 0


def test_list_pagination(coughs):
    seed_events(25, datetime(2024, 1, 1, tzinfo=timezone.utc))

    page = coughs.list_events(page=3, limit=10)

    assert len(page.events) == 5
    assert page.total == 25
    assert page.pages == 3
    assert page.page == 3


def test_list_most_recent_first(coughs):
    seeded = seed_events(3, datetime(2024, 1, 1, tzinfo=timezone.utc))

    page = coughs.list_events()

    assert [e.id for e in page.events] == [e.id for e in reversed(seeded)]


def test_list_date_range_covers_whole_days(coughs):
    repository.create_cough_event(audio_path="a.wav", timestamp=datetime(2024, 2, 29, 23, 59, 59, tzinfo=timezone.utc))
    inside_start = repository.create_cough_event(audio_path="b.wav", timestamp=datetime(2024, 3, 1, 0, 0, 0, tzinfo=timezone.utc))
    inside_end = repository.create_cough_event(audio_path="c.wav", timestamp=datetime(2024, 3, 2, 23, 59, 59, tzinfo=timezone.utc))
    repository.create_cough_event(audio_path="d.wav", timestamp=datetime(2024, 3, 3, 0, 0, 1, tzinfo=timezone.utc))

    page = coughs.list_events(start_date="2024-03-01", end_date="2024-03-02T08:00:00Z")

    assert {e.id for e in page.events} == {inside_start.id, inside_end.id}


def test_list_rejects_malformed_dates(coughs):
    with pytest.raises(errors.ValidationError):
        coughs.list_events(start_date="yesterday")


def test_list_filters_by_status_device_and_user(coughs, device, staff):
    other = repository.create_device("D2", "Ward B microphone")
    mine = seed_events(2, datetime(2024, 1, 1, tzinfo=timezone.utc), device_id=device.device_id, user_id=staff.id)
    seed_events(2, datetime(2024, 1, 1, tzinfo=timezone.utc), device_id=other.device_id)
    repository.set_cough_detection(mine[0].id, {"is_tb_cough": True, "confidence_score": 0.7}, "POSITIVE_TB")

    assert coughs.list_events(device_id="D1").total == 2
    assert coughs.list_events(user_id=staff.id).total == 2
    positives = coughs.list_events(status=CoughStatus.positive_tb)
    assert [e.id for e in positives.events] == [mine[0].id]


# Review -------------------------------------------------------------------
def test_get_unknown_event(coughs):
    with pytest.raises(errors.NotFoundError):
        coughs.get_event("missing")


def test_add_note_prepends_with_author(coughs, device, staff, other_staff):
    event = _submit(coughs, device)

    coughs.add_note(event.id, "first look", staff)
    updated = coughs.add_note(event.id, "follow up booked", other_staff)

    assert [n.content for n in updated.notes] == ["follow up booked", "first look"]
    assert updated.notes[0].author.name == "Nurse B"
    assert coughs.get_event(event.id).notes[1].author.id == staff.id


@pytest.mark.parametrize("content", ["", "   ", None])
def test_add_note_rejects_empty_content(coughs, device, staff, content):
    event = _submit(coughs, device)
    before = coughs.get_event(event.id)

    with pytest.raises(errors.ValidationError):
        coughs.add_note(event.id, content, staff)

    after = coughs.get_event(event.id)
    assert after.notes == []
    assert after.updated_at == before.updated_at


def test_add_note_unknown_event(coughs, staff):
    with pytest.raises(errors.NotFoundError):
        coughs.add_note("missing", "hello", staff)


def test_acknowledge_event_first_wins(coughs, device, staff, other_staff):
    event = _submit(coughs, device)

    acknowledged = coughs.acknowledge_event(event.id, staff)
    assert acknowledged.acknowledged_by.id == staff.id
    assert acknowledged.acknowledged_at is not None

    with pytest.raises(errors.ConflictError):
        coughs.acknowledge_event(event.id, other_staff)
    with pytest.raises(errors.NotFoundError):
        coughs.acknowledge_event("missing", staff)


def test_delete_removes_record_and_audio_once(coughs, device, storage):
    event = _submit(coughs, device)
    audio = storage.path_for(event.audio_path)

    coughs.delete_event(event.id)

    assert storage.deleted == [event.audio_path]
    assert not audio.exists()
    with pytest.raises(errors.NotFoundError):
        coughs.get_event(event.id)


def test_delete_keeps_record_when_audio_cannot_be_removed(coughs, device, storage, monkeypatch):
    event = _submit(coughs, device)

    def fail(key):
        raise errors.InternalError("disk gone")

    monkeypatch.setattr(storage, "delete", fail)

    with pytest.raises(errors.InternalError):
        coughs.delete_event(event.id)
    assert coughs.get_event(event.id).id == event.id


def test_delete_tolerates_missing_audio(coughs, device, storage):
    event = _submit(coughs, device)
    storage.path_for(event.audio_path).unlink()

    coughs.delete_event(event.id)

    assert repository.get_cough_event(event.id) is None


def test_delete_unknown_event(coughs, storage):
    with pytest.raises(errors.NotFoundError):
        coughs.delete_event("missing")
    assert storage.deleted == []


def test_positive_tb_review_scenario(coughs, notifications, device, staff, other_staff):
    event = _submit(coughs, device)
    assert event.status == CoughStatus.analyzing

    coughs.record_external_detection(event.id, 1, 0.92)

    stored = coughs.get_event(event.id)
    assert stored.status == CoughStatus.positive_tb
    assert stored.detection_result == DetectionResult(is_tb_cough=True, confidence_score=0.92)

    unread = notifications.list_unread()
    assert [n.cough_event_id for n in unread.notifications] == [event.id]
    notification_id = unread.notifications[0].id

    notifications.acknowledge(notification_id, staff)
    with pytest.raises(errors.ConflictError):
        notifications.acknowledge(notification_id, other_staff)

    assert notifications.list_unread().unread_count == 0
    assert repository.get_notification(notification_id).read_by == staff.id

