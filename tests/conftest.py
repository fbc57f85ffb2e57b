from datetime import datetime, timedelta
from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient

from coughwatch.core.config import settings
from coughwatch.repositories import db, repository
from coughwatch.services.coughs import CoughLifecycleManager
from coughwatch.services.events import EventBus
from coughwatch.services.notifications import NotificationManager
from coughwatch.services.storage import AudioStorage, AudioUpload

DEVICE_KEY = "device-secret"
WAV_BYTES = b"RIFF\x24\x00\x00\x00WAVEfmt " + b"\x00" * 28


class FakeDispatcher:
    def __init__(self):
        self.jobs = []

    def submit(self, job):
        self.jobs.append(job)
        return True


class SpyStorage(AudioStorage):
    def __init__(self, root):
        super().__init__(root)
        self.deleted = []

    def delete(self, key):
        self.deleted.append(key)
        super().delete(key)


@pytest.fixture(autouse=True)
def database(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "classifier_url", "")
    monkeypatch.setattr(settings, "device_api_key", DEVICE_KEY)
    monkeypatch.setattr(settings, "offline_sweep_interval_seconds", 0)
    engine = db.configure_engine(f"sqlite:///{tmp_path / 'test.db'}")
    repository.init_db()
    yield engine
    engine.dispose()


@pytest.fixture
def published() -> List[Tuple[str, dict]]:
    return []


@pytest.fixture
def bus(published) -> EventBus:
    bus = EventBus()
    bus.add_listener(lambda event, data: published.append((event, data)))
    return bus


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def storage(tmp_path) -> SpyStorage:
    return SpyStorage(str(tmp_path / "uploads"))


@pytest.fixture
def notifications(bus) -> NotificationManager:
    return NotificationManager(bus)


@pytest.fixture
def coughs(bus, notifications, storage, dispatcher) -> CoughLifecycleManager:
    return CoughLifecycleManager(bus=bus, notifications=notifications, storage=storage, dispatcher=dispatcher)


@pytest.fixture
def device():
    return repository.create_device("D1", "Ward A microphone", "Ward A")


@pytest.fixture
def staff():
    return repository.create_user(username="nurse_a", name="Nurse A")


@pytest.fixture
def other_staff():
    return repository.create_user(username="nurse_b", name="Nurse B")


@pytest.fixture
def admin():
    return repository.create_user(username="admin", name="Admin", role="admin")


@pytest.fixture
def client():
    from coughwatch.main import app

    with TestClient(app) as test_client:
        yield test_client


def audio_upload(name: str = "cough.wav") -> AudioUpload:
    return AudioUpload(filename=name, content_type="audio/wav", data=WAV_BYTES)


def seed_events(count: int, start: datetime, step: timedelta = timedelta(minutes=1), **fields):
    return [
        repository.create_cough_event(audio_path=f"seed-{i}.wav", timestamp=start + step * i, **fields)
        for i in range(count)
    ]
