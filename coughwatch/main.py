import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .adapters.classifier import ClassifierClient
from .api import coughs, dashboard, devices, notifications, realtime, users
from .core.config import settings
from .repositories import repository
from .services.coughs import CoughLifecycleManager
from .services.devices import offline_sweep_loop
from .services.dispatcher import ClassifierDispatcher
from .services.events import EventBus
from .services.notifications import NotificationManager
from .services.storage import AudioStorage

logging.basicConfig(level=settings.log_level, format="%(asctime)s [%(levelname)s] %(message)s")
log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wires the bus, storage and classifier dispatcher into the managers."""
    try:
        repository.init_db()
        Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
        bus = EventBus()
        storage = AudioStorage(settings.upload_dir)
        dispatcher = ClassifierDispatcher(ClassifierClient())
        dispatcher.start()
        notification_manager = NotificationManager(bus)
        app.state.bus = bus
        app.state.dispatcher = dispatcher
        app.state.notifications = notification_manager
        app.state.coughs = CoughLifecycleManager(
            bus=bus, notifications=notification_manager, storage=storage, dispatcher=dispatcher
        )
    except Exception:  # pragma: no cover
        log.exception("Startup error")
        raise

    sweep = None
    if settings.offline_sweep_interval_seconds > 0:
        sweep = asyncio.create_task(offline_sweep_loop(settings.offline_sweep_interval_seconds))
    try:
        yield
    finally:
        if sweep:
            sweep.cancel()
            with suppress(asyncio.CancelledError):
                await sweep
        await asyncio.to_thread(dispatcher.stop)


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


app.include_router(coughs.router)
app.include_router(notifications.router)
app.include_router(devices.router)
app.include_router(users.router)
app.include_router(dashboard.router)
app.include_router(realtime.router)

app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")
