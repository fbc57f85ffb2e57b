import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from ..core.config import settings
from ..repositories import repository

logger = logging.getLogger(__name__)


def mark_offline_devices(threshold_seconds: Optional[int] = None, now: Optional[datetime] = None) -> List[str]:
    """Flips ONLINE devices with a stale heartbeat to OFFLINE and returns their ids."""
    seconds = settings.offline_threshold_seconds if threshold_seconds is None else threshold_seconds
    threshold = (now or datetime.now(timezone.utc)) - timedelta(seconds=seconds)
    changed = repository.mark_stale_devices_offline(threshold)
    if changed:
        logger.info("Marked %d devices OFFLINE: %s", len(changed), ", ".join(changed))
    return changed


async def offline_sweep_loop(interval_seconds: float) -> None:
    """Runs the offline sweep forever; cancel the task to stop it."""
    logger.info("Offline sweep every %ss", interval_seconds)
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(mark_offline_devices)
        except Exception:
            logger.exception("Offline sweep failed")
