from datetime import datetime, timedelta, timezone
from typing import Optional

from ..repositories import repository
from ..schemas import DashboardStats


def get_stats(now: Optional[datetime] = None) -> DashboardStats:
    since = (now or datetime.now(timezone.utc)) - timedelta(hours=24)
    return DashboardStats(
        positive_last_24h=repository.count_cough_events_since(since, status="POSITIVE_TB"),
        total_last_24h=repository.count_cough_events_since(since),
        active_devices=repository.count_devices(status="ONLINE"),
        total_devices=repository.count_devices(),
    )
