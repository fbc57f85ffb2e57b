from pydantic import BaseModel


class DashboardStats(BaseModel):
    positive_last_24h: int
    total_last_24h: int
    active_devices: int
    total_devices: int
