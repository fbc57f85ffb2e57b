from fastapi import APIRouter, Depends

from ..schemas import DashboardStats
from ..services import dashboard
from .deps import get_current_user

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStats, dependencies=[Depends(get_current_user)])
def get_stats():
    return dashboard.get_stats()
