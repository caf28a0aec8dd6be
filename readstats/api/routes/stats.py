from __future__ import annotations

from fastapi import APIRouter, Depends

from ...events import STATS_REFRESH
from ...service import StatsService
from ..deps import get_service
from ..schemas import SnapshotOut, StreakOut

router = APIRouter(prefix="/api/v1", tags=["stats"])


@router.get("/stats", response_model=SnapshotOut)
def get_stats(refresh: bool = False, service: StatsService = Depends(get_service)) -> SnapshotOut:
    snapshot = service.load(force=refresh)
    return SnapshotOut(**snapshot.to_dict())


@router.get("/stats/streak", response_model=StreakOut)
def get_streak(service: StatsService = Depends(get_service)) -> StreakOut:
    return StreakOut(streak=service.streak())


@router.post("/stats/invalidate", response_model=SnapshotOut)
def invalidate_stats(service: StatsService = Depends(get_service)) -> SnapshotOut:
    service.bus.emit(STATS_REFRESH, {"source": "api"})
    return SnapshotOut(**service.load().to_dict())
