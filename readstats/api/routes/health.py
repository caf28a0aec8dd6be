from __future__ import annotations

from fastapi import APIRouter, Depends

from ...service import StatsService
from ..deps import get_service
from ..schemas import HealthOut

router = APIRouter(prefix="/api/v1", tags=["system"])


@router.get("/health", response_model=HealthOut)
def health(service: StatsService = Depends(get_service)) -> HealthOut:
    last = service.cache.get_last_update()
    age = (service.clock.now() - last).total_seconds() if last is not None else None
    return HealthOut(user_id=service.user_id, cache_age_sec=age)
