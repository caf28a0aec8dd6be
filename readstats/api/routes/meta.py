from __future__ import annotations

import platform

from fastapi import APIRouter, Depends

from ... import __version__
from ...service import StatsService
from ..deps import get_service
from ..schemas import MetaOut

router = APIRouter(prefix="/api/v1", tags=["system"])


@router.get("/meta", response_model=MetaOut)
def meta(service: StatsService = Depends(get_service)) -> MetaOut:
    store_path = getattr(service.cache.store, "path", None)
    return MetaOut(
        app="readstats",
        version=__version__,
        db_path=str(service.db.db_path),
        state_path=str(store_path) if store_path is not None else "",
        user_id=service.user_id,
        platform=platform.platform(),
    )
