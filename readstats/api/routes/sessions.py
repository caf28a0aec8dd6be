from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ...service import StatsService
from ..deps import get_service
from ..schemas import ActiveSessionIn, ActiveSessionOut, SessionIn, SessionOut

router = APIRouter(prefix="/api/v1", tags=["sessions"])


@router.get("/sessions", response_model=list[SessionOut])
def list_sessions(
    limit: int = Query(default=30, ge=1, le=2000),
    service: StatsService = Depends(get_service),
) -> list[SessionOut]:
    items = service.db.list_sessions(service.user_id)[:limit]
    return [SessionOut(**vars(item)) for item in items]


@router.post("/sessions", response_model=SessionOut, status_code=201)
def add_session(payload: SessionIn, service: StatsService = Depends(get_service)) -> SessionOut:
    session = service.record_session(payload.model_dump(exclude_none=True))
    return SessionOut(**vars(session))


@router.get("/sessions/active", response_model=ActiveSessionOut)
def get_active_session(service: StatsService = Depends(get_service)) -> ActiveSessionOut:
    active = service.active_session()
    if active is None:
        raise HTTPException(status_code=404, detail="no active session")
    return ActiveSessionOut.model_validate(active)


@router.put("/sessions/active", response_model=ActiveSessionOut)
def update_active_session(
    payload: ActiveSessionIn,
    service: StatsService = Depends(get_service),
) -> ActiveSessionOut:
    active = service.update_active_session(payload.model_dump(exclude_none=True))
    return ActiveSessionOut.model_validate(active)


@router.post("/sessions/active/end", response_model=SessionOut)
def end_active_session(service: StatsService = Depends(get_service)) -> SessionOut:
    session = service.end_active_session()
    if session is None:
        raise HTTPException(status_code=404, detail="no active session")
    return SessionOut(**vars(session))


@router.delete("/sessions/active", status_code=204)
def cancel_active_session(service: StatsService = Depends(get_service)) -> Response:
    if not service.cancel_active_session():
        raise HTTPException(status_code=404, detail="no active session")
    return Response(status_code=204)
