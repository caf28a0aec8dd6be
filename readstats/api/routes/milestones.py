from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ...service import StatsService
from ..deps import get_service
from ..schemas import ActivityOut, MilestoneOut

router = APIRouter(prefix="/api/v1", tags=["milestones"])


@router.get("/milestones", response_model=list[MilestoneOut])
def list_milestones(service: StatsService = Depends(get_service)) -> list[MilestoneOut]:
    service.load()
    achieved = service.tracker.achieved()
    return [
        MilestoneOut(key=key, achieved_at=when)
        for key, when in sorted(achieved.items(), key=lambda item: (item[1], item[0]))
    ]


@router.get("/activities", response_model=list[ActivityOut])
def list_activities(
    limit: int = Query(default=20, ge=1, le=500),
    service: StatsService = Depends(get_service),
) -> list[ActivityOut]:
    return [
        ActivityOut(
            id=item.id,
            type=item.type,
            book_id=item.book_id,
            content=item.content,
            metadata=item.metadata,
            created_at=item.created_at,
        )
        for item in service.activities(limit=limit)
    ]
