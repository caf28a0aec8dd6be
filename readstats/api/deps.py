from __future__ import annotations

from fastapi import Request

from ..service import StatsService


def get_service(request: Request) -> StatsService:
    return request.app.state.service
