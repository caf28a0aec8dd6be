from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI

from ..clock import Clock
from ..config import Settings, load_settings, with_overrides
from ..service import AutoRefresher, create_service
from .routes.books import router as books_router
from .routes.export import router as export_router
from .routes.health import router as health_router
from .routes.meta import router as meta_router
from .routes.milestones import router as milestones_router
from .routes.sessions import router as sessions_router
from .routes.stats import router as stats_router


def create_app(
    settings: Settings | None = None,
    db_path: Path | None = None,
    state_path: Path | None = None,
    clock: Clock | None = None,
    auto_refresh: bool = False,
) -> FastAPI:
    resolved = with_overrides(
        settings or load_settings(),
        db_path=str(db_path) if db_path else None,
        state_path=str(state_path) if state_path else None,
    )
    service = create_service(resolved, clock=clock)
    service.attach()
    refresher = AutoRefresher(service, interval_sec=resolved.refresh_interval_sec)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if auto_refresh:
            refresher.start()
        try:
            yield
        finally:
            refresher.stop()
            service.detach()

    app = FastAPI(title="readstats API", version="1.0.0", lifespan=lifespan)
    app.state.settings = resolved
    app.state.service = service
    app.state.refresher = refresher

    app.include_router(health_router)
    app.include_router(meta_router)
    app.include_router(sessions_router)
    app.include_router(books_router)
    app.include_router(stats_router)
    app.include_router(milestones_router)
    app.include_router(export_router)
    return app
